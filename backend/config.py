"""Settings read from environment variables (and .env when present)."""
import logging
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_PATH = os.getenv("DISPATCH_DB_PATH", "dispatch.db")

# IANA timezone used to decide what "today" is; local time when unset
TIMEZONE = os.getenv("DISPATCH_TZ", "").strip() or None

# Title of the note whose checklist is expanded into each new dispatch
TEMPLATE_NOTE_TITLE = os.getenv("DISPATCH_TEMPLATE_TITLE", "TasklistTemplate")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("DISPATCH_CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("DISPATCH_LOG_LEVEL", "INFO").upper()


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure the root logger. Call once at startup."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
