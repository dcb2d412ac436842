"""
Template expansion for daily dispatches.

The template is a markdown checklist. Each unchecked item becomes a task for
the target date. Lines can be gated by conditions:

    {{if:day=mon,wed,fri}}
    - [ ] Standup prep
    {{endif}}
    {{if:dom=1}}- [ ] Pay rent
    - [ ] Water plants >{{date:YYYY-MM-DD}}

Condition keys: day (mon..sun, weekday, weekend), dom (day of month),
month (jan..dec). Clauses are joined with "&". Anything unrecognized makes
the whole condition false.
"""
import logging
import re
from datetime import date

from calendar_math import (
    DAY_KEYS,
    MONTH_KEYS,
    day_of_month,
    day_of_week,
    month_key,
    parse_calendar_day,
    render_pattern,
)
from models import TemplateTask

logger = logging.getLogger(__name__)

LINE_SPLIT_RE = re.compile(r"\r?\n")
INLINE_IF_RE = re.compile(r"^\{\{if:([^}]+)\}\}(.*)$", re.IGNORECASE)
BLOCK_IF_RE = re.compile(r"^\{\{if:(.+)\}\}$", re.IGNORECASE)
ENDIF_RE = re.compile(r"^\{\{endif\}\}$", re.IGNORECASE)
TASK_LINE_RE = re.compile(r"^\s*[-*]\s+\[\s\]\s+(.+?)\s*$")
DATE_PLACEHOLDER_RE = re.compile(r"\{\{date:([^}]+)\}\}")
DUE_SUFFIX_RE = re.compile(r"\s>(\d{4}-\d{2}-\d{2})\s*\Z", re.ASCII)


def parse_template(content: str, target_date: str) -> list[TemplateTask]:
    """
    Expand template content into task specs for target_date (YYYY-MM-DD).
    Never raises on bad input: an invalid date or malformed directives
    just produce fewer (or no) tasks.
    """
    day = parse_calendar_day(target_date)
    if day is None:
        logger.debug("Template skipped: invalid target date %r", target_date)
        return []

    condition_stack: list[bool] = []
    result: list[TemplateTask] = []

    for raw_line in LINE_SPLIT_RE.split(content or ""):
        line = raw_line.strip()

        inline_match = INLINE_IF_RE.match(line)
        if inline_match:
            remainder = inline_match.group(2).strip()
            if remainder:
                if all(condition_stack) and matches_condition(inline_match.group(1), day):
                    task = parse_task_line(remainder, day)
                    if task:
                        result.append(task)
                continue

        block_match = BLOCK_IF_RE.match(line)
        if block_match:
            condition_stack.append(matches_condition(block_match.group(1), day))
            continue

        if ENDIF_RE.match(line):
            if condition_stack:
                condition_stack.pop()
            continue

        if not all(condition_stack):
            continue

        task = parse_task_line(raw_line, day)
        if task:
            result.append(task)

    return result


def parse_task_line(line: str, day: date) -> TemplateTask | None:
    """Turn a '- [ ] text' line into a TemplateTask, or None if it isn't one."""
    match = TASK_LINE_RE.match(line)
    if not match:
        return None

    text = render_date_placeholders(match.group(1), day).strip()
    if not text:
        return None

    due_date = None
    due_match = DUE_SUFFIX_RE.search(text)
    # An impossible date stays part of the title
    if due_match and parse_calendar_day(due_match.group(1)):
        due_date = due_match.group(1)
        text = text[:due_match.start()]

    title = text.strip()
    if not title:
        return None
    return TemplateTask(title=title, due_date=due_date)


def render_date_placeholders(text: str, day: date) -> str:
    return DATE_PLACEHOLDER_RE.sub(lambda m: render_pattern(day, m.group(1)), text)


def matches_condition(expr: str, day: date) -> bool:
    """Evaluate 'key=v1,v2&key=v3' against day. All clauses must hold."""
    clauses = [part.strip() for part in expr.split("&") if part.strip()]
    if not clauses:
        return False

    for clause in clauses:
        if "=" not in clause:
            return False
        raw_key, raw_value = (part.strip() for part in clause.split("=", 1))
        if not raw_key or not raw_value:
            return False

        key = raw_key.lower()
        if key == "day":
            matched = _matches_day(raw_value, day)
        elif key == "dom":
            matched = _matches_dom(raw_value, day)
        elif key == "month":
            matched = _matches_month(raw_value, day)
        else:
            return False
        if not matched:
            return False

    return True


def _tokens(value: str) -> list[str]:
    return [token.strip().lower() for token in value.split(",") if token.strip()]


def _matches_day(value: str, day: date) -> bool:
    weekday = day_of_week(day)
    is_weekday = weekday not in ("sat", "sun")

    for token in _tokens(value):
        if token == "weekday":
            if is_weekday:
                return True
        elif token == "weekend":
            if not is_weekday:
                return True
        elif token[:3] in DAY_KEYS and token[:3] == weekday:
            return True
    return False


def _matches_dom(value: str, day: date) -> bool:
    days: list[int] = []
    for token in _tokens(value):
        try:
            days.append(int(token))
        except ValueError:
            continue
    return day_of_month(day) in days


def _matches_month(value: str, day: date) -> bool:
    months = [token[:3] for token in _tokens(value) if token[:3] in MONTH_KEYS]
    return month_key(day) in months
