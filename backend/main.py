from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import database
from calendar_math import today_date_key
from dispatches import DispatchManager
from errors import (
    DispatchError,
    DispatchFinalizedError,
    DispatchNotFinalizedError,
    DispatchNotFoundError,
    InvalidDateError,
    TaskNotFoundError,
)
from models import (
    DispatchCreate,
    DispatchTaskLink,
    DispatchUpdate,
    TaskCreate,
    TaskUpdate,
    TemplateUpdate,
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    config.setup_logging()
    database.init_db()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

manager = DispatchManager(database, template_title=config.TEMPLATE_NOTE_TITLE)

ERROR_STATUS = {
    DispatchNotFoundError: 404,
    TaskNotFoundError: 404,
    DispatchFinalizedError: 400,
    DispatchNotFinalizedError: 400,
    InvalidDateError: 400,
}


@app.exception_handler(DispatchError)
async def dispatch_error_handler(_request: Request, exc: DispatchError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def get_owner_id(x_owner_id: Optional[str] = Header(default=None)) -> str:
    """Owner identity is established upstream and forwarded in X-Owner-Id."""
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_owner_id


# Dispatches

@app.get("/dispatches")
def list_dispatches(date: Optional[str] = None, owner_id: str = Depends(get_owner_id)) -> list[dict]:
    return [d.model_dump() for d in database.list_dispatches_db(owner_id, date)]


@app.post("/dispatches", status_code=201)
def create_dispatch(body: DispatchCreate, owner_id: str = Depends(get_owner_id)) -> dict:
    if database.find_dispatch(owner_id, body.date):
        raise HTTPException(status_code=409, detail="A dispatch already exists for this date")

    result = manager.get_or_create_dispatch(owner_id, body.date)
    dispatch = result.dispatch
    if body.summary is not None:
        dispatch = manager.update_summary(dispatch.id, body.summary, owner_id)
    return dispatch.model_dump()


@app.get("/dispatches/today")
def get_today_dispatch(owner_id: str = Depends(get_owner_id)) -> dict:
    """Get or create the dispatch for today in the configured timezone."""
    today = today_date_key(config.TIMEZONE)
    return manager.get_or_create_dispatch(owner_id, today).model_dump()


@app.get("/dispatches/calendar")
def get_dispatch_calendar(year: int, month: int, owner_id: str = Depends(get_owner_id)) -> dict:
    dates = manager.calendar(owner_id, year, month)
    return {"dates": {key: day.model_dump() for key, day in dates.items()}}


@app.get("/dispatches/{dispatch_id}")
def get_dispatch(dispatch_id: str, owner_id: str = Depends(get_owner_id)) -> dict:
    return manager.get_dispatch(dispatch_id, owner_id).model_dump()


@app.put("/dispatches/{dispatch_id}")
def update_dispatch(dispatch_id: str, body: DispatchUpdate, owner_id: str = Depends(get_owner_id)) -> dict:
    return manager.update_summary(dispatch_id, body.summary, owner_id).model_dump()


@app.get("/dispatches/{dispatch_id}/tasks")
def get_dispatch_tasks(dispatch_id: str, owner_id: str = Depends(get_owner_id)) -> list[dict]:
    return [t.model_dump() for t in manager.list_dispatch_tasks(dispatch_id, owner_id)]


@app.post("/dispatches/{dispatch_id}/tasks", status_code=201)
def link_dispatch_task(dispatch_id: str, body: DispatchTaskLink, owner_id: str = Depends(get_owner_id)) -> dict:
    created = manager.link_task(dispatch_id, body.task_id, owner_id)
    return {"linked": True, "created": created}


@app.delete("/dispatches/{dispatch_id}/tasks")
def unlink_dispatch_task(dispatch_id: str, body: DispatchTaskLink, owner_id: str = Depends(get_owner_id)) -> dict:
    removed = manager.unlink_task(dispatch_id, body.task_id, owner_id)
    return {"unlinked": True, "removed": removed}


@app.post("/dispatches/{dispatch_id}/complete")
def complete_dispatch(dispatch_id: str, owner_id: str = Depends(get_owner_id)) -> dict:
    """Finalize a dispatch and roll unfinished tasks to the next day."""
    return manager.finalize(dispatch_id, owner_id).model_dump()


@app.post("/dispatches/{dispatch_id}/unfinalize")
def unfinalize_dispatch(dispatch_id: str, owner_id: str = Depends(get_owner_id)) -> dict:
    return manager.unfinalize(dispatch_id, owner_id).model_dump()


# Template note

@app.get("/template")
def get_template(owner_id: str = Depends(get_owner_id)) -> dict:
    note = database.find_template_note(owner_id, config.TEMPLATE_NOTE_TITLE)
    return {"title": config.TEMPLATE_NOTE_TITLE, "content": note.content if note else ""}


@app.put("/template")
def update_template(body: TemplateUpdate, owner_id: str = Depends(get_owner_id)) -> dict:
    note = database.upsert_template_note(owner_id, config.TEMPLATE_NOTE_TITLE, body.content)
    return {"title": note.title, "content": note.content}


@app.get("/template/preview")
def preview_template(date: str, owner_id: str = Depends(get_owner_id)) -> list[dict]:
    """Show which tasks the template would create for a date."""
    return [t.model_dump() for t in manager.preview_template(owner_id, date)]


# Tasks

@app.get("/tasks")
def get_tasks(owner_id: str = Depends(get_owner_id)) -> list[dict]:
    return [t.model_dump() for t in database.get_all_tasks(owner_id)]


@app.post("/tasks", status_code=201)
def create_task(task_data: TaskCreate, owner_id: str = Depends(get_owner_id)) -> dict:
    task = database.create_task(
        owner_id,
        task_data.title,
        due_date=task_data.due_date,
        status=task_data.status,
        priority=task_data.priority,
        description=task_data.description,
    )
    return task.model_dump()


def _get_owned_task(task_id: str, owner_id: str):
    task = database.get_task(task_id)
    if not task or task.owner_id != owner_id or task.deleted_at:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate, owner_id: str = Depends(get_owner_id)) -> dict:
    _get_owned_task(task_id, owner_id)
    result = database.update_task_db(task_id, **task_data.model_dump(exclude_none=True))
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result.model_dump()


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str, owner_id: str = Depends(get_owner_id)) -> dict:
    _get_owned_task(task_id, owner_id)
    if not database.delete_task_db(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
