from pydantic import BaseModel, Field
from typing import Literal, Optional

TaskStatus = Literal["open", "in_progress", "done"]
TaskPriority = Literal["low", "medium", "high"]


class Task(BaseModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = "open"
    priority: TaskPriority = "medium"
    due_date: Optional[str] = None  # YYYY-MM-DD
    created_at: str  # ISO format datetime string
    updated_at: str
    deleted_at: Optional[str] = None  # Set when soft-deleted


class Dispatch(BaseModel):
    id: str
    owner_id: str
    date: str  # YYYY-MM-DD, unique per owner
    summary: Optional[str] = None
    finalized: bool = False
    created_at: str
    updated_at: str


class TemplateNote(BaseModel):
    id: str
    owner_id: str
    title: str
    content: Optional[str] = None
    created_at: str
    updated_at: str


class TemplateTask(BaseModel):
    """A task specification produced by expanding the template for one date."""
    title: str
    due_date: Optional[str] = None


# Operation results

class DispatchResult(BaseModel):
    dispatch: Dispatch
    created: bool
    template_task_count: int = 0


class FinalizeResult(BaseModel):
    dispatch: Dispatch
    rolled_over: int
    next_dispatch_id: Optional[str] = None


class UnfinalizeResult(BaseModel):
    dispatch: Dispatch
    has_next_dispatch: bool
    next_dispatch_date: Optional[str] = None


class CalendarDay(BaseModel):
    finalized: bool
    task_count: int


# Request bodies

class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    status: TaskStatus = "open"
    priority: TaskPriority = "medium"
    due_date: Optional[str] = Field(default=None, pattern=r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[str] = Field(default=None, pattern=r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


class DispatchCreate(BaseModel):
    date: str = Field(pattern=r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
    summary: Optional[str] = Field(default=None, max_length=10000)


class DispatchUpdate(BaseModel):
    summary: Optional[str] = Field(default=None, max_length=10000)


class DispatchTaskLink(BaseModel):
    task_id: str = Field(min_length=1)


class TemplateUpdate(BaseModel):
    content: str
