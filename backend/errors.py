"""Domain rejections raised by the dispatch core."""
from typing import Optional


class DispatchError(Exception):
    """Base class for errors reported back to the caller."""


class DispatchNotFoundError(DispatchError):
    def __init__(self, dispatch_id: str):
        super().__init__("Dispatch not found")
        self.dispatch_id = dispatch_id


class DispatchFinalizedError(DispatchError):
    def __init__(self, dispatch_id: str, message: str = "Cannot modify a finalized dispatch"):
        super().__init__(message)
        self.dispatch_id = dispatch_id


class DispatchNotFinalizedError(DispatchError):
    def __init__(self, dispatch_id: str):
        super().__init__("Dispatch is not finalized")
        self.dispatch_id = dispatch_id


class TaskNotFoundError(DispatchError):
    def __init__(self, task_id: str):
        super().__init__("Task not found")
        self.task_id = task_id


class InvalidDateError(DispatchError, ValueError):
    def __init__(self, value: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid date {value!r}: expected YYYY-MM-DD")
        self.value = value


class DuplicateDispatchError(Exception):
    """Raised by storage when a dispatch already exists for (owner_id, date)."""

    def __init__(self, owner_id: str, date: str):
        super().__init__(f"Dispatch already exists for {owner_id} on {date}")
        self.owner_id = owner_id
        self.date = date
