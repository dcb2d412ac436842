"""
Storage port consumed by DispatchManager.

The `database` module satisfies this protocol with module-level functions;
tests can pass any object with the same methods.
"""
from typing import Any, Optional, Protocol

from models import Dispatch, Task, TemplateNote


class DispatchStorage(Protocol):
    def find_dispatch(self, owner_id: str, date: str) -> Optional[Dispatch]: ...

    def get_dispatch(self, dispatch_id: str) -> Optional[Dispatch]: ...

    def create_dispatch(self, owner_id: str, date: str) -> Dispatch:
        """Raises DuplicateDispatchError if (owner_id, date) already exists."""
        ...

    def update_dispatch(
        self,
        dispatch_id: str,
        fields: dict[str, Any],
        expected_finalized: Optional[bool] = None,
    ) -> Optional[Dispatch]:
        """
        Apply fields and stamp updated_at. With expected_finalized set, the
        write only happens if the row still has that finalized value;
        returns None when it doesn't (or the row is gone).
        """
        ...

    def find_template_note(self, owner_id: str, title: str) -> Optional[TemplateNote]: ...

    def create_task(
        self,
        owner_id: str,
        title: str,
        due_date: Optional[str] = None,
        status: str = "open",
        priority: str = "medium",
        description: Optional[str] = None,
    ) -> Task: ...

    def get_task(self, task_id: str) -> Optional[Task]: ...

    def find_tasks_linked_to_dispatch(self, dispatch_id: str) -> list[Task]:
        """Linked tasks, excluding soft-deleted ones."""
        ...

    def link_exists(self, dispatch_id: str, task_id: str) -> bool: ...

    def create_link(self, dispatch_id: str, task_id: str) -> bool:
        """Returns False when the link was already there."""
        ...

    def delete_link(self, dispatch_id: str, task_id: str) -> bool: ...

    def list_dispatches_between(self, owner_id: str, start: str, end: str) -> list[Dispatch]: ...

    def count_links(self, dispatch_ids: list[str]) -> dict[str, int]: ...
