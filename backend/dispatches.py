"""
Dispatch lifecycle: lazy creation with one-time template materialization,
task linking, and finalize/unfinalize with rollover to the next day.

A dispatch moves open -> finalized -> open (via unfinalize) and is never
deleted here. Concurrency relies on storage primitives only: the unique
(owner_id, date) index and conditional updates on the finalized flag.
"""
import logging
from typing import Optional

import config
from calendar_math import (
    add_days_to_date_key,
    end_of_month,
    format_calendar_day,
    parse_calendar_day,
)
from dispatch_template import parse_template
from errors import (
    DispatchFinalizedError,
    DispatchNotFinalizedError,
    DispatchNotFoundError,
    DuplicateDispatchError,
    InvalidDateError,
    TaskNotFoundError,
)
from models import (
    CalendarDay,
    Dispatch,
    DispatchResult,
    FinalizeResult,
    Task,
    TemplateTask,
    UnfinalizeResult,
)
from ports import DispatchStorage

logger = logging.getLogger(__name__)


def next_date_key(date_key: str) -> Optional[str]:
    """The following day's key, or None when it falls past 9999-12-31."""
    try:
        return add_days_to_date_key(date_key, 1)
    except ValueError:
        return None


class DispatchManager:
    def __init__(self, storage: DispatchStorage, template_title: str = config.TEMPLATE_NOTE_TITLE):
        self.storage = storage
        self.template_title = template_title

    # ---- creation & template materialization ----

    def get_or_create_dispatch(self, owner_id: str, date: str) -> DispatchResult:
        """
        Return the owner's dispatch for date, creating it if needed.
        Template tasks are materialized only by the call that actually
        created the row.
        """
        if parse_calendar_day(date) is None:
            raise InvalidDateError(date)

        existing = self.storage.find_dispatch(owner_id, date)
        if existing:
            return DispatchResult(dispatch=existing, created=False, template_task_count=0)

        try:
            dispatch = self.storage.create_dispatch(owner_id, date)
        except DuplicateDispatchError:
            # Another caller created it between our read and insert
            winner = self.storage.find_dispatch(owner_id, date)
            if winner is None:
                raise
            logger.debug("Lost dispatch create race owner=%s date=%s", owner_id, date)
            return DispatchResult(dispatch=winner, created=False, template_task_count=0)

        count = self.apply_template_tasks(owner_id, dispatch.id, date)
        logger.info(
            "Dispatch created id=%s owner=%s date=%s template_tasks=%s",
            dispatch.id, owner_id, date, count,
        )
        return DispatchResult(dispatch=dispatch, created=True, template_task_count=count)

    def apply_template_tasks(self, owner_id: str, dispatch_id: str, date: str) -> int:
        """Create and link one task per template spec. Returns how many were created."""
        specs = self.preview_template(owner_id, date)
        for spec in specs:
            task = self.storage.create_task(owner_id, spec.title, due_date=spec.due_date)
            self.storage.create_link(dispatch_id, task.id)
        return len(specs)

    def preview_template(self, owner_id: str, date: str) -> list[TemplateTask]:
        """Template expansion for date without creating anything."""
        note = self.storage.find_template_note(owner_id, self.template_title)
        if note is None or not note.content:
            return []
        return parse_template(note.content, date)

    # ---- reads ----

    def get_dispatch(self, dispatch_id: str, owner_id: Optional[str] = None) -> Dispatch:
        dispatch = self.storage.get_dispatch(dispatch_id)
        if dispatch is None or (owner_id is not None and dispatch.owner_id != owner_id):
            raise DispatchNotFoundError(dispatch_id)
        return dispatch

    def list_dispatch_tasks(self, dispatch_id: str, owner_id: Optional[str] = None) -> list[Task]:
        self.get_dispatch(dispatch_id, owner_id)
        return self.storage.find_tasks_linked_to_dispatch(dispatch_id)

    def calendar(self, owner_id: str, year: int, month: int) -> dict[str, CalendarDay]:
        """Finalized flag and linked task count for each dispatch in a month."""
        if not 1 <= month <= 12 or not 1 <= year <= 9999:
            raise InvalidDateError(f"{year}-{month}")

        start = f"{year:04d}-{month:02d}-01"
        end = format_calendar_day(end_of_month(year, month))
        month_dispatches = self.storage.list_dispatches_between(owner_id, start, end)
        counts = self.storage.count_links([d.id for d in month_dispatches])

        return {
            d.date: CalendarDay(finalized=d.finalized, task_count=counts.get(d.id, 0))
            for d in month_dispatches
        }

    # ---- mutations on an open dispatch ----

    def _get_open_dispatch(self, dispatch_id: str, owner_id: Optional[str]) -> Dispatch:
        dispatch = self.get_dispatch(dispatch_id, owner_id)
        if dispatch.finalized:
            raise DispatchFinalizedError(dispatch_id)
        return dispatch

    def link_task(self, dispatch_id: str, task_id: str, owner_id: Optional[str] = None) -> bool:
        """
        Link a task to an open dispatch. The task must share the dispatch's
        owner and not be deleted. Returns False when it was already linked.
        """
        dispatch = self._get_open_dispatch(dispatch_id, owner_id)

        task = self.storage.get_task(task_id)
        if task is None or task.deleted_at is not None or task.owner_id != dispatch.owner_id:
            raise TaskNotFoundError(task_id)

        if self.storage.link_exists(dispatch_id, task_id):
            return False
        return self.storage.create_link(dispatch_id, task_id)

    def unlink_task(self, dispatch_id: str, task_id: str, owner_id: Optional[str] = None) -> bool:
        """Remove a link from an open dispatch. Returns False when there was none."""
        self._get_open_dispatch(dispatch_id, owner_id)
        if not self.storage.link_exists(dispatch_id, task_id):
            return False
        return self.storage.delete_link(dispatch_id, task_id)

    def update_summary(
        self,
        dispatch_id: str,
        summary: Optional[str],
        owner_id: Optional[str] = None,
    ) -> Dispatch:
        self._get_open_dispatch(dispatch_id, owner_id)
        updated = self.storage.update_dispatch(
            dispatch_id, {"summary": summary}, expected_finalized=False
        )
        if updated is None:
            # Finalized between our read and the write
            raise DispatchFinalizedError(dispatch_id)
        return updated

    # ---- finalize / unfinalize ----

    def finalize(self, dispatch_id: str, owner_id: Optional[str] = None) -> FinalizeResult:
        """
        Close out a day. Unfinished linked tasks (status != done) are linked
        to the next day's dispatch, which is created if needed.
        """
        dispatch = self.get_dispatch(dispatch_id, owner_id)
        if dispatch.finalized:
            raise DispatchFinalizedError(dispatch_id, "Dispatch is already finalized")

        linked = self.storage.find_tasks_linked_to_dispatch(dispatch_id)
        unfinished = [task for task in linked if task.status != "done"]

        next_date = None
        if unfinished:
            # Checked before the latch: a rejected finalize leaves the dispatch open
            next_date = next_date_key(dispatch.date)
            if next_date is None:
                raise InvalidDateError(
                    dispatch.date, "Cannot roll over tasks past the last representable day"
                )

        finalized = self.storage.update_dispatch(
            dispatch_id, {"finalized": True}, expected_finalized=False
        )
        if finalized is None:
            raise DispatchFinalizedError(dispatch_id, "Dispatch is already finalized")

        next_dispatch_id = None
        if unfinished:
            next_dispatch = self.get_or_create_dispatch(dispatch.owner_id, next_date).dispatch
            next_dispatch_id = next_dispatch.id
            for task in unfinished:
                # The next day's own template may already have linked it
                if not self.storage.link_exists(next_dispatch.id, task.id):
                    self.storage.create_link(next_dispatch.id, task.id)

        logger.info(
            "Dispatch finalized id=%s date=%s rolled_over=%s next=%s",
            dispatch_id, dispatch.date, len(unfinished), next_dispatch_id,
        )
        return FinalizeResult(
            dispatch=finalized,
            rolled_over=len(unfinished),
            next_dispatch_id=next_dispatch_id,
        )

    def unfinalize(self, dispatch_id: str, owner_id: Optional[str] = None) -> UnfinalizeResult:
        """
        Reopen a finalized dispatch. Tasks already rolled into the next day
        stay linked there; the caller is told whether that day exists.
        """
        dispatch = self.get_dispatch(dispatch_id, owner_id)
        if not dispatch.finalized:
            raise DispatchNotFinalizedError(dispatch_id)

        next_date = next_date_key(dispatch.date)
        next_dispatch = self.storage.find_dispatch(dispatch.owner_id, next_date) if next_date else None

        reopened = self.storage.update_dispatch(
            dispatch_id, {"finalized": False}, expected_finalized=True
        )
        if reopened is None:
            raise DispatchNotFinalizedError(dispatch_id)

        logger.info("Dispatch unfinalized id=%s date=%s", dispatch_id, dispatch.date)
        return UnfinalizeResult(
            dispatch=reopened,
            has_next_dispatch=next_dispatch is not None,
            next_dispatch_date=next_dispatch.date if next_dispatch else None,
        )
