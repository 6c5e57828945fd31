"""
In-memory stand-in for GoogleCalendarService.

Events are kept as API resource dicts keyed by event id, the way the
Calendar API echoes them back, so mapper output round-trips exactly.
"""

from __future__ import annotations

import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

from taskmirror.errors import CalendarStoreError
from taskmirror.models import MirroredEvent


class FakeCalendar:
    def __init__(self, calendar_id: str = "cal-1", events: list[dict[str, Any]] | None = None) -> None:
        self.calendar_id = calendar_id
        self._events: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._clock = datetime(2025, 10, 1, tzinfo=timezone.utc)
        self.inserts: list[dict[str, Any]] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.deletes: list[str] = []
        self.fail_ids: set[str] = set()
        self.fail_summaries: set[str] = set()
        self.list_error: Exception | None = None
        for event in events or []:
            self._events[str(event["id"])] = copy.deepcopy(event)

    @property
    def writes(self) -> int:
        return len(self.inserts) + len(self.updates) + len(self.deletes)

    def reset_counters(self) -> None:
        self.inserts.clear()
        self.updates.clear()
        self.deletes.clear()

    def _tick(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def get(self, event_id: str) -> dict[str, Any]:
        return self._events[event_id]

    def all_events(self) -> list[dict[str, Any]]:
        return list(self._events.values())

    # GoogleCalendarService interface

    def resolve_calendar_id(self) -> str:
        return self.calendar_id

    def list_events(self, calendar_id: str, time_min: datetime, time_max: datetime) -> list[MirroredEvent]:
        if self.list_error is not None:
            raise self.list_error
        return [MirroredEvent.from_api(copy.deepcopy(item)) for item in self._events.values()]

    def insert_event(self, calendar_id: str, body: dict[str, Any]) -> MirroredEvent:
        if body.get("summary") in self.fail_summaries:
            raise CalendarStoreError("failed to insert event: boom")
        event_id = f"evt-{next(self._ids)}"
        stored = copy.deepcopy(body)
        stored["id"] = event_id
        stored["updated"] = self._tick()
        self._events[event_id] = stored
        self.inserts.append(copy.deepcopy(body))
        return MirroredEvent.from_api(copy.deepcopy(stored))

    def update_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> MirroredEvent:
        if event_id in self.fail_ids:
            raise CalendarStoreError("failed to update event: boom")
        stored = copy.deepcopy(body)
        stored["id"] = event_id
        stored["updated"] = self._tick()
        self._events[event_id] = stored
        self.updates.append((event_id, copy.deepcopy(body)))
        return MirroredEvent.from_api(copy.deepcopy(stored))

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        if event_id in self.fail_ids:
            raise CalendarStoreError("failed to delete event: boom")
        self._events.pop(event_id, None)
        self.deletes.append(event_id)


class FakeTaskSource:
    def __init__(self, tasks: list[Any] | None = None, error: Exception | None = None) -> None:
        self.tasks = list(tasks or [])
        self.error = error
        self.filters: list[str] = []

    def export(self, task_filter: str = "") -> list[Any]:
        self.filters.append(task_filter)
        if self.error is not None:
            raise self.error
        return list(self.tasks)
