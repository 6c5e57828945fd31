from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import tzinfo

from taskmirror.event_mapper import build_desired_event
from taskmirror.identifier import extract_status
from taskmirror.models import DesiredEvent, MirroredEvent, TaskRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeDecision:
    needs_write: bool
    reason: str


UNCHANGED = ChangeDecision(needs_write=False, reason="unchanged")


def _changed(reason: str) -> ChangeDecision:
    return ChangeDecision(needs_write=True, reason=reason)


def _start_differs(desired: DesiredEvent, event: MirroredEvent) -> bool:
    timing = desired.timing
    if timing.all_day_date is not None:
        if event.start_date:
            return event.start_date != timing.all_day_date.isoformat()
        return bool(event.start.get("dateTime"))
    if event.start.get("dateTime"):
        stored = event.start_datetime
        # Unparseable stored values are left alone, like a matching start.
        return stored is not None and stored != timing.start
    return bool(event.start_date)


def detect_change(desired: DesiredEvent, event: MirroredEvent, status: str) -> ChangeDecision:
    """Compare the mapped event with the stored one, first mismatch wins.

    ``status`` is the task status, checked against the ``Status:`` line
    re-read from the stored description. That step is redundant while the
    whole description is compared first; it stays as its own ordered check
    of the status token.
    """
    if event.summary != desired.summary:
        return _changed("summary")
    if event.description != desired.description:
        return _changed("description")
    stored_status = extract_status(event.description)
    if stored_status is not None and stored_status != status:
        return _changed("status")
    if _start_differs(desired, event):
        return _changed("start")
    # Tasks without H/M priority never force a color back.
    if desired.color_id and event.color_id != desired.color_id:
        return _changed("color")

    expected = desired.reminders
    stored = event.reminders
    if expected.has_override:
        if not stored.has_override:
            logger.debug(
                "Event missing custom reminders uuid=%s expected_minutes=%s",
                desired.identifier,
                expected.override_minutes,
            )
            return _changed("reminders")
        if stored.override_minutes != expected.override_minutes:
            logger.debug(
                "Reminder minutes mismatch uuid=%s expected=%s actual=%s",
                desired.identifier,
                expected.override_minutes,
                stored.override_minutes,
            )
            return _changed("reminders")
    elif stored.has_override:
        logger.debug("Event has unwanted custom reminders uuid=%s", desired.identifier)
        return _changed("reminders")
    return UNCHANGED


def needs_update(task: TaskRecord, event: MirroredEvent, tz: tzinfo | None = None) -> bool:
    return detect_change(build_desired_event(task, tz), event, task.status).needs_write
