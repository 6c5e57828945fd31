from __future__ import annotations

from datetime import timedelta, timezone, tzinfo
from typing import Any

from taskmirror.identifier import embed_identifier
from taskmirror.models import DesiredEvent, EventTiming, MirroredEvent, ReminderConfig, TaskRecord, to_local

COMPLETED_GLYPH = "✓ "
WARNING_TEXT = "⚠️ WARNING: Scheduled time is after due time!"
TIMED_EVENT_DURATION = timedelta(minutes=15)
FALLBACK_REMINDER_MINUTES = 15
PRIORITY_COLORS = {"H": "11", "M": "5"}
MAPPED_FIELDS = ("summary", "description", "start", "end", "colorId", "reminders")
SERVER_FIELDS = ("kind", "etag", "htmlLink", "created", "updated", "creator", "organizer", "sequence")


def expected_summary(task: TaskRecord) -> str:
    if task.status == "completed":
        return COMPLETED_GLYPH + task.description
    return task.description


def expected_description(task: TaskRecord) -> str:
    body = (
        f"{embed_identifier(task.uuid)}\n\n"
        f"Project: {task.project}\n"
        f"Tags: {', '.join(task.tags)}\n"
        f"Status: {task.status}"
    )
    if task.scheduled_not_before_due:
        body = f"{body}\n\n{WARNING_TEXT}"
    return body


def expected_color(task: TaskRecord) -> str:
    return PRIORITY_COLORS.get(task.priority, "")


def expected_timing(task: TaskRecord, tz: tzinfo | None = None) -> EventTiming:
    anchor = task.anchor
    if anchor is None:
        raise ValueError(f"task {task.uuid} has neither due nor scheduled")
    local = to_local(anchor, tz)
    if local.hour == 0 and local.minute == 0 and local.second == 0:
        return EventTiming(all_day_date=local.date())
    # End is 15 real minutes later, even across a DST transition.
    end = to_local(to_local(anchor, timezone.utc) + TIMED_EVENT_DURATION, tz)
    return EventTiming(start=local, end=end)


def expected_reminders(task: TaskRecord) -> ReminderConfig:
    if task.scheduled is None:
        return ReminderConfig(use_default=True)
    if task.due is None or task.scheduled_not_before_due:
        return ReminderConfig(use_default=False, override_minutes=FALLBACK_REMINDER_MINUTES)
    lead = task.due - task.scheduled
    return ReminderConfig(use_default=False, override_minutes=int(lead.total_seconds() // 60))


def build_desired_event(task: TaskRecord, tz: tzinfo | None = None) -> DesiredEvent:
    """Map a dated task to the event that should exist in the calendar.

    The result depends only on the task fields (and the zone used for the
    midnight test), so it is recomputed on every run and used both for
    writes and for change detection.
    """
    return DesiredEvent(
        identifier=task.uuid,
        summary=expected_summary(task),
        description=expected_description(task),
        timing=expected_timing(task, tz),
        color_id=expected_color(task),
        reminders=expected_reminders(task),
        warning=task.scheduled_not_before_due,
    )


def update_body(desired: DesiredEvent, existing: MirroredEvent) -> dict[str, Any]:
    """Full-replace body for ``existing``.

    Mapped fields come from ``desired``. Fields the mapper never sets, such
    as location or attendees, are carried over from the stored event. A
    stored ``colorId`` is dropped unless the task asserts one.
    """
    body = {
        key: value
        for key, value in existing.raw.items()
        if key not in MAPPED_FIELDS and key not in SERVER_FIELDS
    }
    body.update(desired.to_api())
    return body
