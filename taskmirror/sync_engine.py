from __future__ import annotations

import logging
import threading
import traceback
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Iterable

from taskmirror.change_detector import detect_change
from taskmirror.config_manager import ConfigManager
from taskmirror.correspondence import CorrespondenceIndex, build_correspondence_index
from taskmirror.errors import CalendarStoreError, SyncCancelled, TaskMirrorError, TaskSourceError
from taskmirror.event_mapper import build_desired_event, update_body
from taskmirror.gcal_client import GoogleCalendarService
from taskmirror.identifier import DescriptionIdentifierParser, IdentifierParser
from taskmirror.models import (
    AppConfig,
    SyncResult,
    TaskRecord,
    resolve_timezone,
    sync_window,
    to_local,
)
from taskmirror.state_store import StateStore
from taskmirror.taskwarrior_client import TaskwarriorClient

logger = logging.getLogger(__name__)

WARNING_TIME_FORMAT = "%Y-%m-%d %H:%M"


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


def _error_text(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SyncCancelled("sync cancelled")


def scheduled_warning(task: TaskRecord, tz: tzinfo | None = None) -> str:
    scheduled = to_local(task.scheduled, tz).strftime(WARNING_TIME_FORMAT) if task.scheduled else ""
    due = to_local(task.due, tz).strftime(WARNING_TIME_FORMAT) if task.due else ""
    return f"Task '{task.description}' has scheduled time ({scheduled}) after due time ({due})"


class SyncEngine:
    """One-way mirror of Taskwarrior tasks into a Google calendar.

    Every run rebuilds the uuid -> event index from the calendar, maps each
    task to its desired event and writes only what differs. Runs never
    overlap: a call made while another is in flight returns ``busy``.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        state_store: StateStore,
        calendar_factory: Callable[[Any], Any] = GoogleCalendarService,
        task_source_factory: Callable[[Any], Any] = TaskwarriorClient,
        parser: IdentifierParser | None = None,
    ) -> None:
        self.config_manager = config_manager
        self.state_store = state_store
        self.calendar_factory = calendar_factory
        self.task_source_factory = task_source_factory
        self.parser = parser or DescriptionIdentifierParser()
        self._run_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run_once(
        self,
        trigger: str = "manual",
        cancel_event: threading.Event | None = None,
        config: AppConfig | None = None,
    ) -> SyncResult:
        """Run one sync. ``config`` replaces the stored configuration for this run only."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Sync already in progress, rejecting trigger=%s", trigger)
            return SyncResult(status="busy", message="sync already in progress", trigger=trigger)
        try:
            return self._run_locked(trigger, cancel_event, config)
        finally:
            self._run_lock.release()

    def _run_locked(
        self, trigger: str, cancel_event: threading.Event | None, config: AppConfig | None
    ) -> SyncResult:
        started_at = datetime.now(timezone.utc)
        if config is None:
            config = self.config_manager.load()
        run_id = self.state_store.start_sync_run(trigger=trigger)
        result = SyncResult(status="running", message="running", trigger=trigger, run_id=run_id)

        if not config.sync.enabled:
            result.status = "skipped"
            result.message = "Calendar sync disabled. Sync skipped."
        elif not config.google.is_configured:
            result.status = "skipped"
            result.message = "Google calendar_name/calendar_id missing. Sync skipped."
        if result.status == "skipped":
            result.duration_ms = _elapsed_ms(started_at)
            self.state_store.finish_sync_run(run_id=run_id, result=result)
            return result

        try:
            self._sync(config, result, cancel_event)
            result.status = "success"
            result.message = result.summary_line()
            logger.info(
                "Sync completed total=%d created=%d updated=%d deleted=%d skipped=%d failed=%d warnings=%d",
                result.total,
                result.created,
                result.updated,
                result.deleted,
                result.skipped,
                result.failed,
                len(result.warnings),
            )
        except SyncCancelled as exc:
            result.status = "cancelled"
            result.message = str(exc)
            logger.info("Sync cancelled run_id=%s", run_id)
        except TaskMirrorError as exc:
            result.status = "error"
            result.message = str(exc)
            logger.error("Sync failed: %s", exc)
            self.state_store.record_audit_event(
                task_uuid="sync",
                action="run_error",
                details={"trigger": trigger, "error": result.message},
                run_id=run_id,
            )
        except Exception as exc:
            result.status = "error"
            result.message = _error_text(exc)
            logger.exception("Sync failed unexpectedly")
            self.state_store.record_audit_event(
                task_uuid="sync",
                action="run_error",
                details={
                    "trigger": trigger,
                    "error": result.message,
                    "traceback": traceback.format_exc(limit=5),
                },
                run_id=run_id,
            )
        result.duration_ms = _elapsed_ms(started_at)
        self.state_store.finish_sync_run(run_id=run_id, result=result)
        return result

    def _sync(self, config: AppConfig, result: SyncResult, cancel_event: threading.Event | None) -> None:
        tz = resolve_timezone(config.sync.timezone)
        calendar = self.calendar_factory(config.google)
        task_source = self.task_source_factory(config.taskwarrior)
        logger.info(
            "Starting sync calendar=%s filter=%s",
            config.google.calendar_id or config.google.calendar_name,
            config.sync.task_filter,
        )

        _check_cancelled(cancel_event)
        try:
            calendar_id = calendar.resolve_calendar_id()
        except CalendarStoreError as exc:
            raise CalendarStoreError(f"failed to find calendar: {exc}") from exc

        _check_cancelled(cancel_event)
        try:
            tasks = task_source.export(config.sync.task_filter)
        except TaskSourceError as exc:
            raise TaskSourceError(f"failed to get tasks: {exc}") from exc
        logger.info("Retrieved tasks count=%d", len(tasks))

        _check_cancelled(cancel_event)
        time_min, time_max = sync_window(
            datetime.now(timezone.utc), config.sync.lookback_days, config.sync.lookahead_days
        )
        try:
            events = calendar.list_events(calendar_id, time_min, time_max)
        except CalendarStoreError as exc:
            raise CalendarStoreError(f"failed to get calendar events: {exc}") from exc

        index = build_correspondence_index(events, self.parser)
        logger.info(
            "Retrieved existing calendar events managed=%d foreign=%d",
            len(index),
            index.foreign_count,
        )
        for identifier, losers in index.duplicates.items():
            kept = index.get(identifier)
            self.state_store.record_audit_event(
                task_uuid=identifier,
                event_id=kept.event_id if kept else "",
                action="duplicate_identifier",
                details={"ignored_event_ids": [event.event_id for event in losers]},
                run_id=result.run_id,
            )

        self.reconcile(tasks, index, calendar, calendar_id, result, tz=tz, cancel_event=cancel_event)

    def reconcile(
        self,
        tasks: Iterable[TaskRecord],
        index: CorrespondenceIndex,
        calendar: Any,
        calendar_id: str,
        result: SyncResult,
        *,
        tz: tzinfo | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SyncResult:
        """Classify each task and apply at most one calendar write for it.

        Tasks are visited in source order. A failed write is logged and left
        out of every counter except ``failed``; the next run retries it.
        """
        for task in tasks:
            result.total += 1
            existing = index.get(task.uuid)

            if not task.has_date:
                if existing is None:
                    logger.debug("Skipping task without due date uuid=%s", task.uuid)
                    result.skipped += 1
                    continue
                _check_cancelled(cancel_event)
                try:
                    calendar.delete_event(calendar_id, existing.event_id)
                except Exception as exc:
                    self._record_failure(task, "delete", exc, result, event_id=existing.event_id)
                    continue
                result.deleted += 1
                self._audit(task, "delete_event", result, event_id=existing.event_id)
                continue

            if task.scheduled_not_before_due:
                message = scheduled_warning(task, tz)
                logger.warning("%s uuid=%s", message, task.uuid)
                result.warnings.append(message)
                self._audit(task, "scheduled_after_due", result, message=message)

            desired = build_desired_event(task, tz)

            if existing is None:
                _check_cancelled(cancel_event)
                try:
                    created = calendar.insert_event(calendar_id, desired.to_api())
                except Exception as exc:
                    self._record_failure(task, "create", exc, result)
                    continue
                result.created += 1
                self._audit(task, "create_event", result, event_id=created.event_id)
                continue

            decision = detect_change(desired, existing, task.status)
            if not decision.needs_write:
                result.unchanged += 1
                continue

            _check_cancelled(cancel_event)
            try:
                calendar.update_event(calendar_id, existing.event_id, update_body(desired, existing))
            except Exception as exc:
                self._record_failure(task, "update", exc, result, event_id=existing.event_id)
                continue
            result.updated += 1
            self._audit(task, "update_event", result, event_id=existing.event_id, reason=decision.reason)
        return result

    def _audit(self, task: TaskRecord, action: str, result: SyncResult, *, event_id: str = "", **details: Any) -> None:
        logger.debug("%s uuid=%s event_id=%s", action, task.uuid, event_id)
        self.state_store.record_audit_event(
            task_uuid=task.uuid,
            event_id=event_id,
            action=action,
            details={"description": task.description, **details},
            run_id=result.run_id,
        )

    def _record_failure(
        self,
        task: TaskRecord,
        operation: str,
        exc: Exception,
        result: SyncResult,
        *,
        event_id: str = "",
    ) -> None:
        logger.error("Failed to %s event uuid=%s error=%s", operation, task.uuid, exc)
        result.failed += 1
        self._audit(task, f"{operation}_failed", result, event_id=event_id, error=_error_text(exc))
