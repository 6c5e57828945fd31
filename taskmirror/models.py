from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


TASKWARRIOR_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
DEFAULT_TASK_FILTER = "status:pending or status:completed"


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return _ensure_tz(parsed)


def parse_task_datetime(value: str | None) -> datetime | None:
    """Parse a Taskwarrior export timestamp (``20251016T120000Z``).

    Plain ISO-8601 strings are accepted as well so hand-written fixtures
    and newer exports both work.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, TASKWARRIOR_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return parse_iso_datetime(text)


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).isoformat()


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Return the configured zone, or ``None`` for the system local zone."""
    text = str(name or "").strip()
    if not text or text.lower() == "local":
        return None
    try:
        return ZoneInfo(text)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown timezone: {text}") from exc


def to_local(value: datetime, tz: tzinfo | None = None) -> datetime:
    return _ensure_tz(value).astimezone(tz)


@dataclass
class TaskwarriorConfig:
    task_bin: str = "task"
    taskrc_path: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TaskwarriorConfig":
        data = data or {}
        return cls(
            task_bin=str(data.get("task_bin", "task")).strip() or "task",
            taskrc_path=str(data.get("taskrc_path", "") or "").strip(),
        )


@dataclass
class GoogleCalendarConfig:
    calendar_name: str = ""
    calendar_id: str = ""
    credentials_path: str = "~/.config/taskmirror/credentials.json"
    token_path: str = "~/.config/taskmirror/token.json"
    client_id: str = ""
    client_secret: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "GoogleCalendarConfig":
        data = data or {}
        return cls(
            calendar_name=str(data.get("calendar_name", "") or "").strip(),
            calendar_id=str(data.get("calendar_id", "") or "").strip(),
            credentials_path=str(
                data.get("credentials_path", "~/.config/taskmirror/credentials.json") or ""
            ).strip(),
            token_path=str(data.get("token_path", "~/.config/taskmirror/token.json") or "").strip(),
            client_id=str(data.get("client_id", "") or "").strip(),
            client_secret=str(data.get("client_secret", "") or "").strip(),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.calendar_id or self.calendar_name)


@dataclass
class SyncConfig:
    enabled: bool = True
    task_filter: str = DEFAULT_TASK_FILTER
    timezone: str = ""
    interval_seconds: int = 300
    auto_sync: bool = False
    sync_on_startup: bool = False
    lookback_days: int = 30
    lookahead_days: int = 365

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", True)),
            task_filter=str(data.get("task_filter", DEFAULT_TASK_FILTER) or "").strip()
            or DEFAULT_TASK_FILTER,
            timezone=str(data.get("timezone", "") or "").strip(),
            interval_seconds=max(30, int(data.get("interval_seconds", 300))),
            auto_sync=bool(data.get("auto_sync", False)),
            sync_on_startup=bool(data.get("sync_on_startup", False)),
            lookback_days=max(0, int(data.get("lookback_days", 30))),
            lookahead_days=max(1, int(data.get("lookahead_days", 365))),
        )


@dataclass
class AppConfig:
    taskwarrior: TaskwarriorConfig = field(default_factory=TaskwarriorConfig)
    google: GoogleCalendarConfig = field(default_factory=GoogleCalendarConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            taskwarrior=TaskwarriorConfig.from_dict(data.get("taskwarrior")),
            google=GoogleCalendarConfig.from_dict(data.get("google")),
            sync=SyncConfig.from_dict(data.get("sync")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TaskRecord:
    uuid: str
    description: str = ""
    project: str = ""
    tags: list[str] = field(default_factory=list)
    priority: str = ""
    status: str = "pending"
    due: datetime | None = None
    scheduled: datetime | None = None
    entry: datetime | None = None
    modified: datetime | None = None
    end: datetime | None = None
    urgency: float = 0.0

    @classmethod
    def from_export(cls, data: dict[str, Any]) -> "TaskRecord":
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [x for x in tags.split(",") if x]
        return cls(
            uuid=str(data.get("uuid", "")).strip(),
            description=str(data.get("description", "") or ""),
            project=str(data.get("project", "") or ""),
            tags=[str(x) for x in tags],
            priority=str(data.get("priority", "") or "").strip(),
            status=str(data.get("status", "pending") or "pending").strip(),
            due=parse_task_datetime(data.get("due")),
            scheduled=parse_task_datetime(data.get("scheduled")),
            entry=parse_task_datetime(data.get("entry")),
            modified=parse_task_datetime(data.get("modified")),
            end=parse_task_datetime(data.get("end")),
            urgency=float(data.get("urgency", 0.0) or 0.0),
        )

    @property
    def has_date(self) -> bool:
        return self.due is not None or self.scheduled is not None

    @property
    def anchor(self) -> datetime | None:
        return self.due if self.due is not None else self.scheduled

    @property
    def scheduled_not_before_due(self) -> bool:
        if self.due is None or self.scheduled is None:
            return False
        return _ensure_tz(self.scheduled) >= _ensure_tz(self.due)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key in ("due", "scheduled", "entry", "modified", "end"):
            payload[key] = serialize_datetime(getattr(self, key))
        return payload


@dataclass(frozen=True)
class EventTiming:
    all_day_date: date | None = None
    start: datetime | None = None
    end: datetime | None = None

    @property
    def all_day(self) -> bool:
        return self.all_day_date is not None

    def to_api(self) -> tuple[dict[str, str], dict[str, str]]:
        if self.all_day_date is not None:
            day = self.all_day_date.isoformat()
            return {"date": day}, {"date": day}
        return (
            {"dateTime": serialize_datetime(self.start) or ""},
            {"dateTime": serialize_datetime(self.end) or ""},
        )


@dataclass(frozen=True)
class ReminderConfig:
    use_default: bool = True
    override_minutes: int | None = None

    @property
    def has_override(self) -> bool:
        return not self.use_default and self.override_minutes is not None

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> "ReminderConfig":
        if not data:
            return cls(use_default=True)
        overrides = data.get("overrides") or []
        use_default = bool(data.get("useDefault", False))
        if use_default or not overrides:
            return cls(use_default=use_default)
        return cls(use_default=False, override_minutes=int(overrides[0].get("minutes", 0)))

    def to_api(self) -> dict[str, Any]:
        # useDefault is always sent; leaving it out on update keeps the stored value.
        if not self.has_override:
            return {"useDefault": True}
        return {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": int(self.override_minutes or 0)}],
        }


@dataclass(frozen=True)
class DesiredEvent:
    identifier: str
    summary: str
    description: str
    timing: EventTiming
    color_id: str = ""
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    warning: bool = False

    def to_api(self) -> dict[str, Any]:
        start, end = self.timing.to_api()
        body: dict[str, Any] = {
            "summary": self.summary,
            "description": self.description,
            "start": start,
            "end": end,
            "reminders": self.reminders.to_api(),
        }
        if self.color_id:
            body["colorId"] = self.color_id
        return body


@dataclass
class MirroredEvent:
    event_id: str
    summary: str = ""
    description: str = ""
    start: dict[str, Any] = field(default_factory=dict)
    end: dict[str, Any] = field(default_factory=dict)
    color_id: str = ""
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    updated: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "MirroredEvent":
        updated: datetime | None
        try:
            updated = parse_iso_datetime(data.get("updated"))
        except ValueError:
            updated = None
        return cls(
            event_id=str(data.get("id", "")),
            summary=str(data.get("summary", "") or ""),
            description=str(data.get("description", "") or ""),
            start=dict(data.get("start") or {}),
            end=dict(data.get("end") or {}),
            color_id=str(data.get("colorId", "") or ""),
            reminders=ReminderConfig.from_api(data.get("reminders")),
            updated=updated,
            raw=dict(data),
        )

    @property
    def start_date(self) -> str:
        return str(self.start.get("date", "") or "")

    @property
    def start_datetime(self) -> datetime | None:
        raw = self.start.get("dateTime")
        if not raw:
            return None
        try:
            return parse_iso_datetime(str(raw))
        except ValueError:
            return None


@dataclass
class SyncResult:
    status: str
    message: str
    trigger: str
    total: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    unchanged: int = 0
    failed: int = 0
    warnings: list[str] = field(default_factory=list)
    duration_ms: int = 0
    run_id: int | None = None
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def changes_applied(self) -> int:
        return self.created + self.updated + self.deleted

    def summary_line(self) -> str:
        line = (
            f"Sync completed: {self.total} tasks, {self.created} created, {self.updated} updated, "
            f"{self.deleted} deleted, {self.skipped} skipped (no due date)"
        )
        if self.warnings:
            line += f", {len(self.warnings)} warnings (scheduled > due)"
        return line

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "trigger": self.trigger,
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "warnings": list(self.warnings),
            "duration_ms": self.duration_ms,
            "run_id": self.run_id,
            "run_at": serialize_datetime(self.run_at),
        }


def default_app_config() -> AppConfig:
    return AppConfig()


def sync_window(now: datetime, lookback_days: int = 30, lookahead_days: int = 365) -> tuple[datetime, datetime]:
    now_utc = _ensure_tz(now)
    return now_utc - timedelta(days=lookback_days), now_utc + timedelta(days=lookahead_days)
