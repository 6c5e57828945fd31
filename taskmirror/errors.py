from __future__ import annotations


class TaskMirrorError(Exception):
    """Base class for sync failures."""


class TaskSourceError(TaskMirrorError):
    """Exporting tasks from Taskwarrior failed."""


class CalendarStoreError(TaskMirrorError):
    """A Google Calendar API call failed."""


class SyncCancelled(TaskMirrorError):
    """The run was cancelled before a blocking call."""
