from __future__ import annotations

import json
import logging
import os
import subprocess

from taskmirror.errors import TaskSourceError
from taskmirror.models import TaskRecord, TaskwarriorConfig

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 500


def parse_export(raw: str | bytes) -> list[TaskRecord]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = raw.strip()
    if not text:
        return []
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TaskSourceError(f"failed to parse task JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise TaskSourceError("failed to parse task JSON: expected a list of tasks")
    tasks: list[TaskRecord] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            task = TaskRecord.from_export(item)
        except ValueError as exc:
            raise TaskSourceError(f"failed to parse task {item.get('uuid', '?')}: {exc}") from exc
        if task.uuid:
            tasks.append(task)
    return tasks


class TaskwarriorClient:
    def __init__(self, config: TaskwarriorConfig) -> None:
        if not config.task_bin:
            raise ValueError("task binary path cannot be empty")
        self.config = config

    def _env(self) -> dict[str, str] | None:
        if not self.config.taskrc_path:
            return None
        env = dict(os.environ)
        env["TASKRC"] = os.path.expanduser(self.config.taskrc_path)
        return env

    def _run(self, args: list[str]) -> str:
        command = [self.config.task_bin, *args]
        logger.debug("Executing taskwarrior command args=%s taskrc=%s", args, self.config.taskrc_path)
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                env=self._env(),
                check=False,
            )
        except OSError as exc:
            raise TaskSourceError(f"failed to run {self.config.task_bin}: {exc}") from exc
        stderr = (completed.stderr or "").strip()
        if stderr:
            logger.debug("Taskwarrior stderr output: %s", stderr)
        if completed.returncode != 0:
            raise TaskSourceError(f"exit status {completed.returncode}: {stderr}")
        return completed.stdout or ""

    def export(self, task_filter: str = "") -> list[TaskRecord]:
        """Return the tasks matching ``task_filter`` in Taskwarrior's order.

        The filter is split on whitespace and passed through unchanged.
        """
        args = [*task_filter.split(), "export"]
        try:
            output = self._run(args)
        except TaskSourceError as exc:
            logger.error("Failed to export tasks filter=%r error=%s", task_filter, exc)
            raise TaskSourceError(f"failed to export tasks: {exc}") from exc
        try:
            tasks = parse_export(output)
        except TaskSourceError:
            logger.error("Failed to parse task JSON output_preview=%r", output[:_PREVIEW_CHARS])
            raise
        logger.info("Successfully exported tasks count=%d", len(tasks))
        return tasks
