from __future__ import annotations

import copy
import errno
import os
import threading
from pathlib import Path
from typing import Any

import yaml

from taskmirror.models import AppConfig, default_app_config, resolve_timezone

MASK = "***"


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _render(config: AppConfig) -> str:
    return yaml.safe_dump(config.to_dict(), sort_keys=False, allow_unicode=True, default_flow_style=False)


def validate_config(config: AppConfig) -> AppConfig:
    """Reject values that would only fail once a sync is running."""
    resolve_timezone(config.sync.timezone)
    if not config.sync.task_filter:
        raise ValueError("task filter is required (set sync.task_filter or use --filter)")
    if not config.taskwarrior.task_bin:
        raise ValueError("taskwarrior.task_bin must not be empty")
    return config


def apply_overrides(
    config: AppConfig,
    *,
    calendar_name: str | None = None,
    task_filter: str | None = None,
    task_bin: str | None = None,
    taskrc_path: str | None = None,
) -> AppConfig:
    """Return a copy of ``config`` with the non-empty overrides applied.

    A calendar name given here wins over a stored ``calendar_id``.
    """
    overridden = copy.deepcopy(config)
    if calendar_name:
        overridden.google.calendar_name = calendar_name
        overridden.google.calendar_id = ""
    if task_filter:
        overridden.sync.task_filter = task_filter
    if task_bin:
        overridden.taskwarrior.task_bin = task_bin
    if taskrc_path:
        overridden.taskwarrior.taskrc_path = taskrc_path
    return overridden


def expand_paths(config: AppConfig) -> AppConfig:
    expanded = copy.deepcopy(config)
    if expanded.taskwarrior.taskrc_path:
        expanded.taskwarrior.taskrc_path = os.path.expanduser(expanded.taskwarrior.taskrc_path)
    expanded.google.credentials_path = os.path.expanduser(expanded.google.credentials_path)
    expanded.google.token_path = os.path.expanduser(expanded.google.token_path)
    return expanded


class ConfigManager:
    """YAML-backed configuration.

    The file keeps paths as written (``~`` included); ``load`` hands out a
    copy with them expanded.
    """

    def __init__(self, config_path: str | os.PathLike[str]) -> None:
        self.config_path = Path(config_path).expanduser()
        self._lock = threading.RLock()
        if not self.config_path.exists():
            self._write(default_app_config())

    def _read(self) -> AppConfig:
        with self.config_path.open("r", encoding="utf-8") as handle:
            return AppConfig.from_dict(yaml.safe_load(handle) or {})

    def _write(self, config: AppConfig) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        text = _render(config)
        tmp_path = self.config_path.with_name(self.config_path.name + ".tmp")
        tmp_path.write_text(text, encoding="utf-8")
        try:
            tmp_path.replace(self.config_path)
        except OSError as exc:
            # Bind-mounted single files cannot be replaced atomically.
            if exc.errno != errno.EBUSY:
                raise
            self.config_path.write_text(text, encoding="utf-8")
            tmp_path.unlink(missing_ok=True)

    def load(self) -> AppConfig:
        with self._lock:
            return expand_paths(self._read())

    def save(self, config: AppConfig) -> None:
        with self._lock:
            self._write(validate_config(config))

    def update(self, payload: dict[str, Any]) -> AppConfig:
        """Deep-merge ``payload`` into the stored file and return the result.

        Raises ``ValueError`` (nothing is written) for an unknown timezone.
        """
        with self._lock:
            merged = _deep_merge(self._read().to_dict(), payload)
            config = AppConfig.from_dict(merged)
            self.save(config)
            return config

    def masked(self) -> dict[str, Any]:
        with self._lock:
            config = self._read().to_dict()
        if config["google"].get("client_secret"):
            config["google"]["client_secret"] = MASK
        return config
