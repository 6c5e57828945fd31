from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn

from taskmirror.config_manager import ConfigManager, apply_overrides, validate_config
from taskmirror.state_store import StateStore
from taskmirror.sync_engine import SyncEngine

LOG_LEVELS = ("debug", "info", "warning", "error")


def _setup_logging(level_name: str | None = None) -> None:
    level_name = (level_name or os.getenv("TASKMIRROR_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    _setup_logging()
    host = os.getenv("TASKMIRROR_HOST", "127.0.0.1")
    port = int(os.getenv("TASKMIRROR_PORT", "8080"))
    uvicorn.run("taskmirror.web_admin:create_app", factory=True, host=host, port=port, reload=False)


def parse_sync_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="taskmirror-sync",
        description="Mirror Taskwarrior tasks into a Google calendar once and exit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # use config.yaml
  %(prog)s --calendar "Work"                 # override calendar
  %(prog)s --filter "+urgent"                # override filter
  %(prog)s --calendar Tasks --filter due:today
        """,
    )
    parser.add_argument(
        "--config",
        default=os.getenv("TASKMIRROR_CONFIG_PATH", "config.yaml"),
        help="Configuration file path (default: %(default)s)",
    )
    parser.add_argument(
        "--state-db",
        default=os.getenv("TASKMIRROR_STATE_PATH", "data/state.db"),
        help="Run history database path (default: %(default)s)",
    )
    parser.add_argument("--calendar", help="Google calendar name (overrides config)")
    parser.add_argument("--filter", dest="task_filter", help="Taskwarrior filter (overrides config)")
    parser.add_argument("--task-bin", help="Path to the task binary (overrides config)")
    parser.add_argument("--taskrc", help="Path to the taskrc file (overrides config)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Log level (default: TASKMIRROR_LOG_LEVEL or info)")
    return parser.parse_args(argv)


def sync_main(argv: list[str] | None = None) -> int:
    args = parse_sync_arguments(argv)
    _setup_logging(args.log_level)

    config_manager = ConfigManager(args.config)
    config = apply_overrides(
        config_manager.load(),
        calendar_name=args.calendar,
        task_filter=args.task_filter,
        task_bin=args.task_bin,
        taskrc_path=args.taskrc,
    )
    if not config.google.is_configured:
        print("calendar name is required (set google.calendar_name in the config or use --calendar)", file=sys.stderr)
        return 2
    try:
        validate_config(config)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    state_store = StateStore(args.state_db)
    result = SyncEngine(config_manager, state_store).run_once(trigger="cli", config=config)
    if result.status != "success":
        print(f"Sync {result.status}: {result.message}", file=sys.stderr)
        return 1
    for warning in result.warnings:
        print(f"⚠️  WARNING: {warning}")
    print(result.summary_line())
    return 0


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "sync":
        sys.exit(sync_main(sys.argv[2:]))
    main()
