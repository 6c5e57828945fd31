import errno
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from taskmirror.config_manager import ConfigManager, apply_overrides
from taskmirror.models import AppConfig


class ConfigManagerTests(unittest.TestCase):
    def test_creates_default_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "nested" / "config.yaml"
            manager = ConfigManager(str(config_path))
            self.assertTrue(config_path.exists())
            config = manager.load()
            self.assertEqual(config.taskwarrior.task_bin, "task")
            self.assertEqual(config.sync.task_filter, "status:pending or status:completed")
            self.assertFalse(config.google.is_configured)

    def test_save_fallback_when_replace_ebusy(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.yaml"
            manager = ConfigManager(str(config_path))
            config = AppConfig.from_dict(
                {
                    "google": {"calendar_name": "Tasks", "client_id": "cid", "client_secret": "shh"},
                    "taskwarrior": {"task_bin": "/usr/local/bin/task"},
                }
            )

            original_replace = Path.replace

            def replace_side_effect(self: Path, target: Path) -> Path:
                if str(self).endswith(".tmp"):
                    raise OSError(errno.EBUSY, "Device or resource busy")
                return original_replace(self, target)

            with mock.patch("pathlib.Path.replace", new=replace_side_effect):
                manager.save(config)

            self.assertTrue(config_path.exists())
            self.assertFalse(config_path.with_suffix(".yaml.tmp").exists())
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            self.assertEqual(data["google"]["calendar_name"], "Tasks")
            self.assertEqual(data["taskwarrior"]["task_bin"], "/usr/local/bin/task")

    def test_update_deep_merges(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            manager = ConfigManager(str(Path(temp_dir) / "config.yaml"))
            manager.update({"google": {"calendar_name": "Tasks"}, "sync": {"timezone": "Europe/Rome"}})
            config = manager.update({"sync": {"interval_seconds": 5}})
            self.assertEqual(config.google.calendar_name, "Tasks")
            self.assertEqual(config.sync.timezone, "Europe/Rome")
            self.assertEqual(config.sync.interval_seconds, 30)

    def test_masked_hides_client_secret(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            manager = ConfigManager(str(Path(temp_dir) / "config.yaml"))
            manager.update({"google": {"client_secret": "shh"}})
            self.assertEqual(manager.masked()["google"]["client_secret"], "***")
            self.assertEqual(manager.load().google.client_secret, "shh")

    def test_update_rejects_unknown_timezone_without_writing(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.yaml"
            manager = ConfigManager(str(config_path))
            manager.update({"sync": {"timezone": "Europe/Rome"}})
            before = config_path.read_text(encoding="utf-8")

            with self.assertRaises(ValueError):
                manager.update({"sync": {"timezone": "Mars/Olympus"}})

            self.assertEqual(config_path.read_text(encoding="utf-8"), before)
            self.assertEqual(manager.load().sync.timezone, "Europe/Rome")

    def test_load_expands_home_but_file_keeps_tilde(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.yaml"
            manager = ConfigManager(str(config_path))
            manager.update({"taskwarrior": {"taskrc_path": "~/.taskrc"}})

            config = manager.load()

            self.assertEqual(config.taskwarrior.taskrc_path, str(Path.home() / ".taskrc"))
            self.assertFalse(config.google.token_path.startswith("~"))
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            self.assertEqual(data["taskwarrior"]["taskrc_path"], "~/.taskrc")

    def test_enabled_flag_round_trips(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            manager = ConfigManager(str(Path(temp_dir) / "config.yaml"))
            self.assertTrue(manager.load().sync.enabled)
            manager.update({"sync": {"enabled": False}})
            self.assertFalse(manager.load().sync.enabled)


class ApplyOverridesTests(unittest.TestCase):
    def test_overrides_replace_only_given_values(self) -> None:
        config = AppConfig.from_dict(
            {
                "google": {"calendar_name": "Tasks", "calendar_id": "abc"},
                "taskwarrior": {"task_bin": "task", "taskrc_path": "/etc/taskrc"},
            }
        )

        overridden = apply_overrides(config, calendar_name="Work", task_filter="+urgent", task_bin="")

        self.assertEqual(overridden.google.calendar_name, "Work")
        self.assertEqual(overridden.google.calendar_id, "")
        self.assertEqual(overridden.sync.task_filter, "+urgent")
        self.assertEqual(overridden.taskwarrior.task_bin, "task")
        self.assertEqual(overridden.taskwarrior.taskrc_path, "/etc/taskrc")
        self.assertEqual(config.google.calendar_id, "abc")


if __name__ == "__main__":
    unittest.main()
