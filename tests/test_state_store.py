import tempfile
import unittest
from pathlib import Path

from taskmirror.models import SyncResult
from taskmirror.state_store import StateStore


class StateStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = StateStore(str(Path(self.temp_dir.name) / "data" / "state.db"))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_sync_run_lifecycle(self) -> None:
        run_id = self.store.start_sync_run(trigger="manual")
        self.assertEqual(self.store.recent_sync_runs()[0]["status"], "running")

        result = SyncResult(
            status="success",
            message="done",
            trigger="manual",
            total=5,
            created=2,
            updated=1,
            deleted=1,
            skipped=1,
            warnings=["Task 'x' has scheduled time (a) after due time (b)"],
            duration_ms=12,
        )
        self.store.finish_sync_run(run_id=run_id, result=result)

        row = self.store.recent_sync_runs(limit=1)[0]
        self.assertEqual(row["id"], run_id)
        self.assertEqual(row["status"], "success")
        self.assertEqual((row["total"], row["created"], row["updated"], row["deleted"], row["skipped"]), (5, 2, 1, 1, 1))
        self.assertEqual(len(row["warnings"]), 1)

    def test_audit_events_filter_by_run(self) -> None:
        self.store.record_audit_event(task_uuid="u1", action="create_event", details={"a": 1}, event_id="e1", run_id=1)
        self.store.record_audit_event(task_uuid="u2", action="delete_event", details={}, run_id=2)

        rows = self.store.recent_audit_events(run_id=1)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["event_id"], "e1")
        self.assertEqual(rows[0]["details"], {"a": 1})
        self.assertEqual([r["task_uuid"] for r in self.store.recent_audit_events()], ["u2", "u1"])


if __name__ == "__main__":
    unittest.main()
