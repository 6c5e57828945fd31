import unittest

from taskmirror.correspondence import build_correspondence_index
from taskmirror.identifier import UNMANAGED, Managed
from taskmirror.models import MirroredEvent


def _event(event_id: str, description: str, updated: str | None = None) -> MirroredEvent:
    payload = {"id": event_id, "description": description}
    if updated:
        payload["updated"] = updated
    return MirroredEvent.from_api(payload)


class CorrespondenceIndexTests(unittest.TestCase):
    def test_foreign_events_are_dropped(self) -> None:
        index = build_correspondence_index(
            [
                _event("e1", "Identifier: u1\n\nStatus: pending"),
                _event("e2", "Team lunch"),
                _event("e3", ""),
            ]
        )
        self.assertEqual(len(index), 1)
        self.assertEqual(index.get("u1").event_id, "e1")
        self.assertIsNone(index.get("e2"))
        self.assertEqual(index.foreign_count, 2)

    def test_duplicate_prefers_most_recently_updated(self) -> None:
        index = build_correspondence_index(
            [
                _event("new", "Identifier: u1", "2025-11-02T10:00:00.000Z"),
                _event("old", "Identifier: u1", "2025-11-01T10:00:00.000Z"),
            ]
        )
        self.assertEqual(index.get("u1").event_id, "new")
        self.assertEqual([e.event_id for e in index.duplicates["u1"]], ["old"])

    def test_duplicate_tie_goes_to_later_listing(self) -> None:
        index = build_correspondence_index(
            [_event("first", "Identifier: u1"), _event("second", "Identifier: u1")]
        )
        self.assertEqual(index.get("u1").event_id, "second")
        self.assertIn("u1", index)

    def test_custom_parser_is_used(self) -> None:
        class _PropertyParser:
            def parse(self, event: MirroredEvent) -> object:
                if event.event_id.startswith("managed-"):
                    return Managed(event.event_id.removeprefix("managed-"))
                return UNMANAGED

        index = build_correspondence_index(
            [_event("managed-u9", "no text marker"), _event("other", "Identifier: u1")],
            parser=_PropertyParser(),
        )
        self.assertEqual(list(index.events), ["u9"])
        self.assertIsNone(index.get("u9").updated)


if __name__ == "__main__":
    unittest.main()
