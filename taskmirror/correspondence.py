from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from taskmirror.identifier import DescriptionIdentifierParser, IdentifierParser, Managed
from taskmirror.models import MirroredEvent

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _updated_key(event: MirroredEvent) -> datetime:
    return event.updated or _EPOCH


@dataclass
class CorrespondenceIndex:
    events: dict[str, MirroredEvent] = field(default_factory=dict)
    duplicates: dict[str, list[MirroredEvent]] = field(default_factory=dict)
    foreign_count: int = 0

    def get(self, identifier: str) -> MirroredEvent | None:
        return self.events.get(identifier)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.events

    def __len__(self) -> int:
        return len(self.events)


def build_correspondence_index(
    events: Iterable[MirroredEvent],
    parser: IdentifierParser | None = None,
) -> CorrespondenceIndex:
    """Index managed events by their embedded task uuid.

    Events without an identifier are counted and dropped. When two events
    carry the same identifier the most recently updated one wins, ties go
    to the one listed later; the others are kept in ``duplicates``.
    """
    parser = parser or DescriptionIdentifierParser()
    index = CorrespondenceIndex()
    for event in events:
        ownership = parser.parse(event)
        if not isinstance(ownership, Managed):
            index.foreign_count += 1
            continue
        identifier = ownership.identifier
        current = index.events.get(identifier)
        if current is None:
            index.events[identifier] = event
            continue
        if _updated_key(event) >= _updated_key(current):
            index.events[identifier] = event
            index.duplicates.setdefault(identifier, []).append(current)
        else:
            index.duplicates.setdefault(identifier, []).append(event)
    return index
