from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union

from taskmirror.models import MirroredEvent

IDENTIFIER_PREFIX = "Identifier: "
STATUS_MARKER = "Status: "


@dataclass(frozen=True)
class Managed:
    identifier: str


@dataclass(frozen=True)
class Unmanaged:
    pass


EventOwnership = Union[Managed, Unmanaged]
UNMANAGED = Unmanaged()


def embed_identifier(uuid: str) -> str:
    return f"{IDENTIFIER_PREFIX}{uuid}"


def _line_value(text: str, marker: str) -> str | None:
    if not text:
        return None
    idx = text.find(marker)
    if idx < 0:
        return None
    start = idx + len(marker)
    end = text.find("\n", start)
    if end < 0:
        return text[start:].strip()
    return text[start:end].strip()


def extract_identifier(description: str) -> str:
    """Return the uuid from the first ``Identifier:`` line, or ``""``."""
    return _line_value(description, IDENTIFIER_PREFIX) or ""


def extract_status(description: str) -> str | None:
    """Return the value of the last line starting with ``Status: ``.

    Only whole lines count, so a project or tag containing the marker does
    not shadow the status line. ``None`` when absent.
    """
    for line in reversed((description or "").splitlines()):
        if line.startswith(STATUS_MARKER):
            return line[len(STATUS_MARKER):].strip()
    return None


class IdentifierParser(Protocol):
    def parse(self, event: MirroredEvent) -> EventOwnership:
        ...


class DescriptionIdentifierParser:
    """Reads ownership from the ``Identifier:`` line in the event description."""

    def parse(self, event: MirroredEvent) -> EventOwnership:
        identifier = extract_identifier(event.description)
        if not identifier:
            return UNMANAGED
        return Managed(identifier)
