"""Data passed through the write queue and the command handler contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class ConflictMode(Enum):
    """How an import treats entries that already exist."""

    SKIP = "skip"
    REPLACE = "replace"
    STRICT = "strict"

    @classmethod
    def parse(cls, text: str) -> ConflictMode:
        """Parse a mode name case-insensitively; an empty name means SKIP."""
        lowered = text.lower()
        if lowered == "":
            return cls.SKIP
        try:
            return cls(lowered)
        except ValueError:
            raise ValueError(f"Invalid conflict mode: '{lowered}'") from None


@dataclass
class ParsedEntry:
    """One host entry read from import data."""

    ip_address: str
    hostname: str
    comment: str | None = None
    tags: list[str] = field(default_factory=list)
    line_number: int = 0


@dataclass
class ImportResult:
    """Counters describing the outcome of an import."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    validation_errors: list[str] = field(default_factory=list)


@runtime_checkable
class WriteHandler(Protocol):
    """The command handler that executes queued mutations.

    For ``update_host`` a ``None`` argument leaves the field unchanged; an
    empty comment string clears the comment.
    """

    async def add_host(
        self,
        ip_address: str,
        hostname: str,
        comment: str | None,
        tags: list[str],
    ) -> Any: ...

    async def update_host(
        self,
        host_id: str,
        ip_address: str | None,
        hostname: str | None,
        comment: str | None,
        tags: list[str] | None,
        expected_version: str | None,
    ) -> Any: ...

    async def delete_host(self, host_id: str, reason: str | None) -> None: ...

    async def import_hosts(
        self, entries: list[ParsedEntry], conflict_mode: ConflictMode
    ) -> ImportResult: ...