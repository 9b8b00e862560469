"""Host service: request validation, error mapping, import and export."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeVar

from routerhosts.errors import (
    CommandError,
    DuplicateEntry,
    ServiceError,
    StatusCode,
    ValidationFailed,
    to_status,
)
from routerhosts.ids import InvalidIdError, parse_ulid
from routerhosts.models import ConflictMode, ParsedEntry
from routerhosts.write_queue import WriteQueue

logger = logging.getLogger(__name__)

MAX_IMPORT_SIZE = 10 * 1024 * 1024
"""Largest accepted import payload in bytes (10 MiB)."""

MAX_CHUNKS = 10_000
"""Largest number of chunks accepted in one import stream."""

_SUPPORTED_FORMATS = "hosts, json, csv"

_E = TypeVar("_E", bound=Enum)


def _parse_format(enum_cls: type[_E], text: str) -> _E:
    try:
        return enum_cls(text.lower())
    except ValueError:
        raise ValueError(
            f"Invalid format '{text}'. Supported: {_SUPPORTED_FORMATS}"
        ) from None


class ImportFormat(Enum):
    """Formats accepted by an import."""

    HOSTS = "hosts"
    JSON = "json"
    CSV = "csv"

    @classmethod
    def parse(cls, text: str) -> ImportFormat:
        """Parse a format name case-insensitively."""
        return _parse_format(cls, text)


class ExportFormat(Enum):
    """Formats produced by an export."""

    HOSTS = "hosts"
    JSON = "json"
    CSV = "csv"

    @classmethod
    def parse(cls, text: str) -> ExportFormat:
        """Parse a format name case-insensitively."""
        return _parse_format(cls, text)


@dataclass
class ImportChunk:
    """One message of an import stream.

    ``format`` and ``conflict_mode`` are taken from the first chunk that
    carries them; ``last_chunk`` ends the stream.
    """

    chunk: bytes = b""
    last_chunk: bool = False
    format: str | None = None
    conflict_mode: str | None = None


@dataclass
class ImportSummary:
    """Counters reported to the client after an import."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    error: str | None = None
    validation_errors: list[str] = field(default_factory=list)


class HostReader(Protocol):
    """Read operations that bypass the write queue."""

    async def get_host(self, host_id: str) -> Any | None: ...

    async def list_hosts(self) -> Sequence[Any]: ...

    async def search_hosts(self, query: str) -> Sequence[Any]: ...


class Exporter(Protocol):
    """Renders host entries as export chunks."""

    def hosts_header(self, count: int) -> bytes: ...

    def hosts_entry(self, entry: Any) -> bytes: ...

    def json_entry(self, entry: Any) -> bytes: ...

    def csv_header(self) -> bytes: ...

    def csv_entry(self, entry: Any) -> bytes: ...


ImportParser = Callable[[bytes, ImportFormat], list[ParsedEntry]]


def _invalid(message: str) -> ServiceError:
    return ServiceError(StatusCode.INVALID_ARGUMENT, message)


def _parse_id(text: str) -> str:
    try:
        return parse_ulid(text)
    except InvalidIdError as exc:
        raise _invalid(f"Invalid ID format: {exc}") from exc


async def _iterate(
    chunks: Iterable[ImportChunk] | AsyncIterable[ImportChunk],
) -> AsyncIterator[ImportChunk]:
    if isinstance(chunks, AsyncIterable):
        async for chunk in chunks:
            yield chunk
    else:
        for chunk in chunks:
            yield chunk


class HostsService:
    """Client-facing host operations.

    Mutations go through the write queue; reads go to ``commands`` directly.
    ``list_all`` returns every entry for export, ``parse_import`` turns raw
    import data into entries (raising ``ValueError`` on malformed data) and
    ``exporter`` renders entries. Failures are raised as :class:`ServiceError`.
    """

    def __init__(
        self,
        write_queue: WriteQueue,
        commands: HostReader,
        list_all: Callable[[], Sequence[Any]],
        parse_import: ImportParser,
        exporter: Exporter,
    ) -> None:
        self.write_queue = write_queue
        self.commands = commands
        self.list_all = list_all
        self.parse_import = parse_import
        self.exporter = exporter

    async def add_host(
        self,
        ip_address: str,
        hostname: str,
        comment: str | None = None,
        tags: list[str] | None = None,
    ) -> Any:
        """Create a host entry and return it."""
        try:
            return await self.write_queue.add_host(
                ip_address, hostname, comment, list(tags or [])
            )
        except CommandError as exc:
            raise to_status(exc) from exc

    async def get_host(self, host_id: str) -> Any:
        """Return the entry with the given ID."""
        canonical = _parse_id(host_id)
        try:
            entry = await self.commands.get_host(canonical)
        except CommandError as exc:
            raise to_status(exc) from exc
        if entry is None:
            raise ServiceError(StatusCode.NOT_FOUND, f"Host {host_id} not found")
        return entry

    async def update_host(
        self,
        host_id: str,
        ip_address: str | None = None,
        hostname: str | None = None,
        comment: str | None = None,
        tags: list[str] | None = None,
        expected_version: str | None = None,
    ) -> Any:
        """Update an entry and return it.

        ``None`` leaves a field unchanged, an empty comment clears the comment
        and an empty tag list leaves the tags unchanged.
        """
        canonical = _parse_id(host_id)
        new_tags = list(tags) if tags else None
        try:
            return await self.write_queue.update_host(
                canonical, ip_address, hostname, comment, new_tags, expected_version
            )
        except CommandError as exc:
            raise to_status(exc) from exc

    async def delete_host(self, host_id: str) -> bool:
        """Delete an entry; returns True on success."""
        canonical = _parse_id(host_id)
        try:
            await self.write_queue.delete_host(canonical, None)
        except CommandError as exc:
            raise to_status(exc) from exc
        return True

    async def list_hosts(self) -> list[Any]:
        """Return every host entry."""
        try:
            return list(await self.commands.list_hosts())
        except CommandError as exc:
            raise to_status(exc) from exc

    async def search_hosts(self, query: str) -> list[Any]:
        """Return the entries matching ``query``."""
        try:
            return list(await self.commands.search_hosts(query))
        except CommandError as exc:
            raise to_status(exc) from exc

    async def import_hosts(
        self, chunks: Iterable[ImportChunk] | AsyncIterable[ImportChunk]
    ) -> ImportSummary:
        """Collect an import stream, parse it and import it through the queue."""
        data = bytearray()
        format_name: str | None = None
        conflict_name: str | None = None
        count = 0

        async with aclosing(_iterate(chunks)) as stream:
            async for chunk in stream:
                count += 1
                if count > MAX_CHUNKS:
                    raise ServiceError(
                        StatusCode.RESOURCE_EXHAUSTED,
                        f"Import stream exceeds maximum chunk count of {MAX_CHUNKS}",
                    )
                if len(data) + len(chunk.chunk) > MAX_IMPORT_SIZE:
                    raise ServiceError(
                        StatusCode.RESOURCE_EXHAUSTED,
                        f"Import data exceeds maximum size of {MAX_IMPORT_SIZE} bytes",
                    )
                data.extend(chunk.chunk)
                if format_name is None and chunk.format is not None:
                    format_name = chunk.format
                if conflict_name is None and chunk.conflict_mode is not None:
                    conflict_name = chunk.conflict_mode
                if chunk.last_chunk:
                    break

        try:
            import_format = ImportFormat.parse(format_name or "")
        except ValueError as exc:
            raise _invalid(
                f"Invalid format '{format_name or ''}'. Supported: {_SUPPORTED_FORMATS}"
            ) from exc

        try:
            mode = ConflictMode.parse(conflict_name or "")
        except ValueError as exc:
            raise _invalid(str(exc)) from exc

        try:
            entries = self.parse_import(bytes(data), import_format)
        except ValueError as exc:
            raise _invalid(f"Parse error: {exc}") from exc

        try:
            result = await self.write_queue.import_hosts(entries, mode)
        except DuplicateEntry as exc:
            raise ServiceError(StatusCode.ALREADY_EXISTS, exc.message) from exc
        except ValidationFailed as exc:
            raise _invalid(exc.message) from exc
        except CommandError as exc:
            raise ServiceError(StatusCode.INTERNAL, str(exc)) from exc

        return ImportSummary(
            processed=result.processed,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
            error=None,
            validation_errors=list(result.validation_errors),
        )

    async def export_hosts(self, format_name: str) -> list[bytes]:
        """Render every entry as a list of chunks, header first where the format has one."""
        try:
            export_format = ExportFormat.parse(format_name)
        except ValueError as exc:
            raise _invalid(
                f"Invalid format '{format_name}'. Supported: {_SUPPORTED_FORMATS}"
            ) from exc

        try:
            entries = list(self.list_all())
        except Exception as exc:  # any storage failure is reported as internal
            raise ServiceError(
                StatusCode.INTERNAL, f"Failed to query hosts: {exc}"
            ) from exc

        chunks: list[bytes] = []
        match export_format:
            case ExportFormat.HOSTS:
                chunks.append(self.exporter.hosts_header(len(entries)))
            case ExportFormat.CSV:
                chunks.append(self.exporter.csv_header())
            case ExportFormat.JSON:
                pass

        for entry in entries:
            match export_format:
                case ExportFormat.HOSTS:
                    chunks.append(self.exporter.hosts_entry(entry))
                case ExportFormat.CSV:
                    chunks.append(self.exporter.csv_entry(entry))
                case ExportFormat.JSON:
                    try:
                        chunks.append(self.exporter.json_entry(entry))
                    except (TypeError, ValueError) as exc:
                        raise ServiceError(
                            StatusCode.INTERNAL, f"Failed to format entry: {exc}"
                        ) from exc
        return chunks