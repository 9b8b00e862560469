"""Serialisation of mutating operations through a single background worker.

All writes (add, update, delete, import) pass through one bounded queue and
run one at a time, in the order they were queued. This keeps duplicate
detection and hosts file regeneration free of races. Reads do not go through
the queue.

When the queue is full, callers wait for room instead of failing. Once the
queue is closed, new operations fail with :class:`InternalError`. Each
operation has a timeout. When it expires the caller gets an error, and the
worker goes on with the commands behind it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from routerhosts.errors import InternalError
from routerhosts.models import ConflictMode, ImportResult, ParsedEntry, WriteHandler

logger = logging.getLogger(__name__)

QUEUE_CAPACITY = 100
DEFAULT_OPERATION_TIMEOUT = 30.0
IMPORT_TIMEOUT = 300.0

_CLOSED_MESSAGE = "Write queue closed - server may be shutting down"
_DROPPED_MESSAGE = "Write worker dropped reply channel unexpectedly"


@dataclass
class _Command:
    name: str
    operation: Callable[[WriteHandler], Awaitable[Any]]
    reply: asyncio.Future[Any]
    details: dict[str, Any] = field(default_factory=dict)


class WriteQueue:
    """Queue that runs write operations one at a time on a background worker."""

    operation_timeout: float = DEFAULT_OPERATION_TIMEOUT
    import_timeout: float = IMPORT_TIMEOUT

    def __init__(self, handler: WriteHandler, capacity: int = QUEUE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("queue capacity must be at least 1")
        self._handler = handler
        self._capacity = capacity
        self._queue: asyncio.Queue[_Command | None] = asyncio.Queue(maxsize=capacity)
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def capacity(self) -> int:
        """Number of commands that can wait before callers block."""
        return self._capacity

    @property
    def closed(self) -> bool:
        """Whether the queue no longer accepts commands."""
        return self._closed

    def start(self) -> None:
        """Start the worker task; calling it again has no effect."""
        if self._worker is not None or self._closed:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.info("Write queue initialized (capacity=%d)", self._capacity)

    async def close(self) -> None:
        """Stop accepting commands, finish the queued ones and stop the worker."""
        if self._closed:
            if self._worker is not None:
                await self._worker
            return
        self._closed = True
        if self._worker is None:
            return
        await self._queue.put(None)
        await self._worker

    async def __aenter__(self) -> WriteQueue:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def add_host(
        self,
        ip_address: str,
        hostname: str,
        comment: str | None = None,
        tags: list[str] | None = None,
    ) -> Any:
        """Queue the creation of a host entry and return the created entry."""
        tag_list = list(tags or [])
        logger.debug("Queueing add_host ip=%s hostname=%s", ip_address, hostname)
        return await self._submit(
            "add_host",
            lambda handler: handler.add_host(ip_address, hostname, comment, tag_list),
            self.operation_timeout,
            f"Operation timed out after {self.operation_timeout:g} seconds",
            ip=ip_address,
            hostname=hostname,
        )

    async def update_host(
        self,
        host_id: str,
        ip_address: str | None = None,
        hostname: str | None = None,
        comment: str | None = None,
        tags: list[str] | None = None,
        expected_version: str | None = None,
    ) -> Any:
        """Queue an update of a host entry and return the updated entry."""
        logger.debug("Queueing update_host id=%s", host_id)
        return await self._submit(
            "update_host",
            lambda handler: handler.update_host(
                host_id, ip_address, hostname, comment, tags, expected_version
            ),
            self.operation_timeout,
            f"Operation timed out after {self.operation_timeout:g} seconds",
            id=host_id,
        )

    async def delete_host(self, host_id: str, reason: str | None = None) -> None:
        """Queue the deletion of a host entry."""
        logger.debug("Queueing delete_host id=%s", host_id)
        await self._submit(
            "delete_host",
            lambda handler: handler.delete_host(host_id, reason),
            self.operation_timeout,
            f"Operation timed out after {self.operation_timeout:g} seconds",
            id=host_id,
        )

    async def import_hosts(
        self,
        entries: list[ParsedEntry],
        conflict_mode: ConflictMode = ConflictMode.SKIP,
    ) -> ImportResult:
        """Queue an import of parsed entries and return its counters.

        The longer import timeout covers the import itself, not the time spent
        waiting behind earlier commands to get into the queue.
        """
        batch = list(entries)
        count = len(batch)
        logger.debug("Queueing import_hosts entries=%d mode=%s", count, conflict_mode)
        return await self._submit(
            "import_hosts",
            lambda handler: handler.import_hosts(batch, conflict_mode),
            self.import_timeout,
            f"Import operation timed out after {self.import_timeout:g} seconds "
            f"({count} entries)",
            entry_count=count,
        )

    async def _submit(
        self,
        name: str,
        operation: Callable[[WriteHandler], Awaitable[Any]],
        timeout: float,
        timeout_message: str,
        **details: Any,
    ) -> Any:
        if self._closed:
            logger.warning("Failed to queue %s: queue closed", name)
            raise InternalError(_CLOSED_MESSAGE)
        self.start()
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._queue.put(_Command(name, operation, reply, details))
        try:
            return await asyncio.wait_for(reply, timeout)
        except TimeoutError:
            logger.warning("%s timed out after %gs (%s)", name, timeout, details)
            raise InternalError(timeout_message) from None

    async def _run(self) -> None:
        processed = 0
        current: _Command | None = None
        try:
            while True:
                current = await self._queue.get()
                if current is None:
                    break
                processed += 1
                await self._execute(current, processed)
                current = None
        finally:
            if current is not None and not current.reply.done():
                current.reply.set_exception(InternalError(_DROPPED_MESSAGE))
            self._drain()
            logger.info("Write worker shutting down (processed=%d)", processed)

    async def _execute(self, command: _Command, processed: int) -> None:
        logger.debug("Processing %s #%d %s", command.name, processed, command.details)
        started = time.monotonic()
        try:
            result = await command.operation(self._handler)
        except Exception as exc:  # the failure belongs to the caller
            success = False
            outcome: tuple[bool, Any] = (False, exc)
        else:
            success = True
            outcome = (True, result)
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.debug(
            "%s completed in %.1fms success=%s", command.name, elapsed_ms, success
        )
        if command.reply.done():
            logger.warning(
                "%s: client disconnected before receiving reply", command.name
            )
            return
        ok, value = outcome
        if ok:
            command.reply.set_result(value)
        else:
            command.reply.set_exception(value)

    def _drain(self) -> None:
        self._closed = True
        while True:
            try:
                leftover = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            if leftover is not None and not leftover.reply.done():
                leftover.reply.set_exception(InternalError(_CLOSED_MESSAGE))