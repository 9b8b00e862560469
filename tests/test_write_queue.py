import asyncio
import uuid
from dataclasses import dataclass, field

import pytest

from routerhosts.errors import DuplicateEntry, InternalError, NotFound
from routerhosts.models import ConflictMode, ImportResult, ParsedEntry
from routerhosts.write_queue import QUEUE_CAPACITY, WriteQueue


@dataclass
class Host:
    id: str
    ip_address: str
    hostname: str
    comment: str | None
    tags: list[str] = field(default_factory=list)
    version: int = 1


class FakeHandler:
    """In-memory handler that yields between its check and its write."""

    def __init__(self):
        self.hosts: dict[str, Host] = {}
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    def _find(self, ip, hostname):
        for host in self.hosts.values():
            if host.ip_address == ip and host.hostname == hostname:
                return host
        return None

    async def add_host(self, ip_address, hostname, comment, tags):
        self.calls.append(hostname)
        if hostname == "slow" and self.gate is not None:
            await self.gate.wait()
        if self._find(ip_address, hostname) is not None:
            raise DuplicateEntry(f"{ip_address} {hostname}")
        await asyncio.sleep(0)
        host = Host(str(uuid.uuid4()), ip_address, hostname, comment, list(tags))
        self.hosts[host.id] = host
        return host

    async def update_host(
        self, host_id, ip_address, hostname, comment, tags, expected_version
    ):
        host = self.hosts.get(host_id)
        if host is None:
            raise NotFound(f"Host {host_id} not found")
        if ip_address is not None:
            host.ip_address = ip_address
        if hostname is not None:
            host.hostname = hostname
        if comment is not None:
            host.comment = comment or None
        if tags is not None:
            host.tags = list(tags)
        host.version += 1
        return host

    async def delete_host(self, host_id, reason):
        if self.hosts.pop(host_id, None) is None:
            raise NotFound(f"Host {host_id} not found")

    async def import_hosts(self, entries, conflict_mode):
        if self.gate is not None:
            await self.gate.wait()
        result = ImportResult()
        for entry in entries:
            result.processed += 1
            existing = self._find(entry.ip_address, entry.hostname)
            await asyncio.sleep(0)
            if existing is None:
                host = Host(
                    str(uuid.uuid4()),
                    entry.ip_address,
                    entry.hostname,
                    entry.comment,
                    list(entry.tags),
                )
                self.hosts[host.id] = host
                result.created += 1
            elif conflict_mode is ConflictMode.SKIP:
                result.skipped += 1
            elif conflict_mode is ConflictMode.REPLACE:
                existing.comment = entry.comment
                existing.tags = list(entry.tags)
                result.updated += 1
            else:
                raise DuplicateEntry(f"{entry.ip_address} {entry.hostname}")
        return result


def batch(prefix, name, count, tag, comment=None):
    return [
        ParsedEntry(
            ip_address=f"{prefix}.{i}",
            hostname=f"{name}{i}.local",
            comment=comment or f"{name} {i}",
            tags=[tag],
            line_number=i + 1,
        )
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_concurrent_add_host_operations():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        results = await asyncio.gather(
            *(
                queue.add_host(f"192.168.1.{i}", f"host{i}.local", f"Host {i}", [])
                for i in range(20)
            ),
            return_exceptions=True,
        )
    successes = [r for r in results if isinstance(r, Host)]
    assert len(successes) == 20
    assert len(handler.hosts) == 20
    assert len({h.ip_address for h in handler.hosts.values()}) == 20


@pytest.mark.asyncio
async def test_queue_serializes_duplicate_detection():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        results = await asyncio.gather(
            queue.add_host("192.168.1.1", "same.local", None, []),
            queue.add_host("192.168.1.1", "same.local", None, []),
            return_exceptions=True,
        )
    successes = [r for r in results if isinstance(r, Host)]
    duplicates = [r for r in results if isinstance(r, DuplicateEntry)]
    assert len(successes) == 1
    assert len(duplicates) == 1
    assert len(handler.hosts) == 1


@pytest.mark.asyncio
async def test_concurrent_import_operations():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        import1, import2 = await asyncio.gather(
            queue.import_hosts(batch("10.0.0", "batch1-host", 10, "batch1"), ConflictMode.SKIP),
            queue.import_hosts(batch("10.0.1", "batch2-host", 10, "batch2"), ConflictMode.SKIP),
        )
    assert import1.processed == 10
    assert import1.created == 10
    assert import2.processed == 10
    assert import2.created == 10
    hosts = list(handler.hosts.values())
    assert len(hosts) == 20
    assert sum("batch1" in h.tags for h in hosts) == 10
    assert sum("batch2" in h.tags for h in hosts) == 10


@pytest.mark.asyncio
async def test_concurrent_imports_with_overlapping_entries():
    handler = FakeHandler()
    entries1 = batch("10.0.0", "shared-host", 5, "batch1", "From batch 1")
    entries2 = batch("10.0.0", "shared-host", 5, "batch2", "From batch 2")
    async with WriteQueue(handler) as queue:
        import1, import2 = await asyncio.gather(
            queue.import_hosts(entries1, ConflictMode.SKIP),
            queue.import_hosts(entries2, ConflictMode.SKIP),
        )
    assert import1.created + import2.created == 5
    assert import1.skipped + import2.skipped == 5
    assert len(handler.hosts) == 5


@pytest.mark.asyncio
async def test_backpressure_with_high_concurrency():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        results = await asyncio.gather(
            *(
                queue.add_host(
                    f"192.168.{i // 256}.{i % 256}",
                    f"host{i}.local",
                    f"Host {i}",
                    [f"batch{i // 50}"],
                )
                for i in range(150)
            ),
            return_exceptions=True,
        )
    failures = [r for r in results if isinstance(r, BaseException)]
    assert failures == []
    assert len(handler.hosts) == 150


@pytest.mark.asyncio
async def test_tiny_capacity_still_completes_everything():
    handler = FakeHandler()
    async with WriteQueue(handler, 1) as queue:
        results = await asyncio.gather(
            *(queue.add_host(f"10.9.0.{i}", f"h{i}.local", None, []) for i in range(30))
        )
    assert len(results) == 30
    assert len(handler.hosts) == 30


@pytest.mark.asyncio
async def test_concurrent_imports_same_host_replace_mode():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        await queue.add_host("192.168.1.1", "shared.local", "Original comment", ["original"])
        entries1 = [ParsedEntry("192.168.1.1", "shared.local", "Comment from import 1", ["import1"], 1)]
        entries2 = [ParsedEntry("192.168.1.1", "shared.local", "Comment from import 2", ["import2"], 1)]
        import1, import2 = await asyncio.gather(
            queue.import_hosts(entries1, ConflictMode.REPLACE),
            queue.import_hosts(entries2, ConflictMode.REPLACE),
        )
    assert import1.processed == 1
    assert import2.processed == 1
    assert import1.updated + import2.updated >= 1
    hosts = list(handler.hosts.values())
    assert len(hosts) == 1
    assert hosts[0].comment in ("Comment from import 1", "Comment from import 2")


@pytest.mark.asyncio
async def test_commands_run_in_fifo_order():
    handler = FakeHandler()
    names = [f"n{i}.local" for i in range(10)]
    async with WriteQueue(handler) as queue:
        await asyncio.gather(
            *(queue.add_host(f"10.2.0.{i}", name, None, []) for i, name in enumerate(names))
        )
    assert handler.calls == names


@pytest.mark.asyncio
async def test_handler_errors_reach_caller():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        with pytest.raises(NotFound, match="missing"):
            await queue.update_host("missing", "10.0.0.1", None, None, None, None)
        with pytest.raises(NotFound):
            await queue.delete_host("missing", None)
        host = await queue.add_host("10.3.0.1", "ok.local", None, [])
    assert handler.hosts[host.id].hostname == "ok.local"


@pytest.mark.asyncio
async def test_update_and_delete_through_queue():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        host = await queue.add_host("192.168.1.20", "old.local", None, [])
        updated = await queue.update_host(
            host.id, "192.168.1.21", "new.local", "Updated", ["updated"], None
        )
        assert updated.ip_address == "192.168.1.21"
        assert updated.hostname == "new.local"
        assert updated.comment == "Updated"
        await queue.delete_host(host.id, "cleanup")
    assert handler.hosts == {}


@pytest.mark.asyncio
async def test_strict_import_duplicate_raises():
    handler = FakeHandler()
    async with WriteQueue(handler) as queue:
        await queue.add_host("10.0.0.0", "dup0.local", None, [])
        with pytest.raises(DuplicateEntry):
            await queue.import_hosts(batch("10.0.0", "dup", 1, "t"), ConflictMode.STRICT)


@pytest.mark.asyncio
async def test_add_after_close_fails_with_queue_closed():
    handler = FakeHandler()
    queue = WriteQueue(handler)
    queue.start()
    await queue.close()
    assert queue.closed
    with pytest.raises(InternalError, match="queue closed"):
        await queue.add_host("192.168.1.1", "test.local", None, [])
    assert handler.hosts == {}


@pytest.mark.asyncio
async def test_close_finishes_queued_commands():
    handler = FakeHandler()
    queue = WriteQueue(handler)
    queue.start()
    tasks = [
        asyncio.create_task(queue.add_host(f"10.4.0.{i}", f"q{i}.local", None, []))
        for i in range(5)
    ]
    await asyncio.sleep(0)
    await queue.close()
    results = await asyncio.gather(*tasks)
    assert {r.hostname for r in results} == {f"q{i}.local" for i in range(5)}
    assert len(handler.hosts) == 5


@pytest.mark.asyncio
async def test_operation_timeout_and_worker_continues():
    handler = FakeHandler()
    handler.gate = asyncio.Event()
    async with WriteQueue(handler) as queue:
        queue.operation_timeout = 0.05
        with pytest.raises(InternalError, match="Operation timed out after"):
            await queue.add_host("10.5.0.1", "slow", None, [])
        handler.gate.set()
        queue.operation_timeout = 5.0
        host = await queue.add_host("10.5.0.2", "fast.local", None, [])
    assert host.hostname == "fast.local"
    assert {h.hostname for h in handler.hosts.values()} == {"slow", "fast.local"}


@pytest.mark.asyncio
async def test_import_timeout_reports_entry_count():
    handler = FakeHandler()
    handler.gate = asyncio.Event()
    async with WriteQueue(handler) as queue:
        queue.import_timeout = 0.05
        with pytest.raises(InternalError, match=r"Import operation timed out.*\(2 entries\)"):
            await queue.import_hosts(batch("10.6.0", "imp", 2, "t"), ConflictMode.SKIP)
        handler.gate.set()


def test_default_capacity_and_invalid_capacity():
    handler = FakeHandler()
    assert WriteQueue(handler).capacity == QUEUE_CAPACITY == 100
    with pytest.raises(ValueError):
        WriteQueue(handler, 0)