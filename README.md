# routerhosts

An asyncio layer for managing the hosts-file entries on a router.

Every mutation (add, update, delete, import) goes through a single
`WriteQueue`. The queue runs them one at a time, in the order they arrive.
Two concurrent writes therefore can never race on duplicate detection or
on regenerating the hosts file. Reads do not go through the queue.

The package uses only the standard library and needs Python 3.11 or later.

## Modules

### `routerhosts.models`

- `ConflictMode`: `SKIP`, `REPLACE` and `STRICT`. `ConflictMode.parse(text)`
  ignores case and treats an empty string as `SKIP`. Any other name raises
  `ValueError("Invalid conflict mode: '...'")`.
- `ParsedEntry`: one entry read from import data. Its fields are
  `ip_address`, `hostname`, `comment`, `tags` and `line_number`.
- `ImportResult`: the counters an import reports. These are `processed`,
  `created`, `updated`, `skipped` and `failed`, plus a list of
  `validation_errors`.
- `WriteHandler`: a protocol for the object that actually performs writes.
  It has async `add_host`, `update_host`, `delete_host` and `import_hosts`
  methods.

### `routerhosts.write_queue`

`WriteQueue(handler, capacity=100)` is a bounded `asyncio.Queue` drained
by one background worker task.

- `start()` starts the worker. The first queued operation also starts it.
- `close()` stops new commands from being accepted. It lets the worker
  finish the commands already queued and then waits for the worker to
  stop.
- The queue can be used as an async context manager
  (`async with WriteQueue(handler) as queue:`).
- `add_host`, `update_host`, `delete_host` and `import_hosts` queue a
  command and return the handler's result. An exception raised by the
  handler reaches the caller unchanged.
- While the queue is full, callers wait for room.
- Once the queue is closed, operations raise
  `InternalError("Write queue closed - server may be shutting down")`.
- Each operation times out after `operation_timeout` seconds (30). Imports
  time out after `import_timeout` seconds (300). A timeout raises
  `InternalError`, and the worker carries on with the commands behind it.

### `routerhosts.errors`

- `CommandError` is the base class for failures from the command layer.
  Its subclasses are `ValidationFailed`, `DuplicateEntry`, `NotFound`,
  `VersionConflict(expected, actual)`, `DatabaseError`,
  `FileGenerationError` and `InternalError`.
- `StatusCode` is an `IntEnum` of the standard RPC status codes.
- `ServiceError(code, message)` is the failure a client sees.
- `to_status(error)` maps a `CommandError` to a `ServiceError`:

  | Error | Code |
  |---|---|
  | `ValidationFailed` | `INVALID_ARGUMENT` |
  | `DuplicateEntry` | `ALREADY_EXISTS` |
  | `NotFound` | `NOT_FOUND` |
  | `VersionConflict` | `ABORTED` |
  | `DatabaseError` | `INTERNAL` (with a "Database error: " prefix) |
  | `FileGenerationError` | `INTERNAL` (with a "File generation error: " prefix) |
  | others | `INTERNAL` |

### `routerhosts.ids`

- `parse_ulid(text)` checks that `text` is a ULID. It returns the ULID in
  canonical upper-case Crockford base32, or raises `InvalidIdError` (a
  `ValueError`).
- `new_ulid()` generates a ULID from the current time and 80 random bits.

### `routerhosts.service`

`HostsService(write_queue, commands, list_all, parse_import, exporter)` is
the request side of the system. It checks IDs, sends mutations through the
queue and sends reads to `commands`. Every failure is raised as a
`ServiceError`.

- `add_host`, `get_host`, `update_host`, `delete_host`, `list_hosts` and
  `search_hosts`:
  - An ID that is not a valid ULID gives `INVALID_ARGUMENT`.
  - A missing host gives `NOT_FOUND`.
  - In `update_host`, `None` leaves a field unchanged and an empty tag
    list leaves the tags unchanged. The comment is passed to the handler
    as given.
- `import_hosts(chunks)` takes an iterable or an async iterable of
  `ImportChunk`:
  - It collects the stream until a chunk has `last_chunk` set.
  - The format and conflict mode come from the first chunks that carry
    them.
  - The data is passed to `parse_import` and imported through the queue.
  - It returns an `ImportSummary`.
  - More than 10 MiB of data, or more than 10,000 chunks, gives
    `RESOURCE_EXHAUSTED`.
- `export_hosts(format_name)` returns a list of byte chunks in the
  `hosts`, `json` or `csv` format:
  - `hosts` and `csv` begin with a header chunk. `json` has no header.
  - Any other format name gives `INVALID_ARGUMENT`.
- `ImportFormat.parse` and `ExportFormat.parse` accept `hosts`, `json` and
  `csv`, ignoring case.

## Example

```python
from routerhosts.models import ConflictMode, ParsedEntry
from routerhosts.write_queue import WriteQueue

async def run(handler):
    async with WriteQueue(handler) as queue:
        entry = await queue.add_host("192.168.1.10", "server.local", "NAS", ["lan"])
        result = await queue.import_hosts(
            [ParsedEntry("10.0.0.1", "a.local", None, [], 1)],
            ConflictMode.parse("skip"),
        )
        return entry, result.created
```

## What this package does not do

The package holds the queue, the error mapping and the service logic. It
relies on its caller for everything else:

- It has no storage. The `WriteHandler` passed to `WriteQueue`, and the
  `commands` and `list_all` passed to `HostsService`, must be supplied.
- It does not write a hosts file.
- It does not parse import data. That is the job of the `parse_import`
  callable.
- It does not render export output. That is the job of the `exporter`
  object.
- It has no network server and no command-line program. `HostsService`
  is a plain Python object for a transport of your choosing to call.