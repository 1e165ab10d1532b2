"""CSV export pipeline: database cursor to object storage.

The export is four stages running concurrently in one ``asyncio.TaskGroup``
and connected by bounded queues, so a slow upload pushes back on the cursor
instead of letting rows pile up in memory.

Pipeline Diagram
================
::
    ┌──────────────┐  batches  ┌──────────────┐  rows  ┌──────────────┐  bytes  ┌──────────────┐
    │ read_batches │──────────▶│ flatten_     │───────▶│ encode_csv   │────────▶│ upload_stream│
    │ (server-side │  Queue(n) │ batches      │Queue(n)│ (';' + header│ Queue(n)│ (S3 multipart│
    │  cursor)     │           │              │        │  row)        │         │  upload)     │
    └──────────────┘           └──────────────┘        └──────────────┘         └──────┬───────┘
                                                                                       ▼
                                                                            downloads/<timestamp>.csv

Every stage forwards an end-of-stream marker once its input is exhausted.
If any stage raises, the TaskGroup cancels the others and the whole export
fails with a single ExportError; the storage layer aborts the unfinished
multipart upload.

How to Use
===========
**Step 1 — Build from the request context**::
    exporter = LinkExporter.from_context(ctx)

**Step 2 — Export (optionally filtered by name)**::
    stored = await exporter.export("docs")
    print(stored.url)
"""

import asyncio
import csv
import datetime
import io
import time
from collections.abc import AsyncIterator
from typing import Optional

from prometheus_client import Counter, Histogram
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.enums import RequestStatus
from app.exceptions import ExportError
from app.models import ShortLink
from app.storage import ObjectStorage, StoredObject

__all__ = [
    "LinkExporter",
    "CSV_HEADER",
    "CSV_DELIMITER",
    "build_export_key",
    "build_export_query",
    "read_batches",
    "flatten_batches",
    "encode_csv",
    "iterate_channel",
]

CSV_HEADER = ("Name", "URL", "Created At", "Count Access")
CSV_DELIMITER = ";"
EXPORT_FOLDER = "downloads"
EXPORT_CONTENT_TYPE = "text/csv"

# End-of-stream marker passed between stages
_END = object()

EXPORTS_TOTAL = Counter(
    "link_shortener_exports_total",
    "Total CSV export requests",
    ["status"],
)
EXPORT_ROWS_TOTAL = Counter(
    "link_shortener_export_rows_total",
    "Total rows written to CSV exports",
)
EXPORT_DURATION = Histogram(
    "link_shortener_export_duration_seconds",
    "Time taken to export links to object storage",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def build_export_key(now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    timestamp = now.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds")
    return f"{EXPORT_FOLDER}/{timestamp.replace('+00:00', 'Z')}.csv"


def build_export_query(search_query: Optional[str]) -> Select:
    query = select(ShortLink.name, ShortLink.url, ShortLink.created_at, ShortLink.count_access)
    if search_query and search_query.strip():
        query = query.where(ShortLink.name.icontains(search_query.strip(), autoescape=True))
    return query.order_by(ShortLink.created_at.desc())


# ============================================================================
# PIPELINE STAGES
# ============================================================================

async def read_batches(db: AsyncSession, query: Select, batch_size: int, out: asyncio.Queue) -> None:
    result = await db.stream(query.execution_options(yield_per=batch_size))
    async for partition in result.partitions():
        await out.put(partition)
    await out.put(_END)


async def flatten_batches(batches: asyncio.Queue, out: asyncio.Queue) -> None:
    while True:
        batch = await batches.get()
        if batch is _END:
            break
        for row in batch:
            await out.put(row)
    await out.put(_END)


async def encode_csv(rows: asyncio.Queue, out: asyncio.Queue) -> int:
    """Encode rows as ';'-separated CSV, one bytes chunk per row.

    Returns:
        int: Number of data rows written (header excluded)
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=CSV_DELIMITER, lineterminator="\n")

    def take() -> bytes:
        value = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return value.encode("utf-8")

    writer.writerow(CSV_HEADER)
    await out.put(take())

    count = 0
    while True:
        row = await rows.get()
        if row is _END:
            break
        writer.writerow((row.name, row.url, row.created_at.isoformat(), row.count_access))
        await out.put(take())
        count += 1

    await out.put(_END)
    return count


async def iterate_channel(channel: asyncio.Queue) -> AsyncIterator[bytes]:
    while True:
        item = await channel.get()
        if item is _END:
            return
        yield item


# ============================================================================
# EXPORTER
# ============================================================================

class LinkExporter:
    def __init__(self, db: AsyncSession, storage: ObjectStorage, logger, batch_size: int = 100, channel_size: int = 8):
        self._db = db
        self._storage = storage
        self._logger = logger
        self._batch_size = batch_size
        self._channel_size = channel_size

    @classmethod
    def from_context(cls, ctx: 'RequestContext') -> 'LinkExporter':
        settings = ctx.settings
        return cls(
            ctx.database,
            ctx.service_manager.storage,
            ctx.logger,
            batch_size=settings.EXPORT_BATCH_SIZE,
            channel_size=settings.EXPORT_CHANNEL_SIZE,
        )

    async def export(self, search_query: Optional[str] = None) -> StoredObject:
        """Export matching links to a CSV object and return where it was stored.

        Raises:
            ExportError: If reading, encoding or uploading fails
        """
        start_time = time.perf_counter()
        key = build_export_key()
        query = build_export_query(search_query)
        self._logger.info(f"Exporting links to {key} (search={search_query!r})")

        batches: asyncio.Queue = asyncio.Queue(maxsize=self._channel_size)
        rows: asyncio.Queue = asyncio.Queue(maxsize=self._channel_size)
        encoded: asyncio.Queue = asyncio.Queue(maxsize=self._channel_size)

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(read_batches(self._db, query, self._batch_size, batches))
                tg.create_task(flatten_batches(batches, rows))
                encoder = tg.create_task(encode_csv(rows, encoded))
                upload = tg.create_task(
                    self._storage.upload_stream(key, iterate_channel(encoded), EXPORT_CONTENT_TYPE)
                )
        except ExceptionGroup as group:
            cause = group.exceptions[0]
            EXPORTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            EXPORT_DURATION.observe(time.perf_counter() - start_time)
            self._logger.error(f"Export to {key} failed: {cause!r}")
            raise ExportError(f"Export to {key} failed") from cause

        row_count = encoder.result()
        stored = upload.result()
        duration = time.perf_counter() - start_time
        EXPORTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        EXPORT_ROWS_TOTAL.inc(row_count)
        EXPORT_DURATION.observe(duration)
        self._logger.info(f"Exported {row_count} links to {stored.url} in {duration:.3f}s")
        return stored
