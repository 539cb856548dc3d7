"""Error/warning aggregation across many concurrently streaming pods."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
import uuid
from collections import deque
from typing import TYPE_CHECKING, Any

from podtrail.ansi import strip_ansi
from podtrail.classifier import DEFAULT_CONFIG, classify
from podtrail.models import AggregatedEntry, ErrorRecord, LogLevel, LogTarget, SourceDescriptor, TargetKind
from podtrail.timestamps import parse_instant
from podtrail.transports import LogBatch, log_data_channel

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from podtrail.models import ClassifierConfig
    from podtrail.transports import StreamTransport

logger = logging.getLogger(__name__)

MAX_ENTRIES = 2000
MAX_CONCURRENT_STREAMS = 20
RUNNING = "Running"

_RETAINED_LEVELS = frozenset({LogLevel.ERROR, LogLevel.WARN})


def dedup_key(record: ErrorRecord) -> tuple[LogLevel, str]:
    """Merge key: level plus escape-stripped, trimmed message. Source identity is ignored."""
    return record.line.level, strip_ansi(record.line.message).strip()


def select_sources(
    sources: Iterable[SourceDescriptor],
    *,
    workload: str | None = None,
    limit: int = MAX_CONCURRENT_STREAMS,
) -> list[SourceDescriptor]:
    """Running sources, optionally of one workload, capped at `limit`."""
    selected = [s for s in sources if s.status == RUNNING]
    if workload is not None:
        selected = [s for s in selected if s.workload == workload]
    return selected[:limit]


class AggregationHandle:
    """A running aggregation: its sources, open sessions and raw entry table."""

    def __init__(self, sources: Sequence[SourceDescriptor], text_filter: str | None, max_entries: int) -> None:
        self.id = str(uuid.uuid4())
        self.sources = list(sources)
        self.text_filter = text_filter
        self.records: deque[ErrorRecord] = deque(maxlen=max_entries)
        self.streams_started = 0
        self.loading = True
        self.cancelled = False
        self.revision = 0
        self.task: asyncio.Task[None] | None = None
        self._session_ids: list[str] = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._view_cache: tuple[int, str, list[AggregatedEntry]] | None = None

    @property
    def session_ids(self) -> list[str]:
        return list(self._session_ids)

    async def wait(self) -> None:
        """Wait until every source has been attempted (or the start was cancelled)."""
        if self.task is not None:
            await asyncio.gather(self.task, return_exceptions=True)


class ErrorAggregator:
    """Streams many pods at once and keeps their error and warning lines.

    Deduplication happens in the read view, after the raw table has been
    capped, so the cap bounds memory regardless of how repetitive the input is.
    """

    def __init__(
        self,
        transport: StreamTransport,
        config: ClassifierConfig = DEFAULT_CONFIG,
        *,
        max_entries: int = MAX_ENTRIES,
        max_streams: int = MAX_CONCURRENT_STREAMS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.transport = transport
        self.config = config
        self.max_entries = max_entries
        self.max_streams = max_streams
        self.clock = clock
        self._seq = itertools.count()

    def start(
        self,
        sources: Iterable[SourceDescriptor],
        since_seconds: int | None = None,
        text_filter: str | None = None,
        *,
        workload: str | None = None,
    ) -> AggregationHandle:
        """Begin streaming; sources are opened one by one in a background task."""
        selected = select_sources(sources, workload=workload, limit=self.max_streams)
        handle = AggregationHandle(selected, text_filter, self.max_entries)
        handle.task = asyncio.get_running_loop().create_task(self._start_streams(handle, since_seconds))
        return handle

    def stop(self, handle: AggregationHandle) -> None:
        """Close every opened source once and drop any later deliveries. Idempotent."""
        if handle.cancelled:
            return
        handle.cancelled = True
        handle.loading = False
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
        for unsubscribe in handle._unsubscribers:
            unsubscribe()
        handle._unsubscribers.clear()
        for session_id in handle._session_ids:
            try:
                self.transport.close_stream(session_id)
            except Exception:
                logger.exception("closing source stream %s failed", session_id)
        handle._session_ids.clear()

    def ingest(self, handle: AggregationHandle, source: SourceDescriptor, lines: Iterable[str]) -> int:
        """Classify a batch from one source and retain its error/warn lines.

        Returns the number of lines retained.
        """
        if handle.cancelled:
            return 0
        retained = 0
        for raw in lines:
            try:
                parsed = classify(raw, self.config)
            except Exception:
                logger.exception("classifying a line from %s failed", source.name)
                continue
            if parsed.level not in _RETAINED_LEVELS:
                continue
            seq = next(self._seq)
            instant = parse_instant(parsed.timestamp)
            epoch_ms = instant.timestamp() * 1000 if instant is not None else self.clock() * 1000
            handle.records.append(
                ErrorRecord(
                    id=f"{handle.id}-{seq}",
                    seq=seq,
                    line=parsed,
                    source_id=source.name,
                    workload_name=source.workload,
                    epoch_ms=epoch_ms,
                )
            )
            retained += 1
        if retained:
            handle.revision += 1
        return retained

    def entries(self, handle: AggregationHandle, query: str | None = None) -> list[AggregatedEntry]:
        """Deduplicated entries, newest first, filtered by source or message substring.

        `query` defaults to the handle's text filter. The raw table is not modified.
        """
        if query is None:
            query = handle.text_filter or ""
        needle = query.lower()
        cached = handle._view_cache
        if cached is not None and cached[0] == handle.revision and cached[1] == needle:
            return list(cached[2])

        result = aggregate(
            r for r in handle.records if not needle or needle in r.source_id.lower() or needle in r.line.message.lower()
        )
        handle._view_cache = (handle.revision, needle, result)
        return list(result)

    async def _start_streams(self, handle: AggregationHandle, since_seconds: int | None) -> None:
        try:
            for source in handle.sources:
                if handle.cancelled:
                    break
                await self._start_source(handle, source, since_seconds)
        finally:
            handle.loading = False

    async def _start_source(self, handle: AggregationHandle, source: SourceDescriptor, since_seconds: int | None) -> None:
        session_id = f"errors-{source.name}-{uuid.uuid4().hex[:8]}"

        def on_data(payload: Any) -> None:  # noqa: ANN401
            if handle.cancelled:
                return
            batch = payload if isinstance(payload, LogBatch) else LogBatch.model_validate(payload)
            self.ingest(handle, source, batch.lines)

        unsubscribe = self.transport.bus.subscribe(log_data_channel(session_id), on_data)
        handle._unsubscribers.append(unsubscribe)
        try:
            initial = await self.transport.open_stream(
                session_id,
                LogTarget(kind=TargetKind.POD, name=source.name),
                since_seconds=since_seconds,
            )
        except asyncio.CancelledError:
            # Stopped mid-open: the transport may already hold the source
            self.transport.close_stream(session_id)
            unsubscribe()
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("skipping %s: %s", source.name, exc)
            unsubscribe()
            return

        if handle.cancelled:
            self.transport.close_stream(session_id)
            unsubscribe()
            return
        handle._session_ids.append(session_id)
        handle.streams_started += 1
        self.ingest(handle, source, initial)


def aggregate(records: Iterable[ErrorRecord]) -> list[AggregatedEntry]:
    """Group records by dedup key, newest representative first."""
    groups: dict[tuple[LogLevel, str], AggregatedEntry] = {}
    for record in records:
        key = dedup_key(record)
        existing = groups.get(key)
        if existing is None:
            groups[key] = AggregatedEntry(
                id=record.id,
                line=record.line,
                source_id=record.source_id,
                workload_name=record.workload_name,
                count=1,
                sources={record.source_id},
                epoch_ms=record.epoch_ms,
                seq=record.seq,
            )
            continue
        existing.count += 1
        existing.sources.add(record.source_id)
        if record.epoch_ms > existing.epoch_ms:
            existing.id = record.id
            existing.line = record.line
            existing.source_id = record.source_id
            existing.workload_name = record.workload_name
            existing.epoch_ms = record.epoch_ms
            existing.seq = record.seq
    return sorted(groups.values(), key=lambda e: (e.epoch_ms, e.seq), reverse=True)
