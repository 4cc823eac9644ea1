"""
Progress streaming for a running scan.

The scan runs as its own task and pushes events into a queue; the caller drains
the queue through an async iterator. The last event always has
`completed=True`, carrying statistics on success or a message on failure.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Optional

from ...config import PROGRESS_QUEUE_SIZE
from ...shared import ErrorCode, Result, get_logger, sanitize_error_message
from .models import IndexProgressUpdate, IndexStatistics, ScanPhase
from .scan_orchestrator import CatalogSynchronizer

logger = get_logger(__name__)


class _ProgressChannel:
    """
    Non-blocking sink for the scan plus the final event slot.

    Intermediate events are dropped when a bounded queue is full; the final event
    is held aside and always delivered after the scan task finishes.
    """

    def __init__(self, maxsize: int) -> None:
        self.queue: asyncio.Queue[Optional[IndexProgressUpdate]] = asyncio.Queue(maxsize=max(0, int(maxsize)))
        self.final: Optional[IndexProgressUpdate] = None
        self.last_percentage = 0.0
        self.dropped = 0

    def __call__(self, update: IndexProgressUpdate) -> None:
        self.last_percentage = update.percentage
        if update.completed:
            self.final = update
            return
        try:
            self.queue.put_nowait(update)
        except asyncio.QueueFull:
            self.dropped += 1


async def stream_scan(
    synchronizer: CatalogSynchronizer,
    root: Optional[str | Path] = None,
    *,
    queue_size: int = PROGRESS_QUEUE_SIZE,
) -> AsyncIterator[IndexProgressUpdate]:
    """
    Run a scan and yield its progress events as they arrive.

    Closing the iterator early cancels the scan; its transaction is rolled back.
    """
    channel = _ProgressChannel(queue_size)
    cancel_event = asyncio.Event()

    async def _worker() -> None:
        try:
            result: Result[IndexStatistics] = await synchronizer.run(
                root, cancel_event=cancel_event, progress=channel
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Streaming scan crashed")
            result = Result.Err(ErrorCode.DB_ERROR, sanitize_error_message(exc, "Scan failed"))

        final = channel.final
        if final is None:
            if result.ok:
                final = IndexProgressUpdate(
                    message="Scan completed",
                    percentage=100.0,
                    statistics=result.data,
                    completed=True,
                    phase=ScanPhase.COMPLETED,
                )
            else:
                final = IndexProgressUpdate(
                    message=str(result.error or "Scan failed"),
                    percentage=channel.last_percentage,
                    completed=True,
                    phase=ScanPhase.FAILED,
                )
        if channel.dropped:
            logger.debug("Dropped %s progress events on a full queue", channel.dropped)
        await channel.queue.put(final)
        await channel.queue.put(None)

    task = asyncio.create_task(_worker(), name="photohub-scan-stream")
    try:
        while True:
            item = await channel.queue.get()
            if item is None:
                break
            yield item
    finally:
        if not task.done():
            # Consumer went away: stop after the current file and keep the queue
            # drained so the worker never blocks on a full queue.
            cancel_event.set()
            logger.info("Progress consumer closed; cancelling scan")
            while not task.done():
                try:
                    await asyncio.wait_for(channel.queue.get(), timeout=0.1)
                except asyncio.TimeoutError:
                    continue
        await asyncio.gather(task, return_exceptions=True)
