"""Reading stream: ordered hand-off from the device feed to the monitoring session."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import structlog

from neurofit_monitor.models import Reading

logger = structlog.get_logger(__name__)

Consumer = Callable[[Reading], Awaitable[object]]

_STOP = None


class StreamPipeline:
    """Buffers readings in arrival order and hands each one to every consumer.

    The buffer is bounded.  When it is full the *oldest* pending reading is
    discarded, so a stalled consumer never blocks ingestion and the session
    always works on the freshest data.  ``stop()`` lets readings already
    queued finish before the loop exits.
    """

    def __init__(self, maxsize: int = 10_000, *, stats_interval: float = 60.0) -> None:
        self._queue: asyncio.Queue[Reading | None] = asyncio.Queue(maxsize=maxsize)
        self._consumers: list[Consumer] = []
        self._stats_interval = stats_interval
        self._running = False
        self._stopping = False
        self._processed = 0
        self._dropped = 0
        self._consumer_errors = 0

    def add_consumer(self, fn: Consumer) -> None:
        self._consumers.append(fn)

    # ── Producer side ─────────────────────────────────────────

    async def publish(self, reading: Reading) -> None:
        self._put(reading)

    async def publish_batch(self, readings: list[Reading]) -> None:
        for reading in readings:
            self._put(reading)

    def _put(self, reading: Reading) -> None:
        if self._queue.full():
            evicted = self._queue.get_nowait()
            self._queue.task_done()
            if evicted is not _STOP:
                self._dropped += 1
                logger.warning("stream_pipeline.reading_dropped", dropped_total=self._dropped)
        self._queue.put_nowait(reading)

    # ── Consumer loop ─────────────────────────────────────────

    async def start(self) -> None:
        """Run the consumer loop until :meth:`stop` (run as a background task)."""
        self._running = True
        logger.info("stream_pipeline.started", consumers=len(self._consumers))
        next_stats = time.monotonic() + self._stats_interval
        try:
            while True:
                reading = await self._queue.get()
                try:
                    if reading is _STOP:
                        break
                    await self._deliver(reading)
                    self._processed += 1
                finally:
                    self._queue.task_done()

                # Stop requested while the buffer was full, or the wake-up was evicted
                if self._stopping and self._queue.empty():
                    break

                if time.monotonic() >= next_stats:
                    logger.info("stream_pipeline.stats", **self.stats())
                    next_stats = time.monotonic() + self._stats_interval
        finally:
            self._running = False
            self._stopping = False
            logger.info("stream_pipeline.stopped", processed_total=self._processed)

    async def _deliver(self, reading: Reading) -> None:
        for consumer in self._consumers:
            try:
                await consumer(reading)
            except Exception as exc:
                self._consumer_errors += 1
                logger.error(
                    "stream_pipeline.consumer_error",
                    consumer=getattr(consumer, "__qualname__", repr(consumer)),
                    error=str(exc),
                )

    async def stop(self) -> None:
        """Ask the loop to exit once the readings queued so far are handled.

        No queued reading is evicted to make room for the request: with a
        full buffer the loop exits as soon as the buffer runs empty.
        """
        if not self._running or self._stopping:
            return
        self._stopping = True
        if not self._queue.full():
            self._queue.put_nowait(_STOP)

    async def drain(self) -> None:
        """Wait until every queued reading has been consumed."""
        await self._queue.join()

    # ── Introspection ─────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def processed_total(self) -> int:
        return self._processed

    @property
    def dropped_total(self) -> int:
        return self._dropped

    def stats(self) -> dict[str, int]:
        return {
            "processed_total": self._processed,
            "dropped_total": self._dropped,
            "consumer_errors": self._consumer_errors,
            "queue_pending": self._queue.qsize(),
        }
