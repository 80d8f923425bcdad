"""Size and time bounded event buffer."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .events import Event, event_size


logger = logging.getLogger(__name__)


@dataclass
class EventBuffer:
    """
    Accumulates accepted events and flushes them as one batch.

    A flush happens when the accumulated size reaches ``max_bytes`` (the
    whole batch goes, not just the overflow) or on every tick of
    ``timer_loop`` while the batch is non-empty.

    The lock covers both the snapshot/reset of the batch and the delivery of
    that snapshot, so flushes are drained one at a time and in order.
    """
    # Flush thresholds
    max_bytes: int = 1024 * 1024
    flush_interval_seconds: float = 10.0

    # Flush callback: receives the batch
    on_flush: Callable[[list[Event]], Awaitable[None]] | None = None

    # Internal state
    _batch: list[Event] = field(default_factory=list, init=False)
    _accumulated_bytes: int = field(default=0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _last_flush: float = field(default_factory=time.monotonic, init=False)
    _stats: dict = field(default_factory=dict, init=False)
    _running: bool = field(default=False, init=False)

    def __post_init__(self):
        if self.max_bytes < 1:
            raise ValueError(f"max_bytes must be positive, got {self.max_bytes}")
        if self.flush_interval_seconds <= 0:
            raise ValueError(
                f"flush_interval_seconds must be positive, got {self.flush_interval_seconds}"
            )
        self._stats = {
            "batches_flushed": 0,
            "events_flushed": 0,
            "flush_errors": 0,
        }

    async def add(self, event: Event, size_bytes: int | None = None) -> None:
        """
        Add an event to the batch.

        Flushes the entire batch before returning if the size limit is reached.
        Flush failures propagate to the caller.
        """
        if size_bytes is None:
            size_bytes = event_size(event)
        elif size_bytes < 0:
            raise ValueError(f"size_bytes must not be negative, got {size_bytes}")

        async with self._lock:
            self._batch.append(event)
            self._accumulated_bytes += size_bytes

            if self._accumulated_bytes >= self.max_bytes:
                await self._flush_unsafe()

    async def flush(self) -> None:
        """Flush the current batch. No-op when empty."""
        async with self._lock:
            await self._flush_unsafe()

    async def _flush_unsafe(self) -> None:
        """Flush without lock (caller must hold lock)."""
        if not self._batch:
            return

        batch = self._batch
        self._batch = []
        self._accumulated_bytes = 0
        self._last_flush = time.monotonic()

        if self.on_flush is None:
            logger.warning(f"No flush callback configured, discarding {len(batch)} events")
            return

        try:
            await self.on_flush(batch)
        except Exception as e:
            self._stats["flush_errors"] += 1
            logger.error(f"Failed to flush batch of {len(batch)} events: {e}")
            raise

        self._stats["batches_flushed"] += 1
        self._stats["events_flushed"] += len(batch)

    async def timer_loop(self) -> None:
        """
        Background loop that flushes on interval.

        Bounds how long an event waits during low traffic.
        """
        self._running = True
        logger.info(f"Event buffer timer started (interval={self.flush_interval_seconds}s)")

        while self._running:
            try:
                await asyncio.sleep(self.flush_interval_seconds)

                async with self._lock:
                    await self._flush_unsafe()

            except asyncio.CancelledError:
                logger.info("Event buffer timer cancelled")
                break
            except Exception as e:
                # Already counted and logged by the flush; keep the timer alive
                logger.debug(f"Timed flush failed: {e}")

    async def cancel_timer(self, task: asyncio.Task) -> None:
        """
        Cancel a running ``timer_loop`` task without interrupting a flush.

        The lock is taken first, so an in-flight delivery completes (and is
        counted) before the task is cancelled.
        """
        self._running = False
        async with self._lock:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Stop the timer and flush remaining events."""
        self._running = False
        await self.flush()
        logger.info(f"Event buffer stopped. Stats: {self._stats}")

    @property
    def buffer_size(self) -> int:
        """Number of events waiting to be flushed."""
        return len(self._batch)

    @property
    def accumulated_bytes(self) -> int:
        return self._accumulated_bytes

    @property
    def stats(self) -> dict:
        return {
            **self._stats,
            "buffer_size": self.buffer_size,
            "accumulated_bytes": self._accumulated_bytes,
            "seconds_since_flush": time.monotonic() - self._last_flush,
        }
