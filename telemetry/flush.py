"""
Periodic flush of accumulated samples to a persistence sink.

Every ``interval`` seconds the scheduler drains the accumulation queue in one
non-suspending step, wraps the drained samples in a Batch and hands it to the
sink. Each write runs as its own task, so a slow sink never delays the next
tick, and a failed write only loses its own batch.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

from telemetry.buffers import AccumulationQueue
from telemetry.decoder import Sample
from telemetry.errors import SinkWriteFailure

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL = 1.0


@dataclass(frozen=True)
class Batch:
    """A group of samples forwarded to persistence in one write."""

    batch_timestamp: int  # epoch milliseconds
    samples: tuple[Sample, ...]

    def to_document(self) -> dict:
        """JSON-ready document; non-finite channel values become None."""
        return {
            "batch_timestamp": self.batch_timestamp,
            "samples": [
                {
                    "timestamp": s.timestamp,
                    "values": [v if math.isfinite(v) else None for v in s.values],
                }
                for s in self.samples
            ],
        }

    @classmethod
    def from_document(cls, document: dict) -> "Batch":
        samples = tuple(
            Sample(
                timestamp=int(s["timestamp"]),
                values=tuple(math.nan if v is None else v for v in s["values"]),
            )
            for s in document["samples"]
        )
        return cls(batch_timestamp=int(document["batch_timestamp"]), samples=samples)


def document_key(epoch_seconds: float) -> str:
    """ISO-8601 UTC key with millisecond precision, e.g. 2024-01-01T00:00:00.000Z"""
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PersistenceSink(Protocol):
    async def write(self, collection: str, document_key: str, batch: Batch) -> None:
        ...


class FlushScheduler:
    """Owns the accumulation queue and forwards its contents on a fixed period."""

    def __init__(
        self,
        sink: PersistenceSink,
        collection: str,
        *,
        interval: float = DEFAULT_FLUSH_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._sink = sink
        self._collection = collection
        self._interval = interval
        self._clock = clock
        self._queue = AccumulationQueue()
        self._timer: asyncio.Task | None = None
        self._writes: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    def enqueue(self, sample: Sample) -> None:
        self._queue.enqueue(sample)

    def tick(self) -> Batch | None:
        """Drain the queue and start forwarding it. Must run inside the event loop."""
        samples = self._queue.drain_snapshot()
        if not samples:
            return None
        now = self._clock()
        batch = Batch(batch_timestamp=int(now * 1000), samples=tuple(samples))
        task = asyncio.get_running_loop().create_task(
            self._forward(document_key(now), batch)
        )
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)
        return batch

    async def _forward(self, key: str, batch: Batch) -> None:
        try:
            await self._sink.write(self._collection, key, batch)
            logger.debug(
                "Forwarded batch %s/%s (%d samples)",
                self._collection,
                key,
                len(batch.samples),
            )
        except SinkWriteFailure as e:
            logger.error("Error sending batch %s: %s", key, e)
        except Exception:
            logger.exception("Unexpected error sending batch %s", key)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.tick()

    def start(self) -> None:
        if self.running:
            return
        self._timer = asyncio.get_running_loop().create_task(self._run())
        logger.info("Flush scheduler started (every %.3fs)", self._interval)

    async def stop(self, *, flush: bool = True) -> None:
        """Cancel the timer, optionally flush once more, and await in-flight writes."""
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            # does not raise the timer's CancelledError; a cancel of stop() still does
            await asyncio.wait({timer})
        if flush:
            self.tick()
        if self._writes:
            await asyncio.gather(*self._writes, return_exceptions=True)
        logger.info("Flush scheduler stopped")
