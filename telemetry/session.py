"""Ingestion session: notification stream -> decoder -> live window + flush queue."""

import asyncio
import logging
from typing import Optional

from telemetry.buffers import LiveWindow
from telemetry.connection import ConnectionManager, NotificationStream
from telemetry.decoder import Sample, decode
from telemetry.flush import FlushScheduler

logger = logging.getLogger(__name__)


class IngestSession:
    def __init__(
        self,
        manager: ConnectionManager,
        scheduler: FlushScheduler,
        window: Optional[LiveWindow] = None,
    ) -> None:
        self.manager = manager
        self.scheduler = scheduler
        self.window = window if window is not None else LiveWindow()
        self._consumer: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start periodic flushing; runs whether or not a device is connected."""
        self.scheduler.start()

    async def connect(
        self, device_name: str, service_uuid: str, characteristic_uuid: str
    ) -> None:
        stream = await self.manager.connect(
            device_name, service_uuid, characteristic_uuid
        )
        self._consumer = asyncio.get_running_loop().create_task(self._consume(stream))

    def handle_payload(
        self, payload: Optional[bytes], elapsed_ms: Optional[int] = None
    ) -> Optional[Sample]:
        """Decode one payload into both buffers; unstamped payloads are stamped now."""
        if elapsed_ms is None:
            elapsed_ms = self.manager.elapsed_ms()
        sample = decode(payload, elapsed_ms)
        if sample is None:
            return None
        self.window.push(sample)
        self.scheduler.enqueue(sample)
        return sample

    async def _consume(self, stream: NotificationStream) -> None:
        count = 0
        async for notification in stream:
            if self.handle_payload(notification.payload, notification.elapsed_ms) is not None:
                count += 1
        logger.info("Notification stream ended after %d samples", count)

    async def wait_disconnected(self) -> None:
        if self._consumer is not None:
            await self._consumer

    async def close(self) -> None:
        """Disconnect, drain the remaining samples and stop the scheduler."""
        if self.manager.is_connected:
            await self.manager.disconnect()
        await self.wait_disconnected()
        await self.scheduler.stop(flush=True)
