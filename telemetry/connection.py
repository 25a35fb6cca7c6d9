"""
Connection manager: discover the wearable, open the link, subscribe to its
telemetry characteristic and expose the notifications as one async stream.

Link loss is detected passively through the device's disconnect observer,
which flips the state to DISCONNECTED, clears the device handle and ends
the stream. Reconnecting is a fresh ``connect`` call.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from telemetry.errors import (
    CharacteristicUnavailable,
    DeviceNotFound,
    LinkFailure,
    ServiceUnavailable,
    TelemetryError,
)
from telemetry.transport import DeviceHandle, LinkHandle, Transport

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True, slots=True)
class Notification:
    """A raw payload stamped with ms since connection start on arrival."""

    payload: Optional[bytes]
    elapsed_ms: int


class NotificationStream:
    """
    Lazy, non-restartable sequence of stamped notification payloads.
    Fed by the transport callback, ended by ``close()`` on link loss.
    Payloads pushed before the close are still delivered.
    """

    _END = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, payload: Optional[bytes], elapsed_ms: int) -> None:
        if self._closed:
            return
        self._queue.put_nowait(Notification(payload, elapsed_ms))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._END)

    def __aiter__(self) -> "NotificationStream":
        return self

    async def __anext__(self) -> Notification:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is self._END:
            self._finished = True
            raise StopAsyncIteration
        return item


class ConnectionManager:
    """Owns the single device connection and its state."""

    def __init__(
        self, transport: Transport, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._transport = transport
        self._clock = clock
        self.state = ConnectionState.DISCONNECTED
        self.device: Optional[DeviceHandle] = None
        self._link: Optional[LinkHandle] = None
        self._stream: Optional[NotificationStream] = None
        self._connected_at: Optional[float] = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def elapsed_ms(self) -> int:
        """Milliseconds since the most recent connection was established."""
        if self._connected_at is None:
            raise RuntimeError("elapsed_ms called before any connection")
        return int((self._clock() - self._connected_at) * 1000)

    async def connect(
        self, device_name: str, service_uuid: str, characteristic_uuid: str
    ) -> NotificationStream:
        """Connect and subscribe; raises a TelemetryError subclass on failure."""
        try:
            device = await self._transport.discover(device_name, [service_uuid])
        except TelemetryError:
            raise
        except Exception as e:
            raise DeviceNotFound(f"Error requesting {device_name} device: {e}") from e
        if device is None:
            raise DeviceNotFound(f"Error requesting {device_name} device: no match found")

        try:
            link = await device.connect_link()
        except Exception as e:
            raise LinkFailure(f"Failed to connect to {device_name}: {e}") from e
        logger.info("BLE connection established: %s", device_name)

        try:
            service = await link.get_service(service_uuid)
        except Exception as e:
            await self._abandon(link)
            raise ServiceUnavailable(f"Failed to get service {service_uuid}: {e}") from e
        if service is None:
            await self._abandon(link)
            raise ServiceUnavailable(f"Failed to get service {service_uuid}: not found")

        try:
            characteristic = await service.get_characteristic(characteristic_uuid)
        except Exception as e:
            await self._abandon(link)
            raise CharacteristicUnavailable(
                f"Failed to get characteristic {characteristic_uuid}: {e}"
            ) from e
        if characteristic is None:
            await self._abandon(link)
            raise CharacteristicUnavailable(
                f"Failed to get characteristic {characteristic_uuid}: not found"
            )

        stream = NotificationStream()
        self._stream = stream
        self._link = link
        self.device = device
        connected_at = self._connected_at = self._clock()
        device.on_disconnect(lambda: self._on_link_lost(stream))

        def _on_payload(payload: Optional[bytes]) -> None:
            # stamped on arrival, before the consumer task gets to it
            stream.push(payload, int((self._clock() - connected_at) * 1000))

        try:
            await characteristic.subscribe(_on_payload)
        except Exception as e:
            self._on_link_lost(stream)
            await self._abandon(link)
            raise CharacteristicUnavailable(f"Error starting notifications: {e}") from e

        if stream.closed:
            # link dropped while subscribing
            raise LinkFailure(f"Connection to {device_name} lost while subscribing")

        self.state = ConnectionState.CONNECTED
        logger.info("Notification subscription started: char=%s", characteristic_uuid)
        return stream

    async def disconnect(self) -> None:
        """Close the link; state changes through the same path as a link drop."""
        link, stream = self._link, self._stream
        if link is None:
            return
        try:
            await link.disconnect()
        finally:
            if stream is not None:
                self._on_link_lost(stream)

    def _on_link_lost(self, stream: NotificationStream) -> None:
        if stream is not self._stream:
            return
        if self.state is ConnectionState.CONNECTED:
            logger.warning("Device disconnected")
        self.state = ConnectionState.DISCONNECTED
        self.device = None
        self._link = None
        self._stream = None
        stream.close()

    async def _abandon(self, link: LinkHandle) -> None:
        try:
            await link.disconnect()
        except Exception as e:
            logger.warning("Error closing partially opened link: %s", e)
