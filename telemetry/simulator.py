# Simulated wearable device
"""
This module simulates the wearable sensor so the relay can run without radio
hardware. It implements the same transport handles as the BLE transport:
- advertise one device under a configurable name
- expose one service and one notify characteristic
- emit one notification per sample period, each a comma-separated line of
  12 integer channel readings (sine waves around a 12-bit midpoint plus noise)
- optionally drop the link after a fixed number of notifications
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence

import numpy as np

from telemetry.decoder import CHANNEL_COUNT

logger = logging.getLogger(__name__)

BASELINE = 2048
AMPLITUDE = 1000
NOISE_STD = 15.0
# channel i oscillates at CHANNEL_FREQS_HZ[i]
CHANNEL_FREQS_HZ = np.linspace(0.5, 6.0, CHANNEL_COUNT)


def make_payload(t_sec: float, rng: np.random.Generator) -> bytes:
    """Encode one 12-channel reading at time ``t_sec`` as a notification payload"""
    wave = BASELINE + AMPLITUDE * np.sin(2 * np.pi * CHANNEL_FREQS_HZ * t_sec)
    values = np.rint(wave + rng.normal(0.0, NOISE_STD, CHANNEL_COUNT)).astype(int)
    return ",".join(str(v) for v in values).encode("utf-8")


class SimulatedCharacteristic:
    def __init__(self, device: "SimulatedDevice") -> None:
        self._device = device

    async def subscribe(self, callback: Callable[[Optional[bytes]], None]) -> None:
        self._device._start_emitting(callback)


class SimulatedService:
    def __init__(self, device: "SimulatedDevice") -> None:
        self._device = device

    async def get_characteristic(self, uuid: str) -> Optional[SimulatedCharacteristic]:
        if uuid.lower() != self._device.characteristic_uuid.lower():
            return None
        return SimulatedCharacteristic(self._device)


class SimulatedLink:
    def __init__(self, device: "SimulatedDevice") -> None:
        self._device = device

    async def get_service(self, uuid: str) -> Optional[SimulatedService]:
        if uuid.lower() != self._device.service_uuid.lower():
            return None
        return SimulatedService(self._device)

    async def disconnect(self) -> None:
        await self._device.drop()


class SimulatedDevice:
    def __init__(
        self,
        name: str,
        service_uuid: str,
        characteristic_uuid: str,
        *,
        rate_hz: float,
        drop_after: Optional[int],
        seed: Optional[int],
    ) -> None:
        self.name = name
        self.service_uuid = service_uuid
        self.characteristic_uuid = characteristic_uuid
        self._rate_hz = rate_hz
        self._drop_after = drop_after
        self._rng = np.random.default_rng(seed)
        self._observers: list[Callable[[], None]] = []
        self._emitter: Optional[asyncio.Task] = None
        self.connected = False
        self.sent = 0

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._observers.append(callback)

    async def connect_link(self) -> SimulatedLink:
        self.connected = True
        self.sent = 0
        return SimulatedLink(self)

    def _start_emitting(self, callback: Callable[[Optional[bytes]], None]) -> None:
        self._emitter = asyncio.get_running_loop().create_task(self._emit(callback))

    async def _emit(self, callback: Callable[[Optional[bytes]], None]) -> None:
        period = 1.0 / self._rate_hz
        while self.connected:
            if self._drop_after is not None and self.sent >= self._drop_after:
                self._lose_link()
                return
            callback(make_payload(self.sent * period, self._rng))
            self.sent += 1
            await asyncio.sleep(period)

    def _lose_link(self) -> None:
        if not self.connected:
            return
        self.connected = False
        logger.info("Simulated device %s dropped the link after %d notifications", self.name, self.sent)
        for observer in list(self._observers):
            observer()

    async def drop(self) -> None:
        """Drop the link as if the device went out of range."""
        emitter, self._emitter = self._emitter, None
        self._lose_link()
        if emitter is not None and emitter is not asyncio.current_task():
            emitter.cancel()
            try:
                await emitter
            except asyncio.CancelledError:
                pass


class SimulatedTransport:
    """Transport advertising exactly one simulated device"""

    def __init__(
        self,
        device_name: str,
        service_uuid: str,
        characteristic_uuid: str,
        *,
        rate_hz: float = 100.0,
        drop_after: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> None:
        if rate_hz <= 0:
            raise ValueError("rate_hz must be positive")
        self.device = SimulatedDevice(
            device_name,
            service_uuid,
            characteristic_uuid,
            rate_hz=rate_hz,
            drop_after=drop_after,
            seed=seed,
        )

    async def discover(
        self, name_filter: str, service_allowlist: Sequence[str]
    ) -> Optional[SimulatedDevice]:
        if name_filter != self.device.name:
            return None
        return self.device
