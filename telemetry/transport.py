"""
Transport capability consumed by the connection manager.

The manager only sees the handle protocols below; ``BleakTransport`` is the
Bluetooth Low Energy implementation built on bleak. Handle lookups return
None when the requested service or characteristic does not exist.
"""

import logging
from typing import Callable, Optional, Protocol, Sequence

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

logger = logging.getLogger(__name__)

PayloadCallback = Callable[[Optional[bytes]], None]


class CharacteristicHandle(Protocol):
    async def subscribe(self, callback: PayloadCallback) -> None:
        """Start notifications; ``callback`` receives each raw payload."""
        ...


class ServiceHandle(Protocol):
    async def get_characteristic(self, uuid: str) -> Optional[CharacteristicHandle]:
        ...


class LinkHandle(Protocol):
    async def get_service(self, uuid: str) -> Optional[ServiceHandle]:
        ...

    async def disconnect(self) -> None:
        ...


class DeviceHandle(Protocol):
    name: str

    async def connect_link(self) -> LinkHandle:
        ...

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        ...


class Transport(Protocol):
    async def discover(
        self, name_filter: str, service_allowlist: Sequence[str]
    ) -> Optional[DeviceHandle]:
        ...


class BleakCharacteristic:
    def __init__(self, client: BleakClient, characteristic) -> None:
        self._client = client
        self._characteristic = characteristic

    async def subscribe(self, callback: PayloadCallback) -> None:
        def _on_notify(_sender, data: bytearray) -> None:
            callback(bytes(data) if data is not None else None)

        await self._client.start_notify(self._characteristic, _on_notify)


class BleakService:
    def __init__(self, client: BleakClient, service) -> None:
        self._client = client
        self._service = service

    async def get_characteristic(self, uuid: str) -> Optional[BleakCharacteristic]:
        characteristic = self._service.get_characteristic(uuid)
        if characteristic is None:
            return None
        return BleakCharacteristic(self._client, characteristic)


class BleakLink:
    def __init__(self, client: BleakClient) -> None:
        self._client = client

    async def get_service(self, uuid: str) -> Optional[BleakService]:
        service = self._client.services.get_service(uuid)
        if service is None:
            return None
        return BleakService(self._client, service)

    async def disconnect(self) -> None:
        if self._client.is_connected:
            await self._client.disconnect()


class BleakDevice:
    """A discovered device; disconnect observers fire from bleak's callback."""

    def __init__(self, device: BLEDevice, *, connect_timeout: float = 10.0) -> None:
        self._device = device
        self._connect_timeout = connect_timeout
        self._observers: list[Callable[[], None]] = []
        self.name = device.name or device.address

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._observers.append(callback)

    def _dispatch_disconnect(self, _client: BleakClient) -> None:
        logger.warning("BLE connection lost (callback): %s", self.name)
        for observer in list(self._observers):
            observer()

    async def connect_link(self) -> BleakLink:
        client = BleakClient(
            self._device,
            disconnected_callback=self._dispatch_disconnect,
            timeout=self._connect_timeout,
        )
        await client.connect()
        return BleakLink(client)


class BleakTransport:
    def __init__(self, *, scan_timeout: float = 10.0) -> None:
        self._scan_timeout = scan_timeout

    async def discover(
        self, name_filter: str, service_allowlist: Sequence[str]
    ) -> Optional[BleakDevice]:
        # the allowlist names services we may access, it is not an advertisement filter
        logger.info(
            "BLE device discovery started: name='%s' services=%s timeout=%.1fs",
            name_filter,
            list(service_allowlist),
            self._scan_timeout,
        )

        def _match(device: BLEDevice, adv: AdvertisementData) -> bool:
            return name_filter in (device.name, adv.local_name)

        device = await BleakScanner.find_device_by_filter(
            _match, timeout=self._scan_timeout
        )
        if device is None:
            return None
        return BleakDevice(device)
