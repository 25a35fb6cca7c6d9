#!/usr/bin/env python3
"""
Relay telemetry from the wearable to the document store.

    python -m telemetry.relay            # real device over BLE
    python -m telemetry.relay simulate   # simulated device

Runs until the link drops or Ctrl-C.
"""

import asyncio
import logging
import sys

from telemetry import config
from telemetry.buffers import LiveWindow
from telemetry.connection import ConnectionManager
from telemetry.errors import TelemetryError
from telemetry.flush import FlushScheduler
from telemetry.session import IngestSession
from telemetry.simulator import SimulatedTransport
from telemetry.sinks import HttpSink
from telemetry.transport import BleakTransport

logger = logging.getLogger("telemetry.relay")

STATUS_PERIOD_SEC = 5.0


def build_transport(simulate: bool):
    if simulate:
        return SimulatedTransport(
            config.DEVICE_NAME, config.SERVICE_UUID, config.CHARACTERISTIC_UUID
        )
    return BleakTransport(scan_timeout=config.SCAN_TIMEOUT)


async def report_window(window: LiveWindow):
    """Periodic status line standing in for the chart"""
    while True:
        await asyncio.sleep(STATUS_PERIOD_SEC)
        latest = window.latest()
        if latest is None:
            logger.info("Live window empty")
        else:
            logger.info(
                "Live window %d/%d, latest t=%dms values=%s",
                len(window),
                window.capacity,
                latest.timestamp,
                list(latest.values),
            )


async def run(simulate: bool = False) -> int:
    sink = HttpSink(config.STORE_URL)
    session = IngestSession(
        ConnectionManager(build_transport(simulate)),
        FlushScheduler(sink, config.COLLECTION, interval=config.FLUSH_INTERVAL),
        LiveWindow(config.WINDOW_CAPACITY),
    )
    session.start()
    reporter = asyncio.create_task(report_window(session.window))
    try:
        await session.connect(
            config.DEVICE_NAME, config.SERVICE_UUID, config.CHARACTERISTIC_UUID
        )
        await session.wait_disconnected()
        return 0
    except TelemetryError as e:
        logger.error("%s", e)
        return 1
    finally:
        reporter.cancel()
        await session.close()
        await sink.aclose()


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    simulate = len(argv) > 0 and argv[0] == "simulate"
    config.setup_logging()
    try:
        return asyncio.run(run(simulate))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
