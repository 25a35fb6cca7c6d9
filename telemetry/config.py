import logging
import os
import sys

DEVICE_NAME = os.getenv("TELEMETRY_DEVICE_NAME", "MIRAS")
SERVICE_UUID = os.getenv(
    "TELEMETRY_SERVICE_UUID", "3843D836-4F99-346C-B334-CCC8E9DFAFAB"
)
CHARACTERISTIC_UUID = os.getenv(
    "TELEMETRY_CHARACTERISTIC_UUID", "3843D836-4F99-346C-B334-CCC8E9DFAFAB"
)

COLLECTION = os.getenv("TELEMETRY_COLLECTION", "MIRASdata")
STORE_URL = os.getenv("TELEMETRY_STORE_URL", "http://localhost:8000")

FLUSH_INTERVAL = float(os.getenv("TELEMETRY_FLUSH_INTERVAL", "1.0"))
WINDOW_CAPACITY = int(os.getenv("TELEMETRY_WINDOW_CAPACITY", "500"))
SCAN_TIMEOUT = float(os.getenv("TELEMETRY_SCAN_TIMEOUT", "10.0"))

LOG_LEVEL = os.getenv("TELEMETRY_LOG_LEVEL", "INFO")


def setup_logging(level=LOG_LEVEL):
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
