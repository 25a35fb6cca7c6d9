"""Error taxonomy for device connection and batch persistence."""


class TelemetryError(Exception):
    """Base class for every error raised by the telemetry relay."""


class DeviceNotFound(TelemetryError):
    """No matching device was discovered, or discovery was cancelled."""


class LinkFailure(TelemetryError):
    """The link to a discovered device could not be established."""


class ServiceUnavailable(TelemetryError):
    """The requested service does not resolve on the connected device."""


class CharacteristicUnavailable(TelemetryError):
    """The requested characteristic cannot be resolved or subscribed to."""


class SinkWriteFailure(TelemetryError):
    """The persistence sink rejected a batch write."""
