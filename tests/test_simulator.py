import numpy as np
import pytest

from conftest import CHAR_UUID, SERVICE_UUID, run
from telemetry.buffers import LiveWindow
from telemetry.connection import ConnectionManager, ConnectionState
from telemetry.decoder import decode
from telemetry.errors import DeviceNotFound, ServiceUnavailable
from telemetry.flush import FlushScheduler
from telemetry.session import IngestSession
from telemetry.simulator import BASELINE, SimulatedTransport, make_payload


def test_payload_decodes_to_twelve_channels():
    rng = np.random.default_rng(0)
    sample = decode(make_payload(0.25, rng), 250)
    assert len(sample.values) == 12
    assert not sample.is_degraded
    assert all(abs(v - BASELINE) < 1200 for v in sample.values)


def test_stream_ends_when_device_drops_link():
    transport = SimulatedTransport("MIRAS", SERVICE_UUID, CHAR_UUID, rate_hz=1000, drop_after=5, seed=1)

    async def scenario():
        manager = ConnectionManager(transport)
        stream = await manager.connect("MIRAS", SERVICE_UUID, CHAR_UUID)
        return manager, [p async for p in stream]

    manager, payloads = run(scenario())
    assert len(payloads) == 5
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.device is None


def test_service_lookup_is_case_insensitive():
    transport = SimulatedTransport("MIRAS", SERVICE_UUID.upper(), CHAR_UUID.upper(), drop_after=0)

    async def scenario():
        manager = ConnectionManager(transport)
        stream = await manager.connect("MIRAS", SERVICE_UUID, CHAR_UUID)
        return [p async for p in stream]

    assert run(scenario()) == []


def test_unknown_name_is_not_found():
    transport = SimulatedTransport("MIRAS", SERVICE_UUID, CHAR_UUID)
    with pytest.raises(DeviceNotFound):
        run(ConnectionManager(transport).connect("OTHER", SERVICE_UUID, CHAR_UUID))


def test_unknown_service_is_unavailable():
    transport = SimulatedTransport("MIRAS", SERVICE_UUID, CHAR_UUID)
    with pytest.raises(ServiceUnavailable):
        run(ConnectionManager(transport).connect("MIRAS", "0000180d-0000-1000-8000-00805f9b34fb", CHAR_UUID))


def test_session_relays_simulated_samples(sink):
    transport = SimulatedTransport("MIRAS", SERVICE_UUID, CHAR_UUID, rate_hz=1000, drop_after=40, seed=2)

    async def scenario():
        session = IngestSession(
            ConnectionManager(transport),
            FlushScheduler(sink, "MIRASdata", interval=0.01),
            LiveWindow(25),
        )
        session.start()
        await session.connect("MIRAS", SERVICE_UUID, CHAR_UUID)
        await session.wait_disconnected()
        await session.close()
        return session

    session = run(scenario())
    sent = [s for _, _, batch in sink.writes for s in batch.samples]
    assert len(sent) == 40
    assert session.window.snapshot() == sent[-25:]
    timestamps = [s.timestamp for s in sent]
    assert timestamps == sorted(timestamps)


def test_reconnect_after_drop_streams_again():
    transport = SimulatedTransport("MIRAS", SERVICE_UUID, CHAR_UUID, rate_hz=1000, drop_after=3, seed=3)

    async def scenario():
        manager = ConnectionManager(transport)
        counts = []
        for _ in range(2):
            stream = await manager.connect("MIRAS", SERVICE_UUID, CHAR_UUID)
            counts.append(len([n async for n in stream]))
        return counts

    assert run(scenario()) == [3, 3]
