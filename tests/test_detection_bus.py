import asyncio
import threading

import numpy as np
import pytest

from avatar_mirror.services.detection_bus import DetectionBus
from avatar_mirror.services.retarget_state import RetargetState
from conftest import FakeDetector, face_detection, hand_detection, make_frame, rotation_x
from perception.types import BodyDetection


def _bus(face=None, hands=None, body=None) -> DetectionBus:
    return DetectionBus(
        RetargetState(),
        face or FakeDetector("face", result=face_detection(np.eye(4), jawOpen=0.5)),
        hands or FakeDetector("hands", result=[hand_detection(0)]),
        body or FakeDetector("body", result=None),
    )


def test_face_frame_writes_face_state() -> None:
    bus = _bus()
    detection = asyncio.run(bus.on_face_frame(make_frame(10.0)))
    snapshot = bus.state.read()
    assert detection is not None
    assert snapshot.face.morph_weights["jawOpen"] == 0.5
    assert snapshot.face.timestamp_ms == 10.0
    assert snapshot.hands == (None, None)
    assert snapshot.body is None


def test_same_timestamp_is_processed_once() -> None:
    face = FakeDetector("face", result=face_detection(np.eye(4)))
    bus = _bus(face=face)

    async def scenario():
        await bus.on_face_frame(make_frame(5.0))
        await bus.on_face_frame(make_frame(5.0))
        await bus.on_face_frame(make_frame(3.0))

    asyncio.run(scenario())
    assert face.calls == [5]
    assert bus.face.stats.duplicate_skips == 2
    assert bus.state.read().face_writes == 1


def test_busy_channel_skips_new_frames() -> None:
    gate = threading.Event()
    hands = FakeDetector("hands", result=lambda ts: [hand_detection(0, offset=(ts, 0.0, 0.0))], gate=gate)
    bus = _bus(hands=hands)

    async def scenario():
        assert bus.on_hands_frame(make_frame(1.0)) is True
        await asyncio.sleep(0)
        assert bus.hands.in_flight
        assert bus.on_hands_frame(make_frame(2.0)) is False
        gate.set()
        await bus.drain()

    asyncio.run(scenario())
    assert hands.calls == [1]
    assert bus.hands.stats.busy_skips == 1
    assert bus.state.read().hands[0].position.x == 1.0
    assert not bus.hands.in_flight


def test_channels_do_not_wait_on_each_other() -> None:
    gate = threading.Event()
    body = FakeDetector("body", result=None, gate=gate)
    bus = _bus(body=body)

    async def scenario():
        bus.on_body_frame(make_frame(1.0))
        # Body is still blocked; face completes regardless
        await bus.on_face_frame(make_frame(1.0))
        assert bus.body.in_flight
        assert bus.state.read().face is not None
        gate.set()
        await bus.drain()

    asyncio.run(scenario())
    assert bus.body.stats.completions == 1


def test_empty_results_do_not_write() -> None:
    bus = _bus(
        face=FakeDetector("face", result=None),
        hands=FakeDetector("hands", result=[]),
    )

    async def scenario():
        await bus.on_face_frame(make_frame(1.0))
        bus.on_hands_frame(make_frame(1.0))
        await bus.drain()

    asyncio.run(scenario())
    snapshot = bus.state.read()
    assert snapshot.face is None
    assert snapshot.hands_writes == 0
    assert bus.face.stats.completions == 1
    assert bus.face.stats.detections == 0


def test_detector_failure_is_counted_and_recovers() -> None:
    face = FakeDetector("face", result=face_detection(np.eye(4)), error=RuntimeError("model crashed"))
    bus = _bus(face=face)

    async def scenario():
        assert await bus.on_face_frame(make_frame(1.0)) is None
        assert not bus.face.in_flight
        face.error = None
        assert await bus.on_face_frame(make_frame(2.0)) is not None

    asyncio.run(scenario())
    assert bus.face.stats.failures == 1
    assert bus.state.read().face_writes == 1


def test_stats_and_close() -> None:
    bus = _bus()
    asyncio.run(bus.on_face_frame(make_frame(1.0)))
    stats = bus.stats()
    assert set(stats) == {"face", "hands", "body"}
    assert stats["face"]["runs"] == 1
    assert stats["face"]["last_timestamp_ms"] == 1.0

    bus.close()
    assert all(channel.detector.closed for channel in bus.channels)


def test_body_frame_writes_body_spine() -> None:
    body = FakeDetector(
        "body",
        result=BodyDetection(landmarks=np.zeros((1, 3)), primary_transform=rotation_x(0.4)),
    )
    bus = _bus(body=body)

    async def scenario():
        assert bus.on_body_frame(make_frame(7.0)) is True
        await bus.drain()

    asyncio.run(scenario())
    snapshot = bus.state.read()
    assert snapshot.body.spine.x == pytest.approx(0.4)
    assert snapshot.body.timestamp_ms == 7.0
    assert snapshot.body_writes == 1
    assert snapshot.face is None


def test_cancelled_face_run_finishes_before_close() -> None:
    gate = threading.Event()
    face = FakeDetector("face", result=face_detection(np.eye(4), jawOpen=0.3), gate=gate)
    bus = _bus(face=face)

    async def scenario():
        caller = asyncio.create_task(bus.on_face_frame(make_frame(1.0)))
        await asyncio.sleep(0.01)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        # The inference keeps running in its worker thread
        assert bus.face.in_flight
        gate.set()
        await bus.drain()
        assert not bus.face.in_flight
        bus.close()

    asyncio.run(scenario())
    assert face.calls == [1]
    assert face.closed
    assert bus.state.read().face.morph_weights["jawOpen"] == 0.3
