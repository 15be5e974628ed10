"""
Detection bus.

Owns the three independent inference cycles (face, hands, body). Each
cycle is a DetectionChannel that:
- Runs its detector at most once per frame timestamp
- Refuses new work while an inference is in flight
- Runs the blocking model call in a worker thread
- Delivers the result to its completion callbacks on the event-loop thread

Completion callbacks convert the result and write only the modality's own
slice of RetargetState. Channels never wait on each other.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from loguru import logger

from avatar_mirror.services.conversion import (
    body_detection_to_pose,
    face_detection_to_pose,
    hand_detections_to_poses,
)
from avatar_mirror.services.retarget_state import RetargetState
from perception.base import Detector
from perception.types import BodyDetection, FaceDetection, HandDetection, VideoFrame

T = TypeVar("T")


@dataclass
class ChannelStats:
    """Counters for one detection channel."""

    runs: int = 0
    completions: int = 0
    detections: int = 0
    duplicate_skips: int = 0
    busy_skips: int = 0
    failures: int = 0
    last_latency_ms: float = 0.0
    last_timestamp_ms: Optional[float] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class DetectionChannel(Generic[T]):
    """One modality's inference cycle around a Detector."""

    def __init__(self, detector: Detector[T]):
        self.detector = detector
        self.name = detector.name
        self.stats = ChannelStats()
        self._last_timestamp: Optional[float] = None
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None
        self._callbacks: list[Callable[[VideoFrame, T], None]] = []

    def on_results(self, callback: Callable[[VideoFrame, T], None]) -> None:
        """Register a completion callback, called with (frame, result)."""
        self._callbacks.append(callback)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _claim(self, frame: VideoFrame) -> bool:
        if self._last_timestamp is not None and frame.timestamp_ms <= self._last_timestamp:
            self.stats.duplicate_skips += 1
            return False
        if self._in_flight:
            self.stats.busy_skips += 1
            logger.debug(f"{self.name} busy, skipping frame {frame.timestamp_ms}")
            return False
        self._last_timestamp = frame.timestamp_ms
        self._in_flight = True
        return True

    async def _infer(self, frame: VideoFrame) -> Optional[T]:
        self.stats.runs += 1
        started = time.perf_counter()
        try:
            result = await asyncio.to_thread(self.detector.detect, frame.image, int(frame.timestamp_ms))
        except Exception:
            self.stats.failures += 1
            logger.exception(f"{self.name} inference failed on frame {frame.timestamp_ms}")
            return None
        finally:
            self._in_flight = False

        self.stats.completions += 1
        self.stats.last_latency_ms = (time.perf_counter() - started) * 1000.0
        self.stats.last_timestamp_ms = frame.timestamp_ms
        if result:
            self.stats.detections += 1
        for callback in self._callbacks:
            callback(frame, result)
        return result

    async def run(self, frame: VideoFrame) -> Optional[T]:
        """
        Run inference on frame and wait for the result.

        Returns None when the frame was skipped (already processed, or an
        inference is in flight) or when the detector failed.
        """
        if not self._claim(frame):
            return None
        self._task = asyncio.create_task(self._infer(frame), name=f"detect-{self.name}")
        # Cancelling the caller leaves the inference running; wait_idle() still sees it
        return await asyncio.shield(self._task)

    def dispatch(self, frame: VideoFrame) -> Optional[asyncio.Task]:
        """
        Start inference on frame without waiting for it.

        The result is delivered to the completion callbacks only. Returns the
        task, or None when the frame was skipped.
        """
        if not self._claim(frame):
            return None
        self._task = asyncio.create_task(self._infer(frame), name=f"detect-{self.name}")
        self._task.add_done_callback(self._log_task_failure)
        return self._task

    def _log_task_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"{self.name} completion callback failed")

    async def wait_idle(self) -> None:
        """Wait for the in-flight inference, if any."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})


class DetectionBus:
    """
    Routes each detector's results into its slice of RetargetState.

    Write ownership:
    - face: head, neck, spine, spine2 rotations and morph weights
    - hands: per-hand rotation and position
    - body: spine rotation (takes precedence over the face-derived spine)
    """

    def __init__(
        self,
        state: RetargetState,
        face_detector: Detector[Optional[FaceDetection]],
        hands_detector: Detector[list[HandDetection]],
        body_detector: Detector[Optional[BodyDetection]],
    ):
        self.state = state
        self.closed = False
        self.face = DetectionChannel(face_detector)
        self.hands = DetectionChannel(hands_detector)
        self.body = DetectionChannel(body_detector)

        self.face.on_results(self._on_face_results)
        self.hands.on_results(self._on_hands_results)
        self.body.on_results(self._on_body_results)

    async def on_face_frame(self, frame: VideoFrame) -> Optional[FaceDetection]:
        """Run face detection inline; a timestamp is only ever processed once."""
        return await self.face.run(frame)

    def on_hands_frame(self, frame: VideoFrame) -> bool:
        """Fire-and-forget hand detection. Returns True if inference started."""
        return self.hands.dispatch(frame) is not None

    def on_body_frame(self, frame: VideoFrame) -> bool:
        """Fire-and-forget body detection. Returns True if inference started."""
        return self.body.dispatch(frame) is not None

    def _on_face_results(self, frame: VideoFrame, detection: Optional[FaceDetection]) -> None:
        if detection is None:
            return
        self.state.write_face(face_detection_to_pose(detection, frame.timestamp_ms))

    def _on_hands_results(self, frame: VideoFrame, detections: list[HandDetection]) -> None:
        if not detections:
            return
        self.state.write_hands(hand_detections_to_poses(detections, frame.timestamp_ms))

    def _on_body_results(self, frame: VideoFrame, detection: Optional[BodyDetection]) -> None:
        if detection is None:
            return
        self.state.write_body(body_detection_to_pose(detection, frame.timestamp_ms))

    @property
    def channels(self) -> tuple[DetectionChannel, ...]:
        return (self.face, self.hands, self.body)

    def stats(self) -> dict[str, dict[str, Any]]:
        return {channel.name: channel.stats.as_dict() for channel in self.channels}

    async def drain(self) -> None:
        """Wait until no inference is in flight, including inline face runs."""
        for channel in self.channels:
            await channel.wait_idle()

    def close(self) -> None:
        self.closed = True
        for channel in self.channels:
            try:
                channel.detector.close()
            except Exception as e:
                logger.warning(f"Failed to close {channel.name} detector: {e}")
