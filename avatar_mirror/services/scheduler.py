"""
Frame scheduler.

A single cooperative loop on the display clock. Every tick:
1. If the camera has a new frame, run face detection inline and start
   hand and body detection in the background
2. Apply the current retarget state to the bound avatar
3. Hand the scene to the frame sink (the renderer), if any

Ticks with no new camera frame still apply and present, since the display
usually refreshes faster than the camera delivers frames.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

from loguru import logger

from avatar_mirror.models.scene import AvatarScene
from avatar_mirror.services.asset_swap import AssetSwapService
from avatar_mirror.services.camera import VideoSource
from avatar_mirror.services.detection_bus import DetectionBus
from avatar_mirror.services.mesh_binder import MeshBinder
from avatar_mirror.services.retarget_state import RetargetState


class FrameSink(Protocol):
    def present(self, scene: AvatarScene) -> None: ...


class DisplayClock:
    """Awaitable refresh-rate clock on a drift-free schedule."""

    def __init__(self, refresh_rate_hz: float):
        self.interval = 1.0 / refresh_rate_hz
        self._deadline: Optional[float] = None

    async def next_frame(self) -> float:
        """Sleep until the next refresh; returns its monotonic deadline."""
        now = time.monotonic()
        self._deadline = (self._deadline or now) + self.interval
        if self._deadline < now:
            # Late: drop the missed refreshes instead of bursting to catch up
            missed = int((now - self._deadline) / self.interval) + 1
            self._deadline += missed * self.interval
        await asyncio.sleep(self._deadline - now)
        return self._deadline


@dataclass
class SchedulerStats:
    ticks: int = 0
    video_frames: int = 0
    idle_ticks: int = 0
    applied_ticks: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class FrameScheduler:
    """Drives detection at the camera rate and retargeting at the display rate."""

    def __init__(
        self,
        video: VideoSource,
        bus: DetectionBus,
        state: RetargetState,
        assets: AssetSwapService,
        binder: MeshBinder,
        clock: DisplayClock,
        sink: Optional[FrameSink] = None,
    ):
        self.video = video
        self.bus = bus
        self.state = state
        self.assets = assets
        self.binder = binder
        self.clock = clock
        self.sink = sink
        self.stats = SchedulerStats()
        self._last_timestamp: Optional[float] = None

    async def tick(self) -> bool:
        """
        Run one display tick.

        Returns:
            True if a new camera frame was handed to the detectors
        """
        self.stats.ticks += 1
        advanced = False

        frame = self.video.current_frame()
        if frame is not None and frame.timestamp_ms != self._last_timestamp:
            self._last_timestamp = frame.timestamp_ms
            advanced = True
            self.stats.video_frames += 1
            # Face runs inline: it is the timing reference for the tick
            await self.bus.on_face_frame(frame)
            self.bus.on_hands_frame(frame)
            self.bus.on_body_frame(frame)
        else:
            self.stats.idle_ticks += 1

        binding = self.assets.binding
        if binding is not None:
            if self.binder.apply(binding, self.state.read()):
                self.stats.applied_ticks += 1
            if self.sink is not None:
                self.sink.present(binding.scene)
        return advanced

    async def run(self) -> None:
        """Tick forever on the display clock."""
        logger.info(f"Frame scheduler started at {1.0 / self.clock.interval:.0f} Hz")
        while True:
            await self.tick()
            await self.clock.next_frame()
