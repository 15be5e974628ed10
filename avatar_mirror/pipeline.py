"""
Retargeting pipeline assembly.

Builds every component from settings, passes the single RetargetState to
the Detection Bus (writer) and the scheduler (reader), and manages the
startup/shutdown lifecycle.
"""

import asyncio
import contextlib
from typing import Optional

from loguru import logger

from avatar_mirror.config import Settings
from avatar_mirror.exceptions import AssetLoadError
from avatar_mirror.services.asset_swap import AssetSwapService
from avatar_mirror.services.camera import CameraSource
from avatar_mirror.services.detection_bus import DetectionBus
from avatar_mirror.services.mesh_binder import MeshBinder
from avatar_mirror.services.mesh_loader import AvatarSource, MeshLoaderService, with_avatar_query
from avatar_mirror.services.retarget_state import RetargetState
from avatar_mirror.services.scheduler import DisplayClock, FrameScheduler, FrameSink


class RetargetPipeline:
    """Camera, detectors, state, binder and render loop for one avatar view."""

    def __init__(
        self,
        settings: Settings,
        camera,
        bus: DetectionBus,
        assets: AssetSwapService,
        clock: DisplayClock,
        sink: Optional[FrameSink] = None,
    ):
        self.settings = settings
        self.camera = camera
        self.bus = bus
        self.state = bus.state
        self.assets = assets
        self.scheduler = FrameScheduler(
            video=camera,
            bus=bus,
            state=self.state,
            assets=assets,
            binder=assets.binder,
            clock=clock,
            sink=sink,
        )
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def build(cls, settings: Settings, sink: Optional[FrameSink] = None) -> "RetargetPipeline":
        """
        Create the pipeline with MediaPipe detectors and an OpenCV camera.

        Raises:
            ModelLoadError: If any detector model cannot be loaded
        """
        from perception.face import FaceLandmarkerDetector
        from perception.hands import HandsDetector
        from perception.pose import PoseDetector

        face = FaceLandmarkerDetector(
            model_asset_path=settings.face.model_asset_path,
            model_cache_dir=settings.face.model_cache_dir,
            max_faces=settings.face.max_faces,
            delegate=settings.face.delegate,
            running_mode=settings.face.running_mode,
            emit_blendshapes=settings.face.emit_blendshapes,
            emit_transform_matrix=settings.face.emit_transform_matrix,
        )
        hands = HandsDetector(
            max_hands=settings.hands.max_hands,
            min_detection_confidence=settings.hands.min_detection_confidence,
            min_tracking_confidence=settings.hands.min_tracking_confidence,
        )
        body = PoseDetector(
            model_complexity=settings.pose.model_complexity,
            smooth_landmarks=settings.pose.smooth_landmarks,
            segment=settings.pose.segment,
            min_detection_confidence=settings.pose.min_detection_confidence,
            min_tracking_confidence=settings.pose.min_tracking_confidence,
        )

        bus = DetectionBus(RetargetState(), face, hands, body)
        assets = AssetSwapService(MeshLoaderService(settings.avatar), MeshBinder.from_settings(settings.avatar))
        return cls(
            settings=settings,
            camera=CameraSource(settings.camera),
            bus=bus,
            assets=assets,
            clock=DisplayClock(settings.render.refresh_rate_hz),
            sink=sink,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """
        Open the camera, load the default avatar and start the render loop.

        Raises:
            CameraUnavailableError: If the camera cannot be opened
        """
        await asyncio.to_thread(self.camera.start)

        default_url = self.settings.avatar.default_url
        if default_url:
            source = AvatarSource.from_url(with_avatar_query(default_url, self.settings.avatar.url_query))
            try:
                await self.assets.swap_asset(source)
            except AssetLoadError as e:
                logger.error(f"Default avatar unavailable, waiting for a selection: {e}")

        self._task = asyncio.create_task(self.scheduler.run(), name="frame-scheduler")
        self._task.add_done_callback(self._on_scheduler_done)

    @staticmethod
    def _on_scheduler_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Frame scheduler stopped")

    async def stop(self) -> None:
        """Stop the render loop, then release detectors and the camera."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self.bus.drain()
        self.bus.close()
        await asyncio.to_thread(self.camera.stop)

    def health(self) -> dict[str, str]:
        binding = self.assets.binding
        return {
            "camera": "healthy" if getattr(self.camera, "running", False) else "unavailable",
            "detectors": "closed" if self.bus.closed else "healthy",
            "render_loop": "healthy" if self.running else "stopped",
            "avatar": "healthy" if binding is not None else "unbound",
        }
