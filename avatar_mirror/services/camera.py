"""
Camera capture.

Reads frames from an OpenCV capture device in a background thread and
exposes the latest one through a pull-based accessor. Frames are not
queued: a slow consumer only ever sees the newest frame.
"""

import threading
import time
from typing import Optional, Protocol

import cv2
from loguru import logger

from avatar_mirror.config import CameraSettings
from avatar_mirror.exceptions import CameraUnavailableError
from perception.types import VideoFrame


class VideoSource(Protocol):
    def current_frame(self) -> Optional[VideoFrame]: ...


class CameraSource:
    """
    Live camera stream.

    Each captured frame is converted to RGB and stamped with a strictly
    increasing monotonic timestamp in milliseconds.
    """

    def __init__(self, settings: CameraSettings):
        self.settings = settings
        self._capture: Optional[cv2.VideoCapture] = None
        self._latest: Optional[VideoFrame] = None
        self._last_timestamp = 0.0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.frames_captured = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Open the device and start capturing.

        Raises:
            CameraUnavailableError: If the device cannot be opened or yields no frame
        """
        device = int(self.settings.device) if self.settings.device.isdigit() else self.settings.device
        capture = cv2.VideoCapture(device)
        if not capture.isOpened():
            raise CameraUnavailableError(f"Unable to open camera {self.settings.device}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
        capture.set(cv2.CAP_PROP_FPS, self.settings.fps)

        # Some backends report opened=True but never deliver frames
        deadline = time.monotonic() + self.settings.open_timeout_seconds
        while True:
            ok, frame = capture.read()
            if ok and frame is not None:
                self._publish(frame)
                break
            if time.monotonic() > deadline:
                capture.release()
                raise CameraUnavailableError(f"Camera {self.settings.device} delivered no frames")
            time.sleep(0.03)

        self._capture = capture
        self._stop.clear()
        self._thread = threading.Thread(target=self._capture_loop, name="camera-thread", daemon=True)
        self._thread.start()
        logger.info(f"Camera {self.settings.device} opened ({self.settings.width}x{self.settings.height})")

    def current_frame(self) -> Optional[VideoFrame]:
        return self._latest

    def _publish(self, bgr) -> None:
        # Whole milliseconds: video-mode detectors reject repeated integer timestamps
        timestamp = float(max(int(time.monotonic() * 1000.0), int(self._last_timestamp) + 1))
        self._last_timestamp = timestamp
        rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
        self._latest = VideoFrame(timestamp_ms=timestamp, image=rgb)
        self.frames_captured += 1

    def _capture_loop(self) -> None:
        while not self._stop.is_set():
            ok, frame = self._capture.read()
            if not ok or frame is None:
                time.sleep(0.005)
                continue
            self._publish(frame)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.5)
            self._thread = None
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        logger.info("Camera stopped")
