"""
Body pose tracker wrapper around MediaPipe Pose.
"""

from typing import Optional

import numpy as np
from loguru import logger

from perception.base import Detector, ModelLoadError
from perception.geometry import to_y_up, torso_transform
from perception.types import BodyDetection


class PoseDetector(Detector[Optional[BodyDetection]]):
    """
    MediaPipe Pose provider.

    Notes:
    - World landmarks (metric, hip-centred) are preferred over normalized
      image landmarks when the model provides them.
    - Landmarks are converted to avatar space (y up, z toward the camera).
    - primary_transform is derived from the landmark set by torso_transform().
    """

    def __init__(
        self,
        model_complexity: int = 1,
        smooth_landmarks: bool = True,
        segment: bool = False,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ) -> None:
        try:
            import mediapipe as mp  # type: ignore
        except Exception as e:
            raise ModelLoadError("MediaPipe is not installed") from e

        try:
            self._pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=int(model_complexity),
                smooth_landmarks=bool(smooth_landmarks),
                enable_segmentation=bool(segment),
                min_detection_confidence=float(min_detection_confidence),
                min_tracking_confidence=float(min_tracking_confidence),
            )
        except Exception as e:
            raise ModelLoadError(f"Failed to create pose tracker: {e}") from e
        logger.info(f"Pose tracker loaded (model_complexity={model_complexity})")

    @property
    def name(self) -> str:
        return "body"

    def detect(self, image: np.ndarray, timestamp_ms: int) -> Optional[BodyDetection]:
        res = self._pose.process(image)
        if not res:
            return None

        source = getattr(res, "pose_world_landmarks", None) or getattr(res, "pose_landmarks", None)
        if not source:
            return None

        landmarks = to_y_up([[p.x, p.y, p.z] for p in source.landmark])
        return BodyDetection(landmarks=landmarks, primary_transform=torso_transform(landmarks))

    def close(self) -> None:
        self._pose.close()
