"""
Hand tracker wrapper around MediaPipe Hands.
"""

import numpy as np
from loguru import logger

from perception.base import Detector, ModelLoadError
from perception.geometry import to_y_up
from perception.types import HandDetection


class HandsDetector(Detector[list[HandDetection]]):
    """
    MediaPipe Hands provider.

    Returns zero, one or two HandDetection records. hand_index is the
    position in MediaPipe's result list, which is not stable across frames.
    Landmarks are in avatar space (y up, z toward the camera).
    """

    def __init__(
        self,
        max_hands: int = 2,
        min_detection_confidence: float = 0.7,
        min_tracking_confidence: float = 0.5,
    ) -> None:
        try:
            import mediapipe as mp  # type: ignore
        except Exception as e:
            raise ModelLoadError("MediaPipe is not installed") from e

        try:
            self._hands = mp.solutions.hands.Hands(
                static_image_mode=False,
                max_num_hands=int(max_hands),
                min_detection_confidence=float(min_detection_confidence),
                min_tracking_confidence=float(min_tracking_confidence),
            )
        except Exception as e:
            raise ModelLoadError(f"Failed to create hand tracker: {e}") from e
        logger.info(f"Hand tracker loaded (max_hands={max_hands})")

    @property
    def name(self) -> str:
        return "hands"

    def detect(self, image: np.ndarray, timestamp_ms: int) -> list[HandDetection]:
        res = self._hands.process(image)
        if not res or not getattr(res, "multi_hand_landmarks", None):
            return []

        handedness = getattr(res, "multi_handedness", None) or []
        out = []
        for index, hand in enumerate(res.multi_hand_landmarks[:2]):
            landmarks = to_y_up([[p.x, p.y, p.z] for p in hand.landmark])
            label = None
            if index < len(handedness) and handedness[index].classification:
                label = handedness[index].classification[0].label
            out.append(HandDetection(hand_index=index, landmarks=landmarks, handedness=label))
        return out

    def close(self) -> None:
        self._hands.close()
