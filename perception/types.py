"""
Detection records produced by the perception models.

Each modality has its own record type so that "no detection" (None or an
empty list) can never be confused with a zero-valued detection.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np


@dataclass(frozen=True)
class VideoFrame:
    """
    A captured camera frame.

    Identity is the timestamp: two frames compare equal when their
    timestamps match, regardless of pixel content.
    """

    timestamp_ms: float
    image: np.ndarray = field(compare=False, repr=False)  # RGB, HxWx3 uint8


@dataclass(frozen=True)
class Blendshape:
    """A named facial morph weight in [0, 1]."""

    category_name: str
    score: float


@dataclass(frozen=True, eq=False)
class FaceDetection:
    """
    Face landmarker output for a single frame.

    head_transform is the 4x4 facial transformation matrix in camera space,
    or None when the detector was configured not to emit it.
    """

    blendshapes: tuple[Blendshape, ...]
    head_transform: Optional[np.ndarray] = None


@dataclass(frozen=True, eq=False)
class HandDetection:
    """
    One detected hand.

    hand_index is the slot in the detector's result list; the detector does
    not keep it stable across frames.
    """

    hand_index: int
    landmarks: np.ndarray  # (N, 3), y up
    handedness: Optional[str] = None


@dataclass(frozen=True, eq=False)
class BodyDetection:
    """Body pose output with the root transform derived from landmark 0."""

    landmarks: np.ndarray  # (N, 3), y up
    primary_transform: np.ndarray  # (4, 4)


Detection = Union[FaceDetection, HandDetection, BodyDetection]
