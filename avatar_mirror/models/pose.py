"""
Avatar-space transform values.

These are the converted, renderer-facing forms of a detection: Euler
rotations, positions and morph weights. All records are immutable so a
published value can be shared between the writer and the render loop
without copying.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

import numpy as np
from scipy.spatial.transform import Rotation

# Rotation order used by the renderer: intrinsic X, then Y, then Z
EULER_ORDER = "XYZ"


@dataclass(frozen=True)
class Euler:
    """Euler angles in radians, XYZ order."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __truediv__(self, divisor: float) -> "Euler":
        return Euler(self.x / divisor, self.y / divisor, self.z / divisor)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def as_quaternion(self) -> np.ndarray:
        """Quaternion (x, y, z, w) for this rotation."""
        return Rotation.from_euler(EULER_ORDER, self.as_tuple()).as_quat()

    @classmethod
    def from_quaternion(cls, quaternion) -> "Euler":
        x, y, z = Rotation.from_quat(quaternion).as_euler(EULER_ORDER)
        return cls(float(x), float(y), float(z))


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class FacePose:
    """
    Everything one face detection contributes to the avatar.

    Rotations are None when the detector was not asked for a head transform.
    """

    head: Optional[Euler]
    neck: Optional[Euler]
    spine: Optional[Euler]
    spine2: Optional[Euler]
    morph_weights: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    timestamp_ms: Optional[float] = None


@dataclass(frozen=True)
class HandPose:
    rotation: Euler
    position: Vector3
    handedness: Optional[str] = None
    timestamp_ms: Optional[float] = None


@dataclass(frozen=True)
class BodyPose:
    spine: Euler
    timestamp_ms: Optional[float] = None


@dataclass(frozen=True)
class RetargetSnapshot:
    """
    Point-in-time view of the retarget state.

    None means that modality (or hand slot) has never been observed.
    """

    face: Optional[FacePose] = None
    hands: tuple[Optional[HandPose], Optional[HandPose]] = (None, None)
    body: Optional[BodyPose] = None
    face_writes: int = 0
    hands_writes: int = 0
    body_writes: int = 0
