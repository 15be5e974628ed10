"""
Transform conversion.

Pure functions mapping detection records to avatar-space values:
- Camera-space 4x4 matrices to Euler rotations
- Head rotation to damped neck/spine rotations
- Hand landmarks to a hand rotation and position
- Blendshape categories to morph weights

Every function is total. Degenerate matrices or landmark sets produce
NaN-valued rotations instead of raising.
"""

from types import MappingProxyType
from typing import NamedTuple, Optional

import numpy as np

from avatar_mirror.models.pose import BodyPose, Euler, FacePose, HandPose, Vector3
from perception.geometry import WRIST, palm_basis
from perception.types import BodyDetection, FaceDetection, HandDetection

# Rotation attenuates down the kinematic chain: head -> neck -> spine
NECK_DIVISOR = 5.0
SPINE_DIVISOR = 10.0
SPINE2_DIVISOR = 10.0
NECK_PITCH_BIAS = 0.3  # forward tilt added to the neck's x axis, radians

_GIMBAL_LIMIT = 0.9999999


class SecondaryRotations(NamedTuple):
    neck: Euler
    spine: Euler
    spine2: Euler


def matrix_to_euler(matrix) -> Euler:
    """
    Extract XYZ Euler angles from the rotation part of a 4x4 (or 3x3) matrix.

    Translation is discarded. The upper 3x3 is assumed to be unscaled; no
    orthonormalisation is attempted.
    """
    m = np.asarray(matrix, dtype=np.float64)[:3, :3]
    m00, m01, m02 = m[0]
    m11, m12 = m[1, 1], m[1, 2]
    m21, m22 = m[2, 1], m[2, 2]

    with np.errstate(invalid="ignore"):
        y = np.arcsin(np.clip(m02, -1.0, 1.0))
        if abs(m02) < _GIMBAL_LIMIT:
            x = np.arctan2(-m12, m22)
            z = np.arctan2(-m01, m00)
        else:
            x = np.arctan2(m21, m11)
            z = 0.0
    return Euler(float(x), float(y), float(z))


def face_to_rotation(head_transform) -> Euler:
    return matrix_to_euler(head_transform)


def body_to_rotation(primary_transform) -> Euler:
    return matrix_to_euler(primary_transform)


def derive_secondary_rotations(head: Euler) -> SecondaryRotations:
    """
    Damped copies of the head rotation for the neck and spine bones.

    Approximates rigid propagation along the spine instead of solving IK.
    """
    neck = head / NECK_DIVISOR
    return SecondaryRotations(
        neck=Euler(neck.x + NECK_PITCH_BIAS, neck.y, neck.z),
        spine=head / SPINE_DIVISOR,
        spine2=head / SPINE2_DIVISOR,
    )


def hand_landmarks_to_pose(landmarks) -> HandPose:
    """
    Hand orientation and position from a landmark set.

    Position is the wrist landmark; rotation is the palm frame. Landmark
    sets without the palm knuckles keep an identity rotation, and an empty
    set is placed at the origin.
    """
    points = np.asarray(landmarks, dtype=np.float64)
    position = Vector3()
    if points.ndim == 2 and points.shape[0] > WRIST and points.shape[1] >= 3:
        wx, wy, wz = points[WRIST, :3]
        position = Vector3(float(wx), float(wy), float(wz))

    basis = palm_basis(points)
    rotation = matrix_to_euler(basis) if basis is not None else Euler()
    return HandPose(rotation=rotation, position=position)


def blendshapes_to_weights(detection: FaceDetection) -> MappingProxyType:
    """Morph weights keyed by channel name, in detector order."""
    return MappingProxyType({b.category_name: float(b.score) for b in detection.blendshapes})


def face_detection_to_pose(detection: FaceDetection, timestamp_ms: Optional[float] = None) -> FacePose:
    weights = blendshapes_to_weights(detection)
    if detection.head_transform is None:
        return FacePose(head=None, neck=None, spine=None, spine2=None, morph_weights=weights, timestamp_ms=timestamp_ms)

    head = face_to_rotation(detection.head_transform)
    secondary = derive_secondary_rotations(head)
    return FacePose(
        head=head,
        neck=secondary.neck,
        spine=secondary.spine,
        spine2=secondary.spine2,
        morph_weights=weights,
        timestamp_ms=timestamp_ms,
    )


def hand_detections_to_poses(
    detections: list[HandDetection], timestamp_ms: Optional[float] = None
) -> dict[int, HandPose]:
    """Hand poses keyed by hand index; indices outside 0..1 are dropped."""
    poses = {}
    for detection in detections:
        if detection.hand_index not in (0, 1):
            continue
        pose = hand_landmarks_to_pose(detection.landmarks)
        poses[detection.hand_index] = HandPose(
            rotation=pose.rotation,
            position=pose.position,
            handedness=detection.handedness,
            timestamp_ms=timestamp_ms,
        )
    return poses


def body_detection_to_pose(detection: BodyDetection, timestamp_ms: Optional[float] = None) -> BodyPose:
    return BodyPose(spine=body_to_rotation(detection.primary_transform), timestamp_ms=timestamp_ms)
