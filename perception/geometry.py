"""
Landmark geometry shared by the perception wrappers.

All helpers are total: degenerate landmark sets produce NaN-valued axes
rather than exceptions.
"""

from typing import Optional

import numpy as np

# MediaPipe hand landmark indices
WRIST = 0
INDEX_MCP = 5
MIDDLE_MCP = 9
PINKY_MCP = 17

# MediaPipe pose landmark indices
NOSE = 0
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_HIP = 23
RIGHT_HIP = 24


def matrix_from_array(data, column_major: bool = True) -> np.ndarray:
    """
    Build a 4x4 matrix from 16 floats or a 4x4 array.

    Flat matrix buffers serialized for GPU pipelines are column-major (the
    default). The MediaPipe Python API returns row-major (4, 4) arrays; pass
    column_major=False for those.
    """
    matrix = np.asarray(data, dtype=np.float64).reshape(4, 4)
    return matrix.T.copy() if column_major else matrix


def to_y_up(landmarks) -> np.ndarray:
    """
    Convert detector landmarks (x right, y down, z away from the camera) to
    avatar space (x right, y up, z toward the camera).

    A half turn about X, so handedness is preserved.
    """
    points = np.array(landmarks, dtype=np.float64)
    if points.ndim == 2 and points.shape[1] >= 3:
        points[:, 1:3] *= -1.0
    return points


def _normalize(v: np.ndarray) -> np.ndarray:
    with np.errstate(invalid="ignore", divide="ignore"):
        return v / np.linalg.norm(v)


def palm_basis(landmarks: np.ndarray) -> Optional[np.ndarray]:
    """
    Orthonormal palm frame as a 3x3 matrix with columns (x, y, z).

    +Y runs from the wrist to the middle finger knuckle, +Z is the palm
    normal. Returns None when the landmark set lacks the palm knuckles.
    """
    points = np.asarray(landmarks, dtype=np.float64)
    if points.ndim != 2 or points.shape[0] <= PINKY_MCP or points.shape[1] < 3:
        return None

    points = points[:, :3]
    y_axis = _normalize(points[MIDDLE_MCP] - points[WRIST])
    across = points[INDEX_MCP] - points[PINKY_MCP]
    z_axis = _normalize(np.cross(across, y_axis))
    x_axis = np.cross(y_axis, z_axis)
    return np.column_stack([x_axis, y_axis, z_axis])


def torso_transform(landmarks: np.ndarray) -> np.ndarray:
    """
    Root transform of a body pose.

    Translation is landmark 0; rotation is the torso frame spanned by the
    shoulders and hips (+X across the body, +Y from hips to shoulders).
    Landmark sets too short to contain the hips keep an identity rotation.
    """
    points = np.asarray(landmarks, dtype=np.float64)
    transform = np.eye(4)
    if points.ndim != 2 or points.shape[0] == 0 or points.shape[1] < 3:
        return transform

    points = points[:, :3]
    transform[:3, 3] = points[NOSE]
    if points.shape[0] <= RIGHT_HIP:
        return transform

    across = (points[LEFT_SHOULDER] - points[RIGHT_SHOULDER]) + (points[LEFT_HIP] - points[RIGHT_HIP])
    up = (points[LEFT_SHOULDER] + points[RIGHT_SHOULDER]) / 2.0 - (points[LEFT_HIP] + points[RIGHT_HIP]) / 2.0

    x_axis = _normalize(across)
    z_axis = _normalize(np.cross(x_axis, up))
    y_axis = np.cross(z_axis, x_axis)
    transform[:3, :3] = np.column_stack([x_axis, y_axis, z_axis])
    return transform
