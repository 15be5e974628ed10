"""Shared fixtures: fake detectors, frames and small avatar assets."""

import json
import threading
from typing import Any, Callable, Optional

import numpy as np
import pytest

from avatar_mirror.config import AvatarSettings
from avatar_mirror.models.pose import Euler
from avatar_mirror.models.scene import AvatarScene, MorphMesh, SceneNode
from perception.base import Detector
from perception.types import Blendshape, FaceDetection, HandDetection, VideoFrame


class FakeDetector(Detector):
    """
    Detector returning canned results.

    result may be a value or a callable taking the timestamp. When a gate
    event is given, detect() blocks until it is set.
    """

    def __init__(
        self,
        name: str,
        result: Any = None,
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ):
        self._name = name
        self.result = result
        self.error = error
        self.gate = gate
        self.calls: list[int] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    def detect(self, image, timestamp_ms: int):
        self.calls.append(timestamp_ms)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        if callable(self.result):
            return self.result(timestamp_ms)
        return self.result

    def close(self) -> None:
        self.closed = True


class FakeVideo:
    """Video source whose current frame is set by the test."""

    def __init__(self, frame: Optional[VideoFrame] = None):
        self.frame = frame
        self.running = True

    def current_frame(self) -> Optional[VideoFrame]:
        return self.frame

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False


def make_frame(timestamp_ms: float) -> VideoFrame:
    return VideoFrame(timestamp_ms=timestamp_ms, image=np.zeros((4, 4, 3), dtype=np.uint8))


def face_detection(transform=None, **weights: float) -> FaceDetection:
    blendshapes = tuple(Blendshape(name, score) for name, score in weights.items())
    return FaceDetection(blendshapes=blendshapes, head_transform=transform)


def hand_landmarks(offset=(0.0, 0.0, 0.0)) -> np.ndarray:
    """21 hand landmarks with the palm facing +Z and fingers along +Y."""
    points = np.zeros((21, 3))
    points[5] = (0.5, 1.0, 0.0)  # index knuckle
    points[9] = (0.0, 1.0, 0.0)  # middle knuckle
    points[17] = (-0.5, 1.0, 0.0)  # pinky knuckle
    return points + np.asarray(offset)


def hand_detection(index: int, offset=(0.0, 0.0, 0.0), handedness: str = "Left") -> HandDetection:
    return HandDetection(hand_index=index, landmarks=hand_landmarks(offset), handedness=handedness)


def rotation_x(angle: float) -> np.ndarray:
    c, s = np.cos(angle), np.sin(angle)
    matrix = np.eye(4)
    matrix[1, 1], matrix[1, 2] = c, -s
    matrix[2, 1], matrix[2, 2] = s, c
    return matrix


def build_scene(
    channels: Optional[dict[str, list[str]]] = None,
    bones=("Head", "Neck", "Spine", "Spine2"),
    hands=("LeftHand", "RightHand"),
    source: str = "test-avatar",
) -> AvatarScene:
    """In-memory avatar: bone nodes, hand nodes and morph meshes."""
    if channels is None:
        channels = {
            "Wolf3D_Head": ["jawOpen", "eyeBlinkLeft", "mouthSmileLeft"],
            "Wolf3D_Teeth": ["jawOpen"],
        }
    nodes = []
    for name in list(bones) + list(hands):
        nodes.append(SceneNode(name=name, index=len(nodes), rotation=Euler()))
    for mesh_name, names in channels.items():
        mesh = MorphMesh(
            name=mesh_name,
            morph_target_dictionary={n: i for i, n in enumerate(names)},
            morph_target_influences=[0.0] * len(names),
        )
        nodes.append(SceneNode(name=mesh_name, index=len(nodes), mesh=mesh))
    return AvatarScene(nodes, source=source)


def gltf_bytes(
    channels: Optional[dict[str, list[str]]] = None,
    bones=("Head", "Neck", "Spine", "Spine2"),
    hands=("LeftHand", "RightHand"),
) -> bytes:
    """glTF JSON document with the same layout as build_scene."""
    if channels is None:
        channels = {
            "Wolf3D_Head": ["jawOpen", "eyeBlinkLeft", "mouthSmileLeft"],
            "Wolf3D_Teeth": ["jawOpen"],
        }
    nodes: list[dict] = [{"name": name} for name in list(bones) + list(hands)]
    meshes = []
    for mesh_name, names in channels.items():
        nodes.append({"name": mesh_name, "mesh": len(meshes)})
        meshes.append(
            {
                "name": mesh_name,
                "primitives": [
                    {
                        "attributes": {"POSITION": 0},
                        "targets": [{"POSITION": 0} for _ in names],
                    }
                ],
                "weights": [0.0] * len(names),
                "extras": {"targetNames": names},
            }
        )
    document = {
        "asset": {"version": "2.0"},
        "scene": 0,
        "scenes": [{"nodes": list(range(len(nodes)))}],
        "nodes": nodes,
        "meshes": meshes,
    }
    return json.dumps(document).encode("utf-8")


@pytest.fixture
def avatar_settings() -> AvatarSettings:
    return AvatarSettings(
        default_url="",
        left_hand_nodes=["Wolf3D_Left_Hand", "LeftHand"],
        right_hand_nodes=["Wolf3D_Right_Hand", "RightHand"],
    )


@pytest.fixture
def avatar_file(tmp_path) -> Callable[..., str]:
    """Write a glTF avatar to disk and return its path."""

    def _write(name: str = "avatar.gltf", **kwargs) -> str:
        path = tmp_path / name
        path.write_bytes(gltf_bytes(**kwargs))
        return str(path)

    return _write
