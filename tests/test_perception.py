import numpy as np
import pytest
import requests

from perception.base import ModelLoadError
from perception.face.landmarker import resolve_model_asset
from perception.geometry import palm_basis, to_y_up, torso_transform
from conftest import hand_landmarks


class _Response:
    content = b"bundle"

    def raise_for_status(self) -> None:
        return None


def test_local_model_bundle(tmp_path) -> None:
    bundle = tmp_path / "face_landmarker.task"
    bundle.write_bytes(b"bundle")
    assert resolve_model_asset(str(bundle), str(tmp_path / "cache")) == bundle


def test_missing_local_bundle(tmp_path) -> None:
    with pytest.raises(ModelLoadError):
        resolve_model_asset(str(tmp_path / "missing.task"), str(tmp_path))


def test_remote_bundle_is_downloaded_once(tmp_path, monkeypatch) -> None:
    calls = []

    def fake_get(url, timeout=None):
        calls.append(url)
        return _Response()

    monkeypatch.setattr(requests, "get", fake_get)
    url = "https://models.example.com/face_landmarker/float16/1/face_landmarker.task"
    first = resolve_model_asset(url, str(tmp_path))
    second = resolve_model_asset(url, str(tmp_path))
    assert first == second == tmp_path / "face_landmarker.task"
    assert first.read_bytes() == b"bundle"
    assert calls == [url]


def test_remote_bundle_failure(tmp_path, monkeypatch) -> None:
    def fail(url, timeout=None):
        raise requests.Timeout("timed out")

    monkeypatch.setattr(requests, "get", fail)
    with pytest.raises(ModelLoadError, match="download"):
        resolve_model_asset("https://models.example.com/face.task", str(tmp_path))


def test_palm_basis_needs_knuckles() -> None:
    assert palm_basis(np.zeros((5, 3))) is None
    np.testing.assert_allclose(palm_basis(hand_landmarks()), np.eye(3), atol=1e-12)


def test_torso_transform_translation_from_first_landmark() -> None:
    landmarks = np.array([[0.1, 0.2, 0.3], [0.0, 0.0, 0.0]])
    transform = torso_transform(landmarks)
    np.testing.assert_allclose(transform[:3, 3], [0.1, 0.2, 0.3])
    np.testing.assert_allclose(transform[:3, :3], np.eye(3))


def test_to_y_up_flips_y_and_z() -> None:
    points = to_y_up([[0.1, 0.2, 0.3]])
    np.testing.assert_allclose(points, [[0.1, -0.2, -0.3]])
    assert to_y_up(np.zeros((0, 3))).shape == (0, 3)
