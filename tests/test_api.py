import base64
import json

import numpy as np
import pytest
from fastapi.testclient import TestClient

from avatar_mirror.api.deps import get_pipeline
from avatar_mirror.config import Settings
from avatar_mirror.main import create_app
from avatar_mirror.models.pose import Euler, FacePose
from avatar_mirror.pipeline import RetargetPipeline
from avatar_mirror.services.asset_swap import AssetSwapService
from avatar_mirror.services.detection_bus import DetectionBus
from avatar_mirror.services.mesh_binder import MeshBinder
from avatar_mirror.services.mesh_loader import MeshLoaderService
from avatar_mirror.services.retarget_state import RetargetState
from avatar_mirror.services.scheduler import DisplayClock
from conftest import FakeDetector, FakeVideo, face_detection, gltf_bytes

PREFIX = "/api/v1"


@pytest.fixture
def pipeline(avatar_settings) -> RetargetPipeline:
    settings = Settings(avatar=avatar_settings)
    bus = DetectionBus(
        RetargetState(),
        FakeDetector("face", result=face_detection(np.eye(4))),
        FakeDetector("hands", result=[]),
        FakeDetector("body", result=None),
    )
    assets = AssetSwapService(MeshLoaderService(avatar_settings), MeshBinder.from_settings(avatar_settings))
    return RetargetPipeline(settings, FakeVideo(), bus, assets, DisplayClock(60.0))


@pytest.fixture
def client(pipeline) -> TestClient:
    # No context manager: the lifespan (camera, models) is not started
    app = create_app()
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return TestClient(app)


def test_liveness(client) -> None:
    response = client.get(f"{PREFIX}/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_health_reports_unbound_avatar(client) -> None:
    response = client.get(f"{PREFIX}/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["avatar"] == "unbound"
    assert body["checks"]["render_loop"] == "stopped"


def test_readiness_requires_render_loop(client) -> None:
    response = client.get(f"{PREFIX}/health/ready")
    assert response.status_code == 503


def test_get_avatar_before_selection(client) -> None:
    response = client.get(f"{PREFIX}/avatar")
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "not_found"


def test_select_avatar_by_path(client, avatar_file) -> None:
    response = client.post(f"{PREFIX}/avatar", json={"url": avatar_file()})
    assert response.status_code == 200
    body = response.json()
    assert body["bones"] == {"head": "Head", "neck": "Neck", "spine": "Spine", "spine2": "Spine2"}
    assert body["hands"] == ["LeftHand", "RightHand"]
    assert body["morph_meshes"] == ["Wolf3D_Head", "Wolf3D_Teeth"]
    assert body["morph_channels"] == 3

    assert client.get(f"{PREFIX}/avatar").json()["source"] == body["source"]


def test_select_avatar_by_data_url(client) -> None:
    payload = base64.b64encode(gltf_bytes()).decode()
    response = client.post(f"{PREFIX}/avatar", json={"url": f"data:model/gltf+json;base64,{payload}"})
    assert response.status_code == 200
    assert response.json()["source"] == "data-url"


def test_select_missing_avatar_keeps_current(client, avatar_file, tmp_path) -> None:
    client.post(f"{PREFIX}/avatar", json={"url": avatar_file()})
    response = client.post(f"{PREFIX}/avatar", json={"url": str(tmp_path / "missing.glb")})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "asset_load_failed"
    assert client.get(f"{PREFIX}/avatar").status_code == 200


def test_select_avatar_download_failure(client, monkeypatch) -> None:
    import requests

    requested = []

    def fail(url, *args, **kwargs):
        requested.append(url)
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "get", fail)
    response = client.post(f"{PREFIX}/avatar", json={"url": "https://models.example.com/a.glb"})
    assert response.status_code == 502
    assert requested == ["https://models.example.com/a.glb?morphTargets=ARKit&textureAtlas=1024"]


def test_select_avatar_rejects_empty_url(client) -> None:
    assert client.post(f"{PREFIX}/avatar", json={"url": ""}).status_code == 422


def test_upload_avatar(client) -> None:
    response = client.post(
        f"{PREFIX}/avatar/upload",
        files={"file": ("mine.gltf", gltf_bytes(), "model/gltf+json")},
    )
    assert response.status_code == 200
    assert response.json()["source"] == "mine.gltf"


def test_pose_is_empty_before_detection(client) -> None:
    body = client.get(f"{PREFIX}/pose").json()
    assert body["face"] is None
    assert body["hands"] == [None, None]
    assert body["body"] is None
    assert body["writes"] == {"face": 0, "hands": 0, "body": 0}


def test_pose_reports_latest_face(client, pipeline) -> None:
    pipeline.state.write_face(
        FacePose(
            head=Euler(0.1, float("nan"), 0.0),
            neck=Euler(0.32),
            spine=Euler(0.01),
            spine2=Euler(0.01),
            morph_weights={"jawOpen": 0.7},
            timestamp_ms=33.0,
        )
    )
    body = client.get(f"{PREFIX}/pose").json()
    assert body["face"]["head"] == {"x": 0.1, "y": None, "z": 0.0}
    assert body["face"]["neck"]["x"] == pytest.approx(0.32)
    assert body["face"]["morph_weights"] == {"jawOpen": 0.7}
    assert body["writes"]["face"] == 1


def test_pose_stats(client) -> None:
    body = client.get(f"{PREFIX}/pose/stats").json()
    assert set(body["detectors"]) == {"face", "hands", "body"}
    assert body["scheduler"]["ticks"] == 0
    assert body["avatar_swaps"] == 0


def test_health_reports_detectors(client, pipeline) -> None:
    assert client.get(f"{PREFIX}/health").json()["checks"]["detectors"] == "healthy"
    pipeline.bus.close()
    assert client.get(f"{PREFIX}/health").json()["checks"]["detectors"] == "closed"


def test_upload_avatar_with_broken_node_rotation(client) -> None:
    document = {
        "asset": {"version": "2.0"},
        "nodes": [{"name": "Head", "rotation": [0.0, 0.0, 0.0, 0.0]}],
    }
    response = client.post(
        f"{PREFIX}/avatar/upload",
        files={"file": ("bad.gltf", json.dumps(document).encode("utf-8"), "model/gltf+json")},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "asset_load_failed"
