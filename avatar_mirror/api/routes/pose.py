"""
Retarget state endpoints.

Read-only views of what the detectors last reported, in avatar space,
and of the pipeline counters.
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends

from avatar_mirror.api.deps import get_pipeline
from avatar_mirror.models.pose import BodyPose, Euler, FacePose, HandPose, Vector3
from avatar_mirror.models.schemas import (
    BodyPoseModel,
    EulerModel,
    FacePoseModel,
    HandPoseModel,
    PipelineStatsResponse,
    PoseSnapshotResponse,
    Vector3Model,
)
from avatar_mirror.pipeline import RetargetPipeline

router = APIRouter()


def _finite(value: float) -> Optional[float]:
    # JSON has no NaN/Infinity
    value = float(value)
    return value if math.isfinite(value) else None


def _euler(rotation: Optional[Euler]) -> Optional[EulerModel]:
    if rotation is None:
        return None
    return EulerModel(x=_finite(rotation.x), y=_finite(rotation.y), z=_finite(rotation.z))


def _vector(position: Vector3) -> Vector3Model:
    return Vector3Model(x=_finite(position.x), y=_finite(position.y), z=_finite(position.z))


def _face(face: Optional[FacePose]) -> Optional[FacePoseModel]:
    if face is None:
        return None
    return FacePoseModel(
        head=_euler(face.head),
        neck=_euler(face.neck),
        spine=_euler(face.spine),
        spine2=_euler(face.spine2),
        morph_weights={k: float(v) for k, v in face.morph_weights.items() if math.isfinite(v)},
        timestamp_ms=face.timestamp_ms,
    )


def _hand(hand: Optional[HandPose]) -> Optional[HandPoseModel]:
    if hand is None:
        return None
    return HandPoseModel(
        rotation=_euler(hand.rotation),
        position=_vector(hand.position),
        handedness=hand.handedness,
        timestamp_ms=hand.timestamp_ms,
    )


def _body(body: Optional[BodyPose]) -> Optional[BodyPoseModel]:
    if body is None:
        return None
    return BodyPoseModel(spine=_euler(body.spine), timestamp_ms=body.timestamp_ms)


@router.get("/pose", response_model=PoseSnapshotResponse)
async def get_pose(pipeline: RetargetPipeline = Depends(get_pipeline)) -> PoseSnapshotResponse:
    """
    Latest retarget state.

    Each modality reflects its own most recent detection; they are not
    guaranteed to come from the same camera frame.
    """
    snapshot = pipeline.state.read()
    return PoseSnapshotResponse(
        face=_face(snapshot.face),
        hands=[_hand(h) for h in snapshot.hands],
        body=_body(snapshot.body),
        writes={
            "face": snapshot.face_writes,
            "hands": snapshot.hands_writes,
            "body": snapshot.body_writes,
        },
    )


@router.get("/pose/stats", response_model=PipelineStatsResponse)
async def get_stats(pipeline: RetargetPipeline = Depends(get_pipeline)) -> PipelineStatsResponse:
    """Per-detector and render loop counters."""
    return PipelineStatsResponse(
        detectors=pipeline.bus.stats(),
        scheduler=pipeline.scheduler.stats.as_dict(),
        avatar_swaps=pipeline.assets.swaps,
    )
