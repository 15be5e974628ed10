"""
Pydantic schemas for API request/response validation.

These schemas define the contract between the API and clients.
Internal pipeline records (detections, poses, scene nodes) are separate.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Request Schemas
# =============================================================================


class AvatarSelectRequest(BaseModel):
    """Request to drive a different avatar, by URL."""

    url: str = Field(
        ...,
        min_length=1,
        description="http(s) URL, data: URL or server-local path of a GLB avatar",
    )
    apply_query: bool = Field(
        default=True,
        description="Append the configured export options (ARKit morph targets) to http(s) URLs",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "url": "https://models.readyplayer.me/64f0265b1db75f90dcfd9e2c.glb",
                "apply_query": True,
            }
        }
    )


# =============================================================================
# Response Schemas
# =============================================================================


class BindingResponse(BaseModel):
    """The avatar currently bound to the render loop."""

    source: str = Field(..., description="Where the avatar was loaded from")
    nodes: int = Field(..., description="Number of nodes in the asset")
    bones: dict[str, str] = Field(..., description="Logical bone -> resolved node name")
    hands: list[str | None] = Field(..., description="Node driven by each hand slot, if any")
    morph_meshes: list[str] = Field(..., description="Meshes receiving morph weights")
    morph_channels: int = Field(..., description="Distinct morph-target channels across bound meshes")
    unresolved: list[str] = Field(default_factory=list, description="Configured names absent from this asset")


class EulerModel(BaseModel):
    """Euler rotation in radians (XYZ). Non-finite components are null."""

    x: float | None
    y: float | None
    z: float | None


class Vector3Model(BaseModel):
    x: float | None
    y: float | None
    z: float | None


class FacePoseModel(BaseModel):
    head: EulerModel | None = None
    neck: EulerModel | None = None
    spine: EulerModel | None = None
    spine2: EulerModel | None = None
    morph_weights: dict[str, float] = Field(default_factory=dict)
    timestamp_ms: float | None = None


class HandPoseModel(BaseModel):
    rotation: EulerModel
    position: Vector3Model
    handedness: str | None = None
    timestamp_ms: float | None = None


class BodyPoseModel(BaseModel):
    spine: EulerModel
    timestamp_ms: float | None = None


class PoseSnapshotResponse(BaseModel):
    """Latest retarget state. Null fields have never been observed."""

    face: FacePoseModel | None = None
    hands: list[HandPoseModel | None] = Field(default_factory=lambda: [None, None])
    body: BodyPoseModel | None = None
    writes: dict[str, int] = Field(default_factory=dict)


class PipelineStatsResponse(BaseModel):
    """Detection and render loop counters."""

    detectors: dict[str, dict[str, Any]]
    scheduler: dict[str, int]
    avatar_swaps: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(None, description="Additional error details")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "asset_load_failed",
                "message": "Failed to load avatar",
                "details": {"reason": "Avatar file not found: avatar.glb"},
            }
        }
    )
