"""
Avatar selection endpoints.

Handles the asset swap workflow:
1. User enters a URL (or drops a file) for a new avatar
2. The asset is fetched, parsed and bound to the skeleton names
3. The render loop drives the new avatar from the next tick on

The retarget state is kept across swaps.
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from loguru import logger

from avatar_mirror.api.deps import get_pipeline
from avatar_mirror.config import get_settings
from avatar_mirror.exceptions import AssetLoadError
from avatar_mirror.models.schemas import AvatarSelectRequest, BindingResponse, ErrorResponse
from avatar_mirror.pipeline import RetargetPipeline
from avatar_mirror.services.mesh_binder import SkeletonBinding
from avatar_mirror.services.mesh_loader import AvatarSource, with_avatar_query

router = APIRouter()


def binding_to_response(binding: SkeletonBinding) -> BindingResponse:
    return BindingResponse(
        source=binding.source,
        nodes=len(binding.scene),
        bones={bone: node.name for bone, node in binding.bones.items()},
        hands=[node.name if node is not None else None for node in binding.hands],
        morph_meshes=[mesh.name for mesh in binding.morph_meshes],
        morph_channels=len(binding.morph_channels),
        unresolved=list(binding.unresolved),
    )


async def _swap(pipeline: RetargetPipeline, source: AvatarSource) -> BindingResponse:
    try:
        binding = await pipeline.assets.swap_asset(source)
    except AssetLoadError as e:
        logger.warning(f"Avatar swap failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY if e.upstream else status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "asset_load_failed",
                "message": "Failed to load avatar",
                "details": {"reason": str(e)},
            },
        ) from e
    return binding_to_response(binding)


# =============================================================================
# Avatar Selection
# =============================================================================


@router.post(
    "/avatar",
    response_model=BindingResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid avatar asset"},
        502: {"model": ErrorResponse, "description": "Avatar download failed"},
    },
)
async def select_avatar(
    request: AvatarSelectRequest,
    pipeline: RetargetPipeline = Depends(get_pipeline),
) -> BindingResponse:
    """
    Swap the driven avatar for the one at the given URL.

    http(s) URLs get the configured export options appended (ARKit morph
    targets, texture atlas) unless apply_query is false. On failure the
    current avatar stays bound.
    """
    url = request.url
    if request.apply_query:
        url = with_avatar_query(url, get_settings().avatar.url_query)
    return await _swap(pipeline, AvatarSource.from_url(url))


@router.post(
    "/avatar/upload",
    response_model=BindingResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid avatar asset"}},
)
async def upload_avatar(
    file: UploadFile = File(..., description="GLB avatar file"),
    pipeline: RetargetPipeline = Depends(get_pipeline),
) -> BindingResponse:
    """Swap the driven avatar for an uploaded GLB file."""
    data = await file.read()
    logger.info(f"Received avatar upload {file.filename} ({len(data)} bytes)")
    return await _swap(pipeline, AvatarSource.from_upload(file.filename or "", data))


# =============================================================================
# Avatar Retrieval
# =============================================================================


@router.get(
    "/avatar",
    response_model=BindingResponse,
    responses={404: {"model": ErrorResponse, "description": "No avatar bound"}},
)
async def get_avatar(pipeline: RetargetPipeline = Depends(get_pipeline)) -> BindingResponse:
    """Describe the currently bound avatar and which names resolved."""
    binding = pipeline.assets.binding
    if binding is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": "No avatar is bound yet"},
        )
    return binding_to_response(binding)
