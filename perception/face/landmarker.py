"""
Face landmarker wrapper.

Wraps the MediaPipe Tasks face landmarker and reduces its result to a
FaceDetection: the first face's blendshape categories plus its facial
transformation matrix.
"""

from pathlib import Path
from typing import Optional

import numpy as np
import requests
from loguru import logger

from perception.base import Detector, ModelLoadError
from perception.geometry import matrix_from_array
from perception.types import Blendshape, FaceDetection


def resolve_model_asset(model_asset_path: str, cache_dir: str, timeout: float = 60.0) -> Path:
    """
    Return a local path for a model bundle, downloading remote bundles once.

    Args:
        model_asset_path: Local path or http(s) URL of the .task bundle
        cache_dir: Directory holding downloaded bundles

    Raises:
        ModelLoadError: If the bundle is missing or cannot be downloaded
    """
    if not model_asset_path.startswith(("http://", "https://")):
        path = Path(model_asset_path)
        if not path.is_file():
            raise ModelLoadError(f"Model bundle not found: {model_asset_path}")
        return path

    cache_path = Path(cache_dir) / model_asset_path.rstrip("/").rsplit("/", 1)[-1]
    if cache_path.is_file():
        return cache_path

    logger.info(f"Downloading model bundle {model_asset_path} -> {cache_path}")
    try:
        response = requests.get(model_asset_path, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ModelLoadError(f"Failed to download model bundle: {e}") from e

    cache_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = cache_path.with_suffix(cache_path.suffix + ".part")
    tmp_path.write_bytes(response.content)
    tmp_path.replace(cache_path)
    return cache_path


class FaceLandmarkerDetector(Detector[Optional[FaceDetection]]):
    """
    MediaPipe face landmarker producing blendshapes and a head transform.

    In VIDEO mode the landmarker requires strictly increasing timestamps;
    callers deduplicate frames before calling detect().
    """

    def __init__(
        self,
        model_asset_path: str,
        model_cache_dir: str = "./.cache/models",
        max_faces: int = 1,
        delegate: str = "GPU",
        running_mode: str = "VIDEO",
        emit_blendshapes: bool = True,
        emit_transform_matrix: bool = True,
    ):
        """
        Initialize the face landmarker.

        Args:
            model_asset_path: Local path or URL of the face_landmarker.task bundle
            model_cache_dir: Where downloaded bundles are kept
            max_faces: Maximum number of faces to detect
            delegate: Compute delegate ('CPU' or 'GPU')
            running_mode: 'IMAGE' for independent stills, 'VIDEO' for a frame stream
            emit_blendshapes: Output blendshape categories
            emit_transform_matrix: Output the facial transformation matrix

        Raises:
            ModelLoadError: If MediaPipe is missing or the model cannot be created
        """
        try:
            import mediapipe as mp  # type: ignore
            from mediapipe.tasks import python as mp_tasks  # type: ignore
            from mediapipe.tasks.python import vision  # type: ignore
        except Exception as e:
            raise ModelLoadError("MediaPipe is not installed") from e

        model_path = resolve_model_asset(model_asset_path, model_cache_dir)
        logger.info(f"Loading face landmarker from {model_path} ({delegate}, {running_mode})")

        self._mp = mp
        self._video_mode = running_mode == "VIDEO"
        try:
            base_options = mp_tasks.BaseOptions(
                model_asset_path=str(model_path),
                delegate=getattr(mp_tasks.BaseOptions.Delegate, delegate),
            )
            options = vision.FaceLandmarkerOptions(
                base_options=base_options,
                running_mode=getattr(vision.RunningMode, running_mode),
                num_faces=int(max_faces),
                output_face_blendshapes=bool(emit_blendshapes),
                output_facial_transformation_matrixes=bool(emit_transform_matrix),
            )
            self._landmarker = vision.FaceLandmarker.create_from_options(options)
        except Exception as e:
            raise ModelLoadError(f"Failed to create face landmarker: {e}") from e

        logger.info("Face landmarker loaded successfully")

    @property
    def name(self) -> str:
        return "face"

    def detect(self, image: np.ndarray, timestamp_ms: int) -> Optional[FaceDetection]:
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(image))
        if self._video_mode:
            result = self._landmarker.detect_for_video(mp_image, int(timestamp_ms))
        else:
            result = self._landmarker.detect(mp_image)

        if not result.face_blendshapes or not result.face_blendshapes[0]:
            return None

        blendshapes = tuple(
            Blendshape(category_name=c.category_name, score=float(c.score))
            for c in result.face_blendshapes[0]
        )
        head_transform = None
        if result.facial_transformation_matrixes:
            head_transform = matrix_from_array(result.facial_transformation_matrixes[0], column_major=False)
        return FaceDetection(blendshapes=blendshapes, head_transform=head_transform)

    def close(self) -> None:
        self._landmarker.close()
