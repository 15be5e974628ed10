"""
Application configuration using pydantic-settings.

Settings are loaded from environment variables with sensible defaults for local development.
Detector options mirror the options the perception models accept.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CameraSettings(BaseSettings):
    """Video capture configuration."""

    model_config = SettingsConfigDict(env_prefix="CAMERA_")

    device: str = "0"  # device index, file path or stream URL
    width: int = 1280
    height: int = 720
    fps: int = 30
    open_timeout_seconds: float = 5.0


class FaceDetectorSettings(BaseSettings):
    """Face landmarker configuration."""

    model_config = SettingsConfigDict(env_prefix="FACE_")

    model_asset_path: str = (
        "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
        "face_landmarker/float16/1/face_landmarker.task"
    )
    model_cache_dir: str = "./.cache/models"
    max_faces: int = Field(default=1, ge=1)
    delegate: Literal["CPU", "GPU"] = "GPU"
    running_mode: Literal["IMAGE", "VIDEO"] = "VIDEO"
    emit_blendshapes: bool = True
    emit_transform_matrix: bool = True


class HandsDetectorSettings(BaseSettings):
    """Hand tracker configuration."""

    model_config = SettingsConfigDict(env_prefix="HANDS_")

    max_hands: int = Field(default=2, ge=1, le=2)
    min_detection_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    min_tracking_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class PoseDetectorSettings(BaseSettings):
    """Body pose tracker configuration."""

    model_config = SettingsConfigDict(env_prefix="POSE_")

    model_complexity: int = Field(default=1, ge=0, le=2)
    smooth_landmarks: bool = True
    segment: bool = False
    min_detection_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_tracking_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class RenderSettings(BaseSettings):
    """Render loop configuration."""

    model_config = SettingsConfigDict(env_prefix="RENDER_")

    refresh_rate_hz: float = Field(default=60.0, gt=0.0)


class AvatarSettings(BaseSettings):
    """Avatar asset and skeleton binding configuration."""

    model_config = SettingsConfigDict(env_prefix="AVATAR_")

    default_url: str = "https://models.readyplayer.me/64f0265b1db75f90dcfd9e2c.glb"
    url_query: str = "morphTargets=ARKit&textureAtlas=1024"
    download_timeout_seconds: float = 30.0
    max_asset_size_mb: int = 50

    # Logical bone -> node name in the asset
    bone_nodes: dict[str, str] = Field(
        default_factory=lambda: {
            "head": "Head",
            "neck": "Neck",
            "spine": "Spine",
            "spine2": "Spine2",
        }
    )
    # Meshes carrying facial morph targets (not every avatar has teeth or a beard)
    morph_meshes: list[str] = Field(
        default_factory=lambda: [
            "Wolf3D_Head",
            "Wolf3D_Teeth",
            "Wolf3D_Beard",
            "Wolf3D_Avatar",
            "Wolf3D_Head_Custom",
        ]
    )
    # Candidate node names per hand slot, first exact match wins
    left_hand_nodes: list[str] = Field(default_factory=lambda: ["Wolf3D_Left_Hand", "LeftHand"])
    right_hand_nodes: list[str] = Field(default_factory=lambda: ["Wolf3D_Right_Hand", "RightHand"])


class Settings(BaseSettings):
    """Root application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Avatar Mirror"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Nested settings
    camera: CameraSettings = Field(default_factory=CameraSettings)
    face: FaceDetectorSettings = Field(default_factory=FaceDetectorSettings)
    hands: HandsDetectorSettings = Field(default_factory=HandsDetectorSettings)
    pose: PoseDetectorSettings = Field(default_factory=PoseDetectorSettings)
    render: RenderSettings = Field(default_factory=RenderSettings)
    avatar: AvatarSettings = Field(default_factory=AvatarSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once per process.
    """
    return Settings()
