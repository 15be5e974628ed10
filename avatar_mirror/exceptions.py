"""
Exceptions for resource-acquisition failures.

Missing detections and unresolvable skeleton names are normal states,
never exceptions.
"""

from perception.base import ModelLoadError


class AvatarMirrorError(Exception):
    """Base exception for the avatar mirror service."""


class CameraUnavailableError(AvatarMirrorError):
    """Raised when the capture device cannot be opened or delivers no frames."""


class AssetLoadError(AvatarMirrorError):
    """Raised when a mesh asset cannot be fetched, decoded or parsed."""

    def __init__(self, message: str, upstream: bool = False):
        super().__init__(message)
        # True when the failure came from fetching a remote asset
        self.upstream = upstream


__all__ = [
    "AssetLoadError",
    "AvatarMirrorError",
    "CameraUnavailableError",
    "ModelLoadError",
]
