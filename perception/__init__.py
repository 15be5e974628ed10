"""
Perception model wrappers for avatar retargeting.

This package contains:
- face: face landmarker (blendshapes + head transform)
- hands: hand landmark tracker
- pose: body pose tracker
- geometry: landmark math shared by the wrappers

Every wrapper follows the Detector contract in base.py. MediaPipe is only
imported when a wrapper is constructed.
"""

from .base import Detector, ModelLoadError
from .types import BodyDetection, Blendshape, Detection, FaceDetection, HandDetection, VideoFrame

__all__ = [
    "BodyDetection",
    "Blendshape",
    "Detection",
    "Detector",
    "FaceDetection",
    "HandDetection",
    "ModelLoadError",
    "VideoFrame",
]
