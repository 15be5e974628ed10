"""
Face landmarker module.

Provides blendshape and head-transform detection from video frames.
"""

from .landmarker import FaceLandmarkerDetector

__all__ = ["FaceLandmarkerDetector"]
