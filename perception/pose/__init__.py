"""
Body pose tracking module.
"""

from .tracker import PoseDetector

__all__ = ["PoseDetector"]
