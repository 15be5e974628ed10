"""
Hand tracking module.
"""

from .tracker import HandsDetector

__all__ = ["HandsDetector"]
