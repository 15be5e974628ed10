from abc import ABC, abstractmethod
from typing import Generic, TypeVar

import numpy as np

T = TypeVar("T")


class ModelLoadError(RuntimeError):
    """Raised when a perception model cannot be fetched or constructed."""


class Detector(ABC, Generic[T]):
    """
    Model adapter interface.

    Implementations take an RGB image (H,W,3 uint8) plus the frame timestamp
    and return the modality's detection result. An empty result (None, or an
    empty list for multi-instance detectors) means nothing was found.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def detect(self, image: np.ndarray, timestamp_ms: int) -> T: ...

    @abstractmethod
    def close(self) -> None: ...
