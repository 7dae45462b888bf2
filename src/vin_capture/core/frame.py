"""
Frame Buffers
=============

RGBA pixel buffers passed between capture, preprocessing and the recognizers.
A buffer is produced fresh for every recognition attempt and owned by that
attempt alone.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import cv2
import numpy as np


@dataclass
class FrameBuffer:
    """Owned RGBA image (height x width x 4, uint8)."""
    data: np.ndarray

    def __post_init__(self):
        if self.data.ndim != 3 or self.data.shape[2] != 4:
            raise ValueError(f"FrameBuffer expects an RGBA array, got shape {self.data.shape}")
        if self.data.dtype != np.uint8:
            self.data = self.data.astype(np.uint8)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def rgb(self) -> np.ndarray:
        return self.data[..., :3]

    def copy(self) -> 'FrameBuffer':
        return FrameBuffer(self.data.copy())

    @classmethod
    def from_bgr(cls, image: np.ndarray) -> 'FrameBuffer':
        """Build from an OpenCV BGR (or grayscale) image."""
        if image.ndim == 2:
            return cls(cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA))
        if image.shape[2] == 4:
            return cls(cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA))
        return cls(cv2.cvtColor(image, cv2.COLOR_BGR2RGBA))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'FrameBuffer':
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise FileNotFoundError(f"Could not read image: {path}")
        return cls.from_bgr(image)

    def to_bgr(self) -> np.ndarray:
        return cv2.cvtColor(self.data, cv2.COLOR_RGBA2BGR)

    def to_gray(self) -> np.ndarray:
        return cv2.cvtColor(self.data, cv2.COLOR_RGBA2GRAY)

    def save(self, path: Union[str, Path]) -> None:
        cv2.imwrite(str(path), self.to_bgr())
