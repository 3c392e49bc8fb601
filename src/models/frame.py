"""
Image and frame models.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from .errors import InvalidImageError

PixelBuffer = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True, eq=False)
class RgbaImage:
    """
    Packed 8-bit RGBA pixels, row-major, 4 bytes per pixel.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        data: Flat pixel buffer of exactly width * height * 4 bytes.
    """
    width: int
    height: int
    data: PixelBuffer

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidImageError(
                f"image dimensions must be positive, got {self.width}x{self.height}"
            )
        expected = self.width * self.height * 4
        size = self.data.size if isinstance(self.data, np.ndarray) else len(self.data)
        if size != expected:
            raise InvalidImageError(
                f"pixel buffer holds {size} bytes, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    def as_array(self) -> np.ndarray:
        """Return the pixels as a (height, width, 4) uint8 array."""
        if isinstance(self.data, np.ndarray):
            arr = self.data.astype(np.uint8, copy=False)
        else:
            arr = np.frombuffer(self.data, dtype=np.uint8)
        return arr.reshape(self.height, self.width, 4)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "RgbaImage":
        """Create from an (H, W, 4) uint8 array."""
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise InvalidImageError(f"expected (H, W, 4) array, got shape {arr.shape}")
        h, w = arr.shape[:2]
        return cls(width=w, height=h, data=np.ascontiguousarray(arr, dtype=np.uint8))

    @classmethod
    def from_bgr(cls, frame: np.ndarray) -> "RgbaImage":
        """
        Adapter: Convert an OpenCV frame (BGR, BGRA or grayscale) to RGBA.
        """
        if frame.ndim == 2:
            rgba = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
        elif frame.ndim == 3 and frame.shape[2] == 3:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        elif frame.ndim == 3 and frame.shape[2] == 4:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        else:
            raise InvalidImageError(f"unsupported frame shape {frame.shape}")
        return cls.from_array(rgba)


@dataclass
class FrameData:
    """
    Metadata and payload for a captured video frame.

    Attributes:
        frame: The raw frame as read from OpenCV (BGR), kept for display.
        image: The same frame as RGBA for the detector.
        timestamp: Unix timestamp when frame was captured.
        frame_index: Sequential frame number since start.
        source: Identifier for the camera/video source.
    """
    frame: np.ndarray
    image: RgbaImage
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float,
        frame_index: int = 0,
        source: Optional[str] = None,
    ) -> "FrameData":
        """Create FrameData from an OpenCV BGR array."""
        return cls(
            frame=frame,
            image=RgbaImage.from_bgr(frame),
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
        )

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return self.image.size
