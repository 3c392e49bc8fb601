"""
OpenCV-based observation sources.

Supports:
- USB webcams (device_id as int, e.g., 0)
- Video files (device_id as file path)
- Still images (ImageFileSource)
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import cv2
import numpy as np

from models.frame import FrameData
from .base import ObservationSource, ObservationConfig

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp")


def is_image_path(path: Union[int, str]) -> bool:
    return isinstance(path, str) and path.lower().endswith(IMAGE_EXTENSIONS)


@dataclass
class OpenCVSourceConfig(ObservationConfig):
    """
    Configuration for cv2.VideoCapture sources.

    Attributes:
        device_id: Camera index (int) or video file path (str).
        max_retries: Attempts to open the device before giving up.
        rotate: Rotation in degrees (0, 90, 180, 270).
        flip_horizontal: Mirror frames left/right (typical for webcams).
        flip_vertical: Flip frames upside down.
    """
    device_id: Union[int, str] = 0
    max_retries: int = 3
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_source_config(cls, source_cfg: Dict[str, Any], source_id: str = "camera") -> "OpenCVSourceConfig":
        """Adapter: Create from the `source` section of the YAML config."""
        device_id = source_cfg.get("device_id", 0)
        if isinstance(device_id, str) and device_id.isdigit():
            device_id = int(device_id)
        return cls(
            source_id=source_id,
            device_id=device_id,
            max_retries=source_cfg.get("max_retries", 3),
            rotate=source_cfg.get("rotate", 0) or 0,
            flip_horizontal=source_cfg.get("flip_horizontal", False),
            flip_vertical=source_cfg.get("flip_vertical", False),
        )


def apply_transforms(frame: np.ndarray, rotate: int, flip_horizontal: bool, flip_vertical: bool) -> np.ndarray:
    """Apply configured rotation and flips."""
    if rotate == 90:
        frame = cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)
    elif rotate == 180:
        frame = cv2.rotate(frame, cv2.ROTATE_180)
    elif rotate == 270:
        frame = cv2.rotate(frame, cv2.ROTATE_90_COUNTERCLOCKWISE)

    if flip_horizontal and flip_vertical:
        frame = cv2.flip(frame, -1)
    elif flip_horizontal:
        frame = cv2.flip(frame, 1)
    elif flip_vertical:
        frame = cv2.flip(frame, 0)
    return frame


class OpenCVSource(ObservationSource):
    """
    Webcam or video file source wrapping cv2.VideoCapture.

    Example:
        config = OpenCVSourceConfig(device_id=0, flip_horizontal=True)
        with OpenCVSource(config) as source:
            for frame_data in source:
                detector.detect(frame_data.image)
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._opencv_config = config
        self._cap: Optional[cv2.VideoCapture] = None

    @property
    def device_id(self) -> Union[int, str]:
        return self._opencv_config.device_id

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and os.path.exists(self.device_id)

    @property
    def is_finite(self) -> bool:
        return self.is_file

    def open(self) -> None:
        if self._is_open:
            return

        attempts = max(self._opencv_config.max_retries, 1)
        for attempt in range(attempts):
            self._cap = cv2.VideoCapture(self.device_id)
            if self._cap.isOpened():
                break
            self._cap.release()
            self._cap = None
            if attempt < attempts - 1:
                wait_time = min(2 ** attempt, 10)
                logging.warning(
                    f"Failed to open device {self.device_id} "
                    f"(attempt {attempt + 1}/{attempts}), retrying in {wait_time}s"
                )
                time.sleep(wait_time)
        else:
            raise RuntimeError(f"Failed to open device {self.device_id} after {attempts} attempts")

        self._is_open = True
        self._frame_index = 0
        logging.info(f"OpenCVSource opened: source_id={self.source_id}, device={self.device_id}")

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._cap is None:
            return None

        ret, frame = self._cap.read()
        if not ret or frame is None:
            if self.is_file:
                logging.info("End of video file reached")
            else:
                logging.warning(f"Failed to read frame from device {self.device_id}")
            return None

        cfg = self._opencv_config
        frame = apply_transforms(frame, cfg.rotate, cfg.flip_horizontal, cfg.flip_vertical)
        self._frame_index += 1
        return FrameData.from_numpy(
            frame,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._is_open = False
        logging.info(f"OpenCVSource closed: source_id={self.source_id}")


@dataclass
class ImageFileSourceConfig(ObservationConfig):
    """Still images read one after another."""
    paths: List[str] = field(default_factory=list)


class ImageFileSource(ObservationSource):
    """Source yielding each image file once, in order."""

    def __init__(self, config: ImageFileSourceConfig):
        super().__init__(config)
        self._paths = list(config.paths)
        self._pos = 0

    @property
    def is_finite(self) -> bool:
        return True

    def open(self) -> None:
        missing = [p for p in self._paths if not os.path.exists(p)]
        if missing:
            raise RuntimeError(f"Image files not found: {', '.join(missing)}")
        self._pos = 0
        self._frame_index = 0
        self._is_open = True

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._pos >= len(self._paths):
            return None

        path = self._paths[self._pos]
        self._pos += 1
        frame = cv2.imread(path, cv2.IMREAD_COLOR)
        if frame is None:
            raise RuntimeError(f"Failed to decode image: {path}")

        self._frame_index += 1
        return FrameData.from_numpy(
            frame,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=path,
        )

    def close(self) -> None:
        self._is_open = False


def create_source(
    device_id: Union[int, str, List[str]],
    rotate: int = 0,
    flip_horizontal: bool = False,
    flip_vertical: bool = False,
) -> ObservationSource:
    """Pick ImageFileSource for image paths, OpenCVSource otherwise."""
    if isinstance(device_id, list):
        return ImageFileSource(ImageFileSourceConfig(source_id="images", paths=device_id))
    if is_image_path(device_id):
        return ImageFileSource(ImageFileSourceConfig(source_id="image", paths=[device_id]))
    config = OpenCVSourceConfig.from_source_config(
        {
            "device_id": device_id,
            "rotate": rotate,
            "flip_horizontal": flip_horizontal,
            "flip_vertical": flip_vertical,
        },
        source_id="camera" if isinstance(device_id, int) else "video",
    )
    return OpenCVSource(config)
