"""
Multi-scale sliding-window scan driving the cascade classifier.
"""

from __future__ import annotations

from typing import Iterator, List

import numpy as np

from models.config import DetectorConfig
from models.detection import RawDetection
from models.frame import RgbaImage

from .classifier import CascadeModel


def to_luma(image: RgbaImage) -> np.ndarray:
    """
    Convert RGBA pixels to single-channel luma.

    luma = floor((2*R + 7*G + B) / 10), alpha ignored.

    Returns:
        (height, width) uint8 array.
    """
    rgba = image.as_array().astype(np.int32)
    luma = (2 * rgba[..., 0] + 7 * rgba[..., 1] + rgba[..., 2]) // 10
    return luma.astype(np.uint8)


def scale_sequence(min_size: float, max_size: float, scale_factor: float) -> Iterator[float]:
    """Yield window sizes min_size, min_size*f, ... while <= max_size."""
    scale = min_size
    while scale <= max_size:
        yield scale
        scale = scale * scale_factor


def scan_windows(
    luma: np.ndarray,
    model: CascadeModel,
    config: DetectorConfig,
) -> Iterator[RawDetection]:
    """
    Evaluate the cascade on every window of every scale.

    Window centers run from ``offset`` to ``dimension - offset`` inclusive
    with ``step = max(shift_factor * scale, 1)``; scales whose windows do
    not fit produce nothing.
    """
    height, width = luma.shape
    # bytes indexing yields ints and is the fastest flat lookup
    pixels = np.ascontiguousarray(luma, dtype=np.uint8).tobytes()
    process = model.process

    for scale in scale_sequence(config.min_size, config.max_size, config.scale_factor):
        step = int(max(config.shift_factor * scale, 1))
        offset = int(scale / 2 + 1)
        for r in range(offset, height - offset + 1, step):
            for c in range(offset, width - offset + 1, step):
                q = process(r, c, scale, pixels, width)
                if q is not None and q > 0.0:
                    yield RawDetection(row=r, col=c, scale=scale, score=q)


def scan_image(image: RgbaImage, model: CascadeModel, config: DetectorConfig) -> List[RawDetection]:
    """Convert an image to luma and collect all raw hits."""
    return list(scan_windows(to_luma(image), model, config))
