"""
Observation layer for frame sources.

Each source implements the ObservationSource interface and returns
FrameData objects ready for the detector.
"""

from .base import ObservationSource, ObservationConfig
from .opencv_source import (
    ImageFileSource,
    ImageFileSourceConfig,
    OpenCVSource,
    OpenCVSourceConfig,
    create_source,
)

__all__ = [
    "ObservationSource",
    "ObservationConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "ImageFileSource",
    "ImageFileSourceConfig",
    "create_source",
]
