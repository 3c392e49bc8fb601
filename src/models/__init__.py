"""
Typed models for the pupil detector application.

Value objects for frames, detections and configuration, plus the shared
exception types.
"""

from .errors import DetectionError, DecodeError, InvalidImageError, ConfigurationError
from .frame import FrameData, RgbaImage
from .detection import Detection, RawDetection, Cluster, Point
from .config import (
    AppConfig,
    DetectorConfig,
    PipelineSettings,
    SourceConfig,
)

__all__ = [
    # Errors
    "DetectionError",
    "DecodeError",
    "InvalidImageError",
    "ConfigurationError",
    # Frame
    "FrameData",
    "RgbaImage",
    # Detection
    "Detection",
    "RawDetection",
    "Cluster",
    "Point",
    # Config
    "AppConfig",
    "DetectorConfig",
    "PipelineSettings",
    "SourceConfig",
]
