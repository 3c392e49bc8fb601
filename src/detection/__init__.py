"""
Pupil Detector - Detection Module

Cascade classifier, window scanner, temporal memory and clustering.
"""

from models.errors import ConfigurationError, DecodeError, DetectionError, InvalidImageError

from .classifier import CascadeModel
from .clustering import calculate_iou, cluster_detections, merge_detections, select_detections
from .detector import PupilDetector
from .memory import DetectionMemoryBuffer
from .scanner import scale_sequence, scan_image, scan_windows, to_luma

__all__ = [
    "CascadeModel",
    "PupilDetector",
    "DetectionMemoryBuffer",
    "calculate_iou",
    "cluster_detections",
    "merge_detections",
    "select_detections",
    "scale_sequence",
    "scan_image",
    "scan_windows",
    "to_luma",
    "DetectionError",
    "DecodeError",
    "InvalidImageError",
    "ConfigurationError",
]
