"""
Pipeline module for the pupil detector.

The pipeline orchestrates the per-frame flow:
- Frame acquisition from observation sources
- Detection
- Callbacks, logging and optional display
"""

from .engine import PipelineEngine, PipelineConfig, PipelineStats, draw_detections

__all__ = [
    "PipelineEngine",
    "PipelineConfig",
    "PipelineStats",
    "draw_detections",
]
