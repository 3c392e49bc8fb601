"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ConfigurationError

# camelCase option names accepted alongside the dataclass field names
DETECTOR_OPTION_ALIASES: Dict[str, str] = {
    "shiftFactor": "shift_factor",
    "minSize": "min_size",
    "maxSize": "max_size",
    "scaleFactor": "scale_factor",
    "iouThreshold": "iou_threshold",
    "memoryBufferEnabled": "memory_buffer_enabled",
    "memoryBufferSize": "memory_buffer_size",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class DetectorConfig:
    """
    Detector configuration snapshot.

    Instances are immutable; updates produce a new validated snapshot.

    Attributes:
        shift_factor: Scan step as a fraction of the window size.
        min_size: Smallest window diameter in pixels.
        max_size: Largest window diameter in pixels.
        scale_factor: Geometric multiplier between window sizes.
        iou_threshold: Overlap above which hits merge into one cluster.
        memory_buffer_enabled: Aggregate hits over recent frames.
        memory_buffer_size: Number of frames kept when the buffer is enabled.
    """
    shift_factor: float = 0.1
    min_size: float = 100
    max_size: float = 1000
    scale_factor: float = 1.1
    iou_threshold: float = 0.2
    memory_buffer_enabled: bool = False
    memory_buffer_size: int = 5

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError if any value is out of range."""
        for name in ("shift_factor", "min_size", "max_size", "scale_factor", "iou_threshold"):
            if not _is_number(getattr(self, name)):
                raise ConfigurationError(f"{name} must be a finite number")
        if self.shift_factor <= 0:
            raise ConfigurationError("shift_factor must be positive")
        if self.min_size <= 0:
            raise ConfigurationError("min_size must be positive")
        if self.max_size < self.min_size:
            raise ConfigurationError("max_size must be >= min_size")
        if self.scale_factor <= 1:
            raise ConfigurationError("scale_factor must be greater than 1")
        if not (0 <= self.iou_threshold < 1):
            raise ConfigurationError("iou_threshold must be in [0, 1)")
        if not isinstance(self.memory_buffer_enabled, bool):
            raise ConfigurationError("memory_buffer_enabled must be a boolean")
        if not isinstance(self.memory_buffer_size, int) or isinstance(self.memory_buffer_size, bool):
            raise ConfigurationError("memory_buffer_size must be an integer")
        if self.memory_buffer_size < 1:
            raise ConfigurationError("memory_buffer_size must be at least 1")

    def merged(self, changes: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "DetectorConfig":
        """
        Return a new config with the given fields replaced.

        Keys may use field names or their camelCase aliases. Fields not
        mentioned keep their current values.
        """
        updates = _normalize_keys({**(changes or {}), **kwargs})
        if not updates:
            return self
        return replace(self, **updates)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "DetectorConfig":
        """Adapter: Create from config dictionary."""
        return cls().merged(d or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shift_factor": self.shift_factor,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "scale_factor": self.scale_factor,
            "iou_threshold": self.iou_threshold,
            "memory_buffer_enabled": self.memory_buffer_enabled,
            "memory_buffer_size": self.memory_buffer_size,
        }


def _normalize_keys(d: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(DetectorConfig)}
    out: Dict[str, Any] = {}
    for key, value in d.items():
        name = DETECTOR_OPTION_ALIASES.get(key, key)
        if name not in known:
            raise ConfigurationError(f"Unknown detector option: {key}")
        out[name] = value
    return out


@dataclass
class PipelineSettings:
    """Frame loop settings."""
    display: bool = False
    max_consecutive_failures: int = 10
    stats_log_interval: float = 60.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PipelineSettings":
        return cls(
            display=d.get("display", False),
            max_consecutive_failures=d.get("max_consecutive_failures", 10),
            stats_log_interval=d.get("stats_log_interval", 60.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display": self.display,
            "max_consecutive_failures": self.max_consecutive_failures,
            "stats_log_interval": self.stats_log_interval,
        }


@dataclass
class SourceConfig:
    """Frame source: a camera index or a video/image file path."""
    device_id: Union[int, str] = 0
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SourceConfig":
        return cls(
            device_id=d.get("device_id", 0),
            rotate=d.get("rotate", 0) or 0,
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass
class AppConfig:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    model: str = "models/pupil.bin"
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    log_path: Optional[str] = "logs/pupil_detector.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AppConfig":
        """Adapter: Create AppConfig from raw dictionary (e.g., from load_config)."""
        return cls(
            model=d.get("model", "models/pupil.bin"),
            detector=DetectorConfig.from_dict(d.get("detector") or {}),
            source=SourceConfig.from_dict(d.get("source") or {}),
            pipeline=PipelineSettings.from_dict(d.get("pipeline") or {}),
            log_path=d.get("log_path", "logs/pupil_detector.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "model": self.model,
            "detector": self.detector.to_dict(),
            "source": self.source.to_dict(),
            "pipeline": self.pipeline.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
