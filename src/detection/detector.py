"""
Pupil detector: window scan, optional temporal memory, then clustering.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Union

from models.config import DetectorConfig
from models.detection import Detection, RawDetection
from models.frame import RgbaImage

from .classifier import CascadeModel, ModelSource
from .clustering import cluster_detections, select_detections
from .memory import DetectionMemoryBuffer
from .scanner import scan_image

ConfigUpdate = Union[DetectorConfig, Mapping[str, Any]]


class PupilDetector:
    """
    Locates circular objects with a pixel-comparison tree cascade.

    The model is shared read-only; the configuration is an immutable
    snapshot replaced on each update. With the memory buffer enabled,
    detect() mutates the ring buffer, so one instance must not be called
    from several threads at once.

    Example:
        detector = PupilDetector(CascadeModel.from_file("pupil.bin"))
        detector.configure(min_size=40, memory_buffer_enabled=True)
        for det in detector.detect(image):
            print(det.center, det.radius)
    """

    def __init__(
        self,
        model: Union[CascadeModel, ModelSource],
        config: Optional[ConfigUpdate] = None,
    ):
        if not isinstance(model, CascadeModel):
            model = CascadeModel.load(model)
        self._model = model
        self._config = DetectorConfig()
        self._memory = DetectionMemoryBuffer(self._config.memory_buffer_size)
        self.last_raw_count = 0
        if config is not None:
            self.configure(config)

        logging.info(f"Pupil detector initialized: {self._model!r}")

    @property
    def model(self) -> CascadeModel:
        return self._model

    @property
    def configuration(self) -> DetectorConfig:
        """Current configuration snapshot."""
        return self._config

    def configure(self, changes: Optional[ConfigUpdate] = None, **kwargs: Any) -> DetectorConfig:
        """
        Merge option changes into a new configuration snapshot.

        Args:
            changes: A DetectorConfig (replaces everything) or a mapping of
                     option names to new values.
            **kwargs: Further option overrides.

        Returns:
            The new configuration.

        Raises:
            ConfigurationError: If an option is unknown or out of range.
        """
        if isinstance(changes, DetectorConfig):
            new_config = changes.merged(**kwargs)
        else:
            new_config = self._config.merged(changes, **kwargs)

        old = self._config
        self._config = new_config
        if (
            new_config.memory_buffer_size != old.memory_buffer_size
            or new_config.memory_buffer_enabled != old.memory_buffer_enabled
        ):
            self._memory = DetectionMemoryBuffer(new_config.memory_buffer_size)
            logging.debug(
                f"Detection memory reset: enabled={new_config.memory_buffer_enabled}, "
                f"size={new_config.memory_buffer_size}"
            )
        return new_config

    def reset(self) -> None:
        """Forget detections remembered from earlier frames."""
        self._memory.reset()

    def detect(self, image: RgbaImage, config: Optional[ConfigUpdate] = None) -> List[Detection]:
        """
        Detect objects in one frame.

        Args:
            image: RGBA frame.
            config: Optional option changes applied (and kept) before scanning.

        Returns:
            Detections with cluster score above the confidence floor,
            ascending by score.
        """
        if config is not None:
            self.configure(config)
        cfg = self._config

        raw = scan_image(image, self._model, cfg)
        aggregate = self._remember(raw, cfg)
        self.last_raw_count = len(aggregate)

        clusters = cluster_detections(aggregate, cfg.iou_threshold)
        detections = select_detections(clusters)
        logging.debug(
            f"detect {image.width}x{image.height}: raw={len(raw)} aggregate={len(aggregate)} "
            f"clusters={len(clusters)} detections={len(detections)}"
        )
        return detections

    def _remember(self, raw: List[RawDetection], cfg: DetectorConfig) -> List[RawDetection]:
        if not cfg.memory_buffer_enabled:
            return raw
        self._memory.add(raw)
        return self._memory.detections()
