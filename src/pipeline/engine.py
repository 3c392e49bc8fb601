"""
Pipeline engine for the pupil detector.

Reads frames from an ObservationSource, runs the detector on each one,
hands results to registered callbacks and optionally shows an overlay.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import cv2
import numpy as np

from detection.detector import PupilDetector
from models.detection import Detection
from models.frame import FrameData
from observation import ImageFileSource, ObservationSource

FrameCallback = Callable[[FrameData, List[Detection]], None]


@dataclass
class PipelineConfig:
    """
    Configuration for the pipeline engine.

    Attributes:
        max_consecutive_failures: Max frame read failures before stopping.
        stats_log_interval: Seconds between status log messages.
        display: Enable cv2 display window.
        max_frames: Stop after this many frames (None = until exhausted).
    """
    max_consecutive_failures: int = 10
    stats_log_interval: float = 60.0
    display: bool = False
    max_frames: Optional[int] = None


@dataclass
class PipelineStats:
    """Runtime statistics for the pipeline."""
    frame_count: int = 0
    frames_with_detections: int = 0
    detection_count: int = 0
    start_time: float = field(default_factory=time.time)
    last_stats_log_time: float = field(default_factory=time.time)
    consecutive_failures: int = 0

    @property
    def fps(self) -> float:
        elapsed = time.time() - self.start_time
        return self.frame_count / elapsed if elapsed > 0 else 0.0


class PipelineEngine:
    """
    Frame loop driving a PupilDetector.

    Example:
        source = create_source(0)
        engine = PipelineEngine(source, detector, PipelineConfig(display=True))
        engine.run()
    """

    def __init__(
        self,
        source: ObservationSource,
        detector: PupilDetector,
        config: Optional[PipelineConfig] = None,
    ):
        self.source = source
        self.detector = detector
        self.config = config or PipelineConfig()
        self.stats = PipelineStats()
        self._running = False
        self._callbacks: List[FrameCallback] = []

    def add_callback(self, callback: FrameCallback) -> None:
        """
        Add a callback to be called after each frame is processed.

        Args:
            callback: Function taking (frame_data, detections) as arguments.
        """
        self._callbacks.append(callback)

    def run(self) -> None:
        """
        Run the main processing loop.

        Opens the source, processes frames until stopped or exhausted,
        then closes the source.
        """
        self._running = True
        self.stats = PipelineStats()

        try:
            self.source.open()
            logging.info(f"Pipeline started: source={self.source.source_id}")

            while self._running:
                frame_data = self.source.read()

                if frame_data is None:
                    if self.source.is_finite:
                        break
                    self.stats.consecutive_failures += 1
                    if self.stats.consecutive_failures >= self.config.max_consecutive_failures:
                        logging.error(
                            f"Too many consecutive failures ({self.stats.consecutive_failures}), stopping"
                        )
                        break
                    logging.warning(
                        f"Frame read failed ({self.stats.consecutive_failures}/"
                        f"{self.config.max_consecutive_failures})"
                    )
                    time.sleep(0.5)
                    continue

                self.stats.consecutive_failures = 0
                detections = self.process_frame(frame_data)

                for callback in self._callbacks:
                    try:
                        callback(frame_data, detections)
                    except Exception as e:
                        logging.warning(f"Callback error: {e}")

                if self.config.display:
                    if not self._handle_display(frame_data, detections):
                        break

                self._log_stats_periodically()

                if self.config.max_frames is not None and self.stats.frame_count >= self.config.max_frames:
                    break

        except KeyboardInterrupt:
            logging.info("Pipeline interrupted by user")
        except Exception as e:
            logging.exception(f"Pipeline error: {e}")
            raise
        finally:
            self._cleanup()

    def stop(self) -> None:
        """Signal the pipeline to stop after the current frame."""
        self._running = False

    def process_frame(self, frame_data: FrameData) -> List[Detection]:
        """Detect on one frame and update statistics."""
        detections = self.detector.detect(frame_data.image)
        self.stats.frame_count += 1
        if detections:
            self.stats.frames_with_detections += 1
            self.stats.detection_count += len(detections)

        for det in detections:
            logging.info(
                f"frame={frame_data.frame_index} source={frame_data.source} "
                f"center=({det.center.x:.1f}, {det.center.y:.1f}) "
                f"radius={det.radius:.1f} score={det.score:.2f}"
            )
        return detections

    def _handle_display(self, frame_data: FrameData, detections: List[Detection]) -> bool:
        """
        Show the annotated frame.

        Returns False if user pressed 'q' to quit.
        """
        cv2.imshow("Pupil Detector", draw_detections(frame_data.frame.copy(), detections))
        # Still images stay up until a key is pressed
        wait_ms = 0 if isinstance(self.source, ImageFileSource) else 1
        key = cv2.waitKey(wait_ms) & 0xFF
        return key != ord('q')

    def _log_stats_periodically(self) -> None:
        now = time.time()
        if now - self.stats.last_stats_log_time >= self.config.stats_log_interval:
            logging.info(
                f"Pipeline stats: frames={self.stats.frame_count}, "
                f"frames_with_detections={self.stats.frames_with_detections}, "
                f"detections={self.stats.detection_count}, fps={self.stats.fps:.1f}"
            )
            self.stats.last_stats_log_time = now

    def _cleanup(self) -> None:
        self._running = False

        try:
            self.source.close()
        except Exception as e:
            logging.warning(f"Error closing source: {e}")

        if self.config.display:
            cv2.destroyAllWindows()

        logging.info(
            f"Pipeline stopped: frames={self.stats.frame_count}, "
            f"detections={self.stats.detection_count}"
        )


def draw_detections(frame: np.ndarray, detections: List[Detection]) -> np.ndarray:
    """Draw a circle and score label for each detection (BGR frame, in place)."""
    color = (0, 255, 0)
    for det in detections:
        center = det.center.as_int_tuple()
        cv2.circle(frame, center, max(int(det.radius), 1), color, 2)
        cv2.circle(frame, center, 2, color, -1)
        cv2.putText(frame, f"{det.score:.1f}", (center[0] + 4, center[1] - 4),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)
    return frame
