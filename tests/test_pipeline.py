"""
Tests for the pipeline engine.
"""

import numpy as np
import pytest

from detection.detector import PupilDetector
from models.detection import Detection, Point
from observation.base import ObservationConfig
from pipeline.engine import PipelineConfig, PipelineEngine, PipelineStats, draw_detections

from test_observation import MockSource


class FiniteMockSource(MockSource):
    @property
    def is_finite(self) -> bool:
        return True


def _bgr_spot_frame():
    frame = np.zeros((40, 40, 3), dtype=np.uint8)
    frame[21, 21] = 255
    return frame


def _bgr_blank_frame():
    return np.zeros((40, 40, 3), dtype=np.uint8)


@pytest.fixture
def detector(spot_model, spot_config):
    return PupilDetector(spot_model, spot_config)


class TestPipelineConfig:
    def test_defaults(self):
        config = PipelineConfig()
        assert config.max_consecutive_failures == 10
        assert config.display is False
        assert config.max_frames is None


class TestPipelineEngine:
    def test_processes_all_frames(self, detector):
        frames = [_bgr_spot_frame(), _bgr_blank_frame(), _bgr_spot_frame()]
        source = FiniteMockSource(ObservationConfig(source_id="mock"), frames=frames)
        engine = PipelineEngine(source, detector)

        engine.run()

        assert engine.stats.frame_count == 3
        assert engine.stats.frames_with_detections == 2
        assert engine.stats.detection_count == 2
        assert source.is_open is False

    def test_callbacks_receive_detections(self, detector):
        source = FiniteMockSource(ObservationConfig(), frames=[_bgr_spot_frame(), _bgr_blank_frame()])
        engine = PipelineEngine(source, detector)
        seen = []
        engine.add_callback(lambda fd, dets: seen.append((fd.frame_index, len(dets))))

        engine.run()

        assert seen == [(1, 1), (2, 0)]

    def test_detected_center(self, detector):
        source = FiniteMockSource(ObservationConfig(), frames=[_bgr_spot_frame()])
        engine = PipelineEngine(source, detector)
        results = []
        engine.add_callback(lambda fd, dets: results.extend(dets))

        engine.run()

        assert len(results) == 1
        assert results[0].center.x == pytest.approx(21.0)
        assert results[0].radius == pytest.approx(10.0)

    def test_callback_error_does_not_stop_pipeline(self, detector):
        source = FiniteMockSource(ObservationConfig(), frames=[_bgr_blank_frame()] * 3)
        engine = PipelineEngine(source, detector)

        def broken(fd, dets):
            raise ValueError("boom")

        engine.add_callback(broken)
        engine.run()

        assert engine.stats.frame_count == 3

    def test_max_frames(self, detector):
        source = FiniteMockSource(ObservationConfig(), frames=[_bgr_blank_frame()] * 5)
        engine = PipelineEngine(source, detector, PipelineConfig(max_frames=2))

        engine.run()

        assert engine.stats.frame_count == 2

    def test_live_source_stops_after_failures(self, detector, monkeypatch):
        monkeypatch.setattr("pipeline.engine.time.sleep", lambda s: None)
        source = MockSource(ObservationConfig(), frames=[])
        engine = PipelineEngine(source, detector, PipelineConfig(max_consecutive_failures=3))

        engine.run()

        assert engine.stats.frame_count == 0
        assert engine.stats.consecutive_failures == 3

    def test_detection_error_propagates_and_closes_source(self, detector):
        source = FiniteMockSource(ObservationConfig(), frames=[_bgr_blank_frame()])
        engine = PipelineEngine(source, detector)

        def failing_detect(image, config=None):
            raise RuntimeError("scan failed")

        detector.detect = failing_detect
        with pytest.raises(RuntimeError):
            engine.run()
        assert source.is_open is False


class TestPipelineStats:
    def test_fps_zero_without_frames(self):
        assert PipelineStats().fps == 0.0


class TestDrawDetections:
    def test_draws_circle(self):
        frame = np.zeros((40, 40, 3), dtype=np.uint8)
        out = draw_detections(frame, [Detection(center=Point(x=20, y=20), radius=10, score=7.0)])
        assert out is frame
        assert frame.any()
        # Ring pixel on the circle edge is green
        assert frame[20, 30].tolist() == [0, 255, 0]
