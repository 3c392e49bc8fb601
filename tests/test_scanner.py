"""
Tests for luma conversion and the multi-scale window scan.
"""

import numpy as np
import pytest

from detection.scanner import scale_sequence, scan_image, scan_windows, to_luma
from models.config import DetectorConfig
from models.errors import InvalidImageError
from models.frame import RgbaImage

from conftest import make_image


class TestLuma:
    def test_weighted_sum_truncates(self):
        image = RgbaImage(width=1, height=1, data=bytes([10, 20, 30, 255]))
        assert to_luma(image)[0, 0] == 19

    def test_white_and_black(self):
        image = RgbaImage(width=2, height=1, data=bytes([255, 255, 255, 255, 0, 0, 0, 255]))
        assert to_luma(image).tolist() == [[255, 0]]

    def test_alpha_ignored(self):
        opaque = RgbaImage(width=1, height=1, data=bytes([50, 60, 70, 255]))
        clear = RgbaImage(width=1, height=1, data=bytes([50, 60, 70, 0]))
        assert to_luma(opaque)[0, 0] == to_luma(clear)[0, 0] == (100 + 420 + 70) // 10

    def test_floor_below_one(self):
        image = RgbaImage(width=1, height=1, data=bytes([4, 0, 1, 255]))
        # (8 + 0 + 1) / 10 = 0.9
        assert to_luma(image)[0, 0] == 0

    def test_shape_and_dtype(self):
        luma = to_luma(make_image(3, 5, fill=128))
        assert luma.shape == (3, 5)
        assert luma.dtype == np.uint8
        assert (luma == 128).all()


class TestScaleSequence:
    def test_default_sweep(self):
        scales = list(scale_sequence(100, 1000, 1.1))
        assert scales[0] == 100
        assert scales[1] == pytest.approx(110.0)
        assert len(scales) == 25
        assert all(s <= 1000 for s in scales)

    def test_single_scale(self):
        assert list(scale_sequence(20, 20, 1.1)) == [20]

    def test_max_is_inclusive(self):
        assert list(scale_sequence(10, 20, 2.0)) == [10, 20]


class TestScanWindows:
    def test_raster_positions(self, accept_model):
        config = DetectorConfig(min_size=20, max_size=20)
        hits = list(scan_windows(to_luma(make_image(40, 40)), accept_model, config))

        # offset = 11, step = 2 -> centers 11, 13, ..., 29 on both axes
        assert len(hits) == 100
        assert (hits[0].row, hits[0].col) == (11, 11)
        assert (hits[1].row, hits[1].col) == (11, 13)
        assert (hits[-1].row, hits[-1].col) == (29, 29)
        assert all(h.scale == 20 and h.score == pytest.approx(1.0) for h in hits)

    def test_step_never_below_one(self, accept_model):
        config = DetectorConfig(min_size=4, max_size=4, shift_factor=0.1)
        hits = list(scan_windows(to_luma(make_image(8, 8)), accept_model, config))
        # offset = 3, step = 1 -> centers 3, 4, 5
        assert [(h.row, h.col) for h in hits[:3]] == [(3, 3), (3, 4), (3, 5)]
        assert len(hits) == 9

    def test_windows_larger_than_image_skipped(self, accept_model):
        config = DetectorConfig(min_size=20, max_size=100)
        hits = list(scan_windows(to_luma(make_image(30, 30)), accept_model, config))
        # Sizes 20 .. ~29.3 still fit a center; 32.2 and up do not
        assert hits
        assert max(h.scale for h in hits) < 30
        assert min(h.scale for h in hits) == 20

    def test_image_smaller_than_min_size(self, accept_model):
        config = DetectorConfig(min_size=50, max_size=60)
        assert scan_image(make_image(20, 20), accept_model, config) == []

    def test_spot_single_hit(self, spot_model, spot_image, spot_config):
        hits = scan_image(spot_image, spot_model, DetectorConfig.from_dict(spot_config))
        assert len(hits) == 1
        hit = hits[0]
        assert (hit.row, hit.col, hit.scale) == (21, 21, 20)
        assert hit.score == pytest.approx(10.0)

    def test_blank_no_hits(self, spot_model, blank_image, spot_config):
        assert scan_image(blank_image, spot_model, DetectorConfig.from_dict(spot_config)) == []


class TestInvalidImage:
    def test_buffer_length_mismatch(self):
        with pytest.raises(InvalidImageError):
            RgbaImage(width=2, height=2, data=bytes(15))

    def test_zero_dimension(self):
        with pytest.raises(InvalidImageError):
            RgbaImage(width=0, height=2, data=b"")
