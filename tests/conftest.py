"""
Pytest configuration and shared fixtures.
"""

import os
import struct
import sys

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from detection.classifier import CascadeModel  # noqa: E402
from models.frame import RgbaImage  # noqa: E402

HEADER = b"PICOv001"


def build_model_bytes(tree_depth, trees, header=HEADER):
    """
    Serialize a cascade.

    Each tree is (nodes, preds, threshold) with nodes a list of
    2**tree_depth - 1 quads (dy1, dx1, dy2, dx2) for nodes 1.. and preds a
    list of 2**tree_depth leaf values.
    """
    out = bytearray(header)
    out += struct.pack("<ii", tree_depth, len(trees))
    for nodes, preds, threshold in trees:
        assert len(nodes) == 2 ** tree_depth - 1
        assert len(preds) == 2 ** tree_depth
        for quad in nodes:
            out += struct.pack("<4b", *quad)
        out += struct.pack(f"<{len(preds)}f", *preds)
        out += struct.pack("<f", threshold)
    return bytes(out)


def make_image(height, width, fill=0, spots=()):
    """
    Grey RGBA image with optional single-pixel spots.

    spots: iterable of (row, col, value) with value used for R, G and B.
    """
    arr = np.zeros((height, width, 4), dtype=np.uint8)
    arr[..., :3] = fill
    arr[..., 3] = 255
    for row, col, value in spots:
        arr[row, col, :3] = value
    return RgbaImage.from_array(arr)


# Fires when the window center is brighter than the pixel 5 columns to its
# right at scale 20 (delta 64 * 20 / 256 = 5 px).
SPOT_TREE = ([(0, 0, 0, 64)], [10.0, -10.0], 0.0)

# Accepts every window with margin 1.0.
ACCEPT_TREE = ([(0, 0, 0, 0)], [1.0, 1.0], 0.0)

# Rejects every window whose two probes compare equal-or-less.
REJECT_TREE = ([(0, 0, 0, 0)], [1.0, -1.0], 0.0)

SPOT_CONFIG = {
    "min_size": 20,
    "max_size": 20,
    "shift_factor": 0.1,
    "scale_factor": 1.1,
    "iou_threshold": 0.2,
}


@pytest.fixture
def spot_model_bytes():
    return build_model_bytes(1, [SPOT_TREE])


@pytest.fixture
def spot_model(spot_model_bytes):
    return CascadeModel.from_bytes(spot_model_bytes)


@pytest.fixture
def accept_model():
    return CascadeModel.from_bytes(build_model_bytes(1, [ACCEPT_TREE]))


@pytest.fixture
def spot_image():
    """40x40 black image with one white pixel at row 21, column 21."""
    return make_image(40, 40, fill=0, spots=[(21, 21, 255)])


@pytest.fixture
def blank_image():
    return make_image(40, 40, fill=0)


@pytest.fixture
def spot_config():
    return dict(SPOT_CONFIG)


@pytest.fixture
def valid_config():
    """Return a valid application configuration dictionary."""
    return {
        "model": "models/pupil.bin",
        "detector": {
            "shift_factor": 0.1,
            "min_size": 100,
            "max_size": 1000,
            "scale_factor": 1.1,
            "iou_threshold": 0.2,
            "memory_buffer_enabled": False,
            "memory_buffer_size": 5,
        },
        "source": {
            "device_id": 0,
            "rotate": 0,
        },
        "pipeline": {
            "display": False,
            "max_consecutive_failures": 10,
            "stats_log_interval": 60,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
model: "models/pupil.bin"

detector:
  min_size: 100
  max_size: 1000
  iou_threshold: 0.2

source:
  device_id: 0

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir
