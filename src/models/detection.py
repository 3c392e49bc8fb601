"""
Detection models for window hits, clusters and final results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np


@dataclass(frozen=True)
class Point:
    """A point in image pixel coordinates."""
    x: float
    y: float

    def as_int_tuple(self) -> Tuple[int, int]:
        """Return as integer (x, y), e.g. for cv2 drawing calls."""
        return (int(round(self.x)), int(round(self.y)))


@dataclass(frozen=True)
class RawDetection:
    """
    A single window accepted by the cascade.

    Attributes:
        row: Window center row in pixels.
        col: Window center column in pixels.
        scale: Window side length in pixels.
        score: Cascade margin (always > 0).
    """
    row: float
    col: float
    scale: float
    score: float

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (row, col, scale, score) tuple."""
        return (self.row, self.col, self.scale, self.score)


@dataclass(frozen=True)
class Cluster:
    """
    Greedy merge of overlapping raw detections.

    Attributes:
        row: Mean member row.
        col: Mean member column.
        scale: Mean member scale.
        score: Sum of member scores.
        member_count: Number of merged raw detections.
    """
    row: float
    col: float
    scale: float
    score: float
    member_count: int


@dataclass(frozen=True)
class Detection:
    """
    A located circular object.

    Attributes:
        center: Center in pixel coordinates (x = column, y = row).
        radius: Half of the window size.
        score: Summed cascade margin of the cluster.
    """
    center: Point
    radius: float
    score: float

    @property
    def diameter(self) -> float:
        return 2 * self.radius

    @classmethod
    def from_cluster(cls, cluster: Cluster) -> "Detection":
        """Adapter: convert a merged cluster into a public detection."""
        return cls(
            center=Point(x=cluster.col, y=cluster.row),
            radius=cluster.scale / 2,
            score=cluster.score,
        )

    def to_dict(self) -> dict:
        return {
            "center": {"x": self.center.x, "y": self.center.y},
            "radius": self.radius,
            "score": self.score,
        }

    def to_numpy(self) -> np.ndarray:
        """Convert to numpy array [x, y, radius, score]."""
        return np.array([self.center.x, self.center.y, self.radius, self.score])


def detections_to_numpy(detections: List[Detection]) -> np.ndarray:
    """
    Adapter: Convert list of Detection objects to numpy array.

    Returns:
        Array of shape (N, 4) with [x, y, radius, score].
    """
    if not detections:
        return np.zeros((0, 4))
    return np.array([d.to_numpy() for d in detections])
