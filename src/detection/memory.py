"""
Ring buffer of recent per-frame raw detections.
"""

from __future__ import annotations

from typing import List, Sequence

from models.detection import RawDetection
from models.errors import ConfigurationError


class DetectionMemoryBuffer:
    """
    Keeps the raw hits of the last ``size`` frames.

    Each add() overwrites the oldest slot. detections() returns every slot
    concatenated, so a hit stays visible for ``size`` consecutive calls.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ConfigurationError(f"memory buffer size must be at least 1, got {size}")
        self._slots: List[List[RawDetection]] = [[] for _ in range(size)]
        self._index = 0

    @property
    def size(self) -> int:
        return len(self._slots)

    def add(self, detections: Sequence[RawDetection]) -> None:
        self._slots[self._index] = list(detections)
        self._index = (self._index + 1) % len(self._slots)

    def detections(self) -> List[RawDetection]:
        out: List[RawDetection] = []
        for slot in self._slots:
            out.extend(slot)
        return out

    def reset(self) -> None:
        """Drop all history."""
        self._slots = [[] for _ in range(len(self._slots))]
        self._index = 0
