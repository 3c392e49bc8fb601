"""
Cascade of binary decision trees over pixel-intensity comparisons.

Model blob layout (little-endian):

    [0, 8)          opaque header, kept verbatim
    int32           tree depth d
    int32           tree count
    per tree:
        (2**d - 1) x 4 int8    node deltas (dy1, dx1, dy2, dx2), nodes 1..2**d-1
        2**d float32           leaf predictions
        float32                cascade threshold

Nodes are addressed 1-based so node ``idx`` has children ``2*idx`` and
``2*idx + 1``. Slot 0 of every tree is an all-zero pad.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import struct
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from models.errors import DecodeError

HEADER_SIZE = 8
PREAMBLE_SIZE = HEADER_SIZE + 8
MAX_TREE_DEPTH = 30

ModelSource = Union[bytes, bytearray, memoryview, str]

# (node quads, leaf predictions, threshold) for one tree
_Tree = Tuple[Tuple[Tuple[int, int, int, int], ...], Tuple[float, ...], float]


def _tree_size(tree_depth: int) -> int:
    """Bytes used by one serialized tree."""
    leaves = 1 << tree_depth
    return 4 * (leaves - 1) + 4 * leaves + 4


class CascadeModel:
    """
    Immutable decision-tree ensemble evaluated as a rejection cascade.

    Attributes:
        header: The opaque 8 leading bytes of the blob.
        tree_depth: Depth shared by every tree.
        tree_count: Number of trees, evaluated in stored order.
        node_deltas: int8 array (tree_count, 2**tree_depth, 4).
        leaf_predictions: float32 array (tree_count, 2**tree_depth).
        thresholds: float32 array (tree_count,).
    """

    def __init__(
        self,
        header: bytes,
        tree_depth: int,
        node_deltas: np.ndarray,
        leaf_predictions: np.ndarray,
        thresholds: np.ndarray,
    ) -> None:
        if len(header) != HEADER_SIZE:
            raise DecodeError(f"header must be {HEADER_SIZE} bytes, got {len(header)}")
        if tree_depth < 0 or tree_depth > MAX_TREE_DEPTH:
            raise DecodeError(f"tree depth out of range: {tree_depth}")

        slots = 1 << tree_depth
        node_deltas = np.array(node_deltas, dtype=np.int8)
        leaf_predictions = np.array(leaf_predictions, dtype=np.float32)
        thresholds = np.array(thresholds, dtype=np.float32).reshape(-1)
        tree_count = thresholds.shape[0]

        if tree_count < 1:
            raise DecodeError("model must contain at least one tree")
        if node_deltas.shape != (tree_count, slots, 4):
            raise DecodeError(
                f"node deltas shape {node_deltas.shape} != {(tree_count, slots, 4)}"
            )
        if leaf_predictions.shape != (tree_count, slots):
            raise DecodeError(
                f"leaf predictions shape {leaf_predictions.shape} != {(tree_count, slots)}"
            )

        node_deltas[:, 0, :] = 0
        for arr in (node_deltas, leaf_predictions, thresholds):
            arr.flags.writeable = False

        self.header = bytes(header)
        self.tree_depth = tree_depth
        self.tree_count = tree_count
        self.node_deltas = node_deltas
        self.leaf_predictions = leaf_predictions
        self.thresholds = thresholds

        # Plain Python tuples for the per-window hot loop
        self._trees: List[_Tree] = [
            (
                tuple(tuple(quad) for quad in node_deltas[t].tolist()),
                tuple(leaf_predictions[t].tolist()),
                float(thresholds[t]),
            )
            for t in range(tree_count)
        ]
        self._leaf_base = slots
        self._final_threshold = float(thresholds[-1])

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> "CascadeModel":
        """Parse a raw model blob."""
        buf = bytes(data)
        if len(buf) < PREAMBLE_SIZE:
            raise DecodeError(
                f"model blob too short: {len(buf)} bytes, need at least {PREAMBLE_SIZE}"
            )

        header = buf[:HEADER_SIZE]
        tree_depth, tree_count = struct.unpack_from("<ii", buf, HEADER_SIZE)
        if tree_depth < 0 or tree_depth > MAX_TREE_DEPTH:
            raise DecodeError(f"tree depth out of range: {tree_depth}")
        if tree_count < 1:
            raise DecodeError(f"tree count must be positive, got {tree_count}")

        expected = PREAMBLE_SIZE + tree_count * _tree_size(tree_depth)
        if len(buf) != expected:
            raise DecodeError(
                f"model blob length {len(buf)} does not match depth={tree_depth} "
                f"trees={tree_count} (expected {expected} bytes)"
            )

        slots = 1 << tree_depth
        node_deltas = np.zeros((tree_count, slots, 4), dtype=np.int8)
        leaf_predictions = np.empty((tree_count, slots), dtype=np.float32)
        thresholds = np.empty(tree_count, dtype=np.float32)

        p = PREAMBLE_SIZE
        for t in range(tree_count):
            if slots > 1:
                codes = np.frombuffer(buf, dtype=np.int8, count=4 * (slots - 1), offset=p)
                node_deltas[t, 1:, :] = codes.reshape(slots - 1, 4)
                p += 4 * (slots - 1)
            leaf_predictions[t] = np.frombuffer(buf, dtype="<f4", count=slots, offset=p)
            p += 4 * slots
            thresholds[t] = struct.unpack_from("<f", buf, p)[0]
            p += 4

        model = cls(header, tree_depth, node_deltas, leaf_predictions, thresholds)
        logging.info(f"Cascade model loaded: depth={tree_depth}, trees={tree_count}")
        return model

    @classmethod
    def from_base64(cls, text: str) -> "CascadeModel":
        """Parse a standard base64-encoded model blob."""
        try:
            raw = base64.b64decode("".join(text.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"invalid base64 model: {e}") from e
        return cls.from_bytes(raw)

    @classmethod
    def load(cls, source: ModelSource) -> "CascadeModel":
        """Parse raw bytes or a base64 string."""
        if isinstance(source, str):
            return cls.from_base64(source)
        return cls.from_bytes(source)

    @classmethod
    def from_file(cls, path: str) -> "CascadeModel":
        """
        Load a model file.

        Files holding base64 text (``.b64``/``.txt``) are decoded first;
        anything else is read as the raw blob.
        """
        with open(path, "rb") as f:
            raw = f.read()
        ext = os.path.splitext(path)[1].lower()
        if ext in (".b64", ".txt"):
            try:
                text = raw.decode("ascii")
            except UnicodeDecodeError as e:
                raise DecodeError(f"{path} is not base64 text") from e
            return cls.from_base64(text)
        return cls.from_bytes(raw)

    def to_bytes(self) -> bytes:
        """Serialize back to the blob layout, header preserved."""
        parts = [self.header, struct.pack("<ii", self.tree_depth, self.tree_count)]
        for t in range(self.tree_count):
            parts.append(self.node_deltas[t, 1:, :].tobytes())
            parts.append(self.leaf_predictions[t].astype("<f4").tobytes())
            parts.append(struct.pack("<f", float(self.thresholds[t])))
        return b"".join(parts)

    def process(
        self,
        row: int,
        col: int,
        scale: float,
        pixels: Sequence[int],
        row_stride: int,
    ) -> Optional[float]:
        """
        Run the cascade on the window centred at (row, col) of size ``scale``.

        ``pixels`` is a flat single-channel buffer with ``row_stride`` values
        per row. Probes are not bounds-checked; the caller keeps windows
        inside the image.

        Returns:
            The margin over the last tree's threshold, or None if any tree
            rejects the window.
        """
        r = 256 * row
        c = 256 * col
        depth = self.tree_depth
        leaf_base = self._leaf_base
        o = 0.0
        for nodes, preds, threshold in self._trees:
            idx = 1
            for _ in range(depth):
                dy1, dx1, dy2, dx2 = nodes[idx]
                i1 = (int(r + dy1 * scale) >> 8) * row_stride + (int(c + dx1 * scale) >> 8)
                i2 = (int(r + dy2 * scale) >> 8) * row_stride + (int(c + dx2 * scale) >> 8)
                idx = 2 * idx + (1 if pixels[i1] <= pixels[i2] else 0)
            o += preds[idx - leaf_base]
            if o <= threshold:
                return None
        return o - self._final_threshold

    def __repr__(self) -> str:
        return f"CascadeModel(tree_depth={self.tree_depth}, tree_count={self.tree_count})"
