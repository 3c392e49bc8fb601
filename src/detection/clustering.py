"""
Greedy IoU clustering of raw window hits.

Hits are sorted by score (highest first). Each still-unassigned hit anchors
a new cluster and absorbs every later unassigned hit whose IoU with the
anchor exceeds the threshold. Members are compared with the anchor only,
never with the running mean.
"""

from __future__ import annotations

from typing import List, Sequence

from models.detection import Cluster, Detection, RawDetection

MIN_CLUSTER_SCORE = 5.0


def calculate_iou(det1, det2) -> float:
    """
    IoU of two axis-aligned squares given as objects with row, col, scale.
    """
    r1, c1, s1 = det1.row, det1.col, det1.scale
    r2, c2, s2 = det2.row, det2.col, det2.scale
    overr = max(0, min(r1 + s1 / 2, r2 + s2 / 2) - max(r1 - s1 / 2, r2 - s2 / 2))
    overc = max(0, min(c1 + s1 / 2, c2 + s2 / 2) - max(c1 - s1 / 2, c2 - s2 / 2))
    return overr * overc / (s1 * s1 + s2 * s2 - overr * overc)


def cluster_detections(detections: Sequence[RawDetection], iou_threshold: float) -> List[Cluster]:
    """Merge overlapping hits; returned clusters follow anchor score order."""
    ordered = sorted(detections, key=lambda d: d.score, reverse=True)
    assigned = [False] * len(ordered)
    clusters: List[Cluster] = []

    for i, anchor in enumerate(ordered):
        if assigned[i]:
            continue
        # The anchor always belongs to its own cluster (IoU with itself is 1)
        assigned[i] = True
        r, c, s, q = anchor.row, anchor.col, anchor.scale, anchor.score
        n = 1
        for j in range(i + 1, len(ordered)):
            if assigned[j]:
                continue
            det = ordered[j]
            if calculate_iou(anchor, det) > iou_threshold:
                assigned[j] = True
                r += det.row
                c += det.col
                s += det.scale
                q += det.score
                n += 1
        clusters.append(Cluster(row=r / n, col=c / n, scale=s / n, score=q, member_count=n))

    return clusters


def select_detections(clusters: Sequence[Cluster], min_score: float = MIN_CLUSTER_SCORE) -> List[Detection]:
    """Drop clusters scoring <= min_score and return the rest ascending by score."""
    kept = sorted((cl for cl in clusters if cl.score > min_score), key=lambda cl: cl.score)
    return [Detection.from_cluster(cl) for cl in kept]


def merge_detections(detections: Sequence[RawDetection], iou_threshold: float) -> List[Detection]:
    return select_detections(cluster_detections(detections, iou_threshold))
