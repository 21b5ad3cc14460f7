from __future__ import annotations

from typing import List, Optional, Sequence

from faceid.config import NMS_THRESHOLD
from faceid.face.decoder import Detection


def box_iou_xywh(a: Sequence[float], b: Sequence[float]) -> float:
    """计算两个 xywh bbox 的 IoU。"""
    ax1, ay1, aw, ah = [float(x) for x in a]
    bx1, by1, bw, bh = [float(x) for x in b]
    ax2, ay2 = ax1 + aw, ay1 + ah
    bx2, by2 = bx1 + bw, by1 + bh
    w = max(0.0, min(ax2, bx2) - max(ax1, bx1))
    h = max(0.0, min(ay2, by2) - max(ay1, by1))
    inter = w * h
    area_a = max(0.0, aw) * max(0.0, ah)
    area_b = max(0.0, bw) * max(0.0, bh)
    denom = area_a + area_b - inter
    return float(inter / denom) if denom > 1e-12 else 0.0


class Suppressor:
    """Greedy non-maximum suppression over decoded candidates."""

    def __init__(self, iou_threshold: float = NMS_THRESHOLD):
        self.iou_threshold = float(iou_threshold)

    def __call__(self, detections: Sequence[Detection]) -> List[Detection]:
        return self.suppress(detections)

    def suppress(self, detections: Sequence[Detection]) -> List[Detection]:
        """简单 NMS：按 score 降序，丢弃与已保留框 IoU > thresh 的框。

        `sorted` is stable, so equal scores keep their first-seen order.
        """
        if not detections:
            return []
        remaining = sorted(detections, key=lambda d: d.score, reverse=True)
        keep: List[Detection] = []
        for det in remaining:
            discard = False
            for k in keep:
                if box_iou_xywh(det.box, k.box) > self.iou_threshold:
                    discard = True
                    break
            if not discard:
                keep.append(det)
        return keep


def select_largest(detections: Sequence[Detection]) -> Optional[Detection]:
    """取最大的脸；ties go to the first one encountered. None if empty."""
    best: Optional[Detection] = None
    for det in detections:
        if best is None or det.area > best.area:
            best = det
    return best
