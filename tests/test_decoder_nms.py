from __future__ import annotations

import math

import numpy as np
import pytest

from conftest import BIG_ANCHOR, FACE_LANDMARKS, make_detector_outputs
from faceid.errors import ConfigurationError, TensorShapeError
from faceid.face.decoder import Detection, DetectionDecoder, DetectorConfig
from faceid.face.nms import Suppressor, box_iou_xywh, select_largest


def _det(box, score=0.9):
    return Detection(box=tuple(float(v) for v in box), score=float(score), landmarks=((0.0, 0.0),) * 5)


def test_zero_regression_reproduces_anchor_unclamped(priors):
    outputs = make_detector_outputs(len(priors), {0: (0.8, (0, 0, 0, 0), ((0.0, 0.0),) * 5)})
    dets = DetectionDecoder(priors)(outputs, (640, 480))

    assert len(dets) == 1
    det = dets[0]
    # Anchor 0: center 0.0125, size 0.05 -> box partly outside the image.
    assert det.box == pytest.approx((-8.0, -6.0, 32.0, 24.0))
    assert det.score == pytest.approx(0.8)
    for x, y in det.landmarks:
        assert x == pytest.approx(0.0125 * 640)
        assert y == pytest.approx(0.0125 * 480)


def test_regression_follows_variance_formula(priors):
    reg = (1.0, -0.5, 2.0, -1.0)
    lm = ((1.0, 2.0), (-1.0, 0.5), (0.0, 0.0), (3.0, -2.0), (0.25, 0.75))
    outputs = make_detector_outputs(len(priors), {BIG_ANCHOR: (0.99, reg, lm)})
    (det,) = DetectionDecoder(priors).decode(*outputs, image_size=(1280, 720))

    p = priors[BIG_ANCHOR]
    cx = p.cx + reg[0] * 0.1 * p.base_w
    cy = p.cy + reg[1] * 0.1 * p.base_h
    w = p.base_w * math.exp(reg[2] * 0.2)
    h = p.base_h * math.exp(reg[3] * 0.2)
    assert det.box == pytest.approx(((cx - w / 2) * 1280, (cy - h / 2) * 720, w * 1280, h * 720), rel=1e-5)
    for (x, y), (dx, dy) in zip(det.landmarks, lm):
        assert x == pytest.approx((p.cx + dx * 0.1 * p.base_w) * 1280, rel=1e-5)
        assert y == pytest.approx((p.cy + dy * 0.1 * p.base_h) * 720, rel=1e-5)


def test_confidence_threshold_is_inclusive(priors):
    outputs = make_detector_outputs(
        len(priors),
        {
            10: (0.5, (0, 0, 0, 0), FACE_LANDMARKS),
            20: (0.49, (0, 0, 0, 0), FACE_LANDMARKS),
            30: (0.7, (0, 0, 0, 0), FACE_LANDMARKS),
        },
    )
    dets = DetectionDecoder(priors, DetectorConfig(conf_threshold=0.5))(outputs, (320, 320))
    assert sorted(round(d.score, 2) for d in dets) == [0.5, 0.7]


def test_no_face_anchor_gives_empty_list(priors, empty_outputs):
    assert DetectionDecoder(priors)(empty_outputs, (320, 320)) == []


def test_flat_tensors_are_accepted(priors, face_outputs):
    flat = [o.reshape(-1) for o in face_outputs]
    assert len(DetectionDecoder(priors)(flat, (320, 320))) == 1


@pytest.mark.parametrize("which,delta", [(0, -4), (1, 2), (2, -10)])
def test_wrong_tensor_size_raises(priors, face_outputs, which, delta):
    outputs = [o.reshape(-1) for o in face_outputs]
    n = outputs[which].size + delta
    outputs[which] = np.zeros(n, dtype=np.float32)
    with pytest.raises(TensorShapeError):
        DetectionDecoder(priors)(outputs, (320, 320))


def test_missing_output_raises(priors, face_outputs):
    with pytest.raises(TensorShapeError):
        DetectionDecoder(priors)(face_outputs[:2], (320, 320))


def test_invalid_image_size_raises(priors, face_outputs):
    with pytest.raises(ConfigurationError):
        DetectionDecoder(priors)(face_outputs, (0, 320))


def test_iou_basic():
    assert box_iou_xywh((0, 0, 10, 10), (0, 0, 10, 10)) == pytest.approx(1.0)
    assert box_iou_xywh((0, 0, 10, 10), (20, 20, 5, 5)) == 0.0
    assert box_iou_xywh((0, 0, 10, 10), (5, 0, 10, 10)) == pytest.approx(50 / 150)
    assert box_iou_xywh((0, 0, 0, 0), (0, 0, 0, 0)) == 0.0


def test_nms_keeps_highest_of_identical_boxes():
    low = _det((10, 10, 50, 50), 0.8)
    high = _det((10, 10, 50, 50), 0.9)
    kept = Suppressor(0.4)([low, high])
    assert kept == [high]


def test_nms_keeps_disjoint_boxes_in_score_order():
    a = _det((0, 0, 10, 10), 0.6)
    b = _det((100, 100, 10, 10), 0.95)
    assert Suppressor(0.4)([a, b]) == [b, a]


def test_nms_threshold_is_strict():
    a = _det((0, 0, 10, 10), 0.9)
    b = _det((5, 0, 10, 10), 0.8)  # IoU = 1/3
    assert Suppressor(0.5)([a, b]) == [a, b]
    assert Suppressor(0.3)([a, b]) == [a]


def test_nms_empty():
    assert Suppressor()([]) == []


def test_select_largest():
    small = _det((0, 0, 10, 10), 0.99)
    big = _det((50, 50, 40, 40), 0.6)
    same = _det((200, 200, 40, 40), 0.7)
    assert select_largest([small, big, same]) is big
    assert select_largest([]) is None
