from __future__ import annotations

import json

import cv2
import numpy as np
import pytest

from conftest import DummyDetector, DummyEmbedder, unit
from faceid import cli
from faceid.errors import StorageError
from faceid.face.decoder import Detection
from faceid.face.recognizer import FaceRecognizer
from faceid.face.types import Action, RecognitionResult, Status
from faceid.utils.draw import draw_detection
from faceid.utils.serializer import serialize_detection, serialize_result


@pytest.fixture
def det() -> Detection:
    return Detection(
        box=(10.0, 20.0, 40.0, 50.0),
        score=0.98766,
        landmarks=((20.0, 35.0), (40.0, 35.0), (30.0, 45.0), (22.0, 58.0), (38.0, 58.0)),
    )


def test_serialize_detection(det):
    out = serialize_detection(det, frame_shape=(100, 200))
    assert out["bbox"] == [10.0, 20.0, 40.0, 50.0]
    assert out["score"] == 0.9877
    assert out["landmarks"]["nose"] == [30.0, 45.0]
    assert out["bbox_norm"] == [0.05, 0.2, 0.2, 0.5]
    assert "bbox_norm" not in serialize_detection(det)


def test_serialize_result_is_json_safe(det):
    result = RecognitionResult(Action.IDENTIFY, Status.SUCCESS, face_id=3, similarity=np.float32(0.87654), detection=det)
    out = serialize_result(result)
    assert out["status"] == "success"
    assert out["action"] == "identify"
    assert out["face_id"] == 3
    assert out["similarity"] == 0.8765
    assert out["message"] == "你是3号"
    json.dumps(out, ensure_ascii=False)

    no_face = serialize_result(RecognitionResult(Action.ENROLL, Status.NO_FACE))
    assert no_face["detection"] is None
    assert no_face["face_id"] is None


def test_draw_detection_marks_image(det):
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    draw_detection(img, det, color=(0, 255, 0))
    assert int(img[20, 10:50, 1].max()) == 255
    assert img.any()


@pytest.fixture
def fake_recognizer(monkeypatch, face_outputs, memory_store):
    rec = FaceRecognizer(DummyDetector(face_outputs), DummyEmbedder(unit(1)), memory_store)
    seen = {}

    def from_paths(**kwargs):
        seen.update(kwargs)
        return rec

    monkeypatch.setattr(cli.FaceRecognizer, "from_paths", staticmethod(from_paths))
    rec.seen = seen
    return rec


@pytest.fixture
def image_path(tmp_path, frame):
    path = tmp_path / "face.png"
    cv2.imwrite(str(path), frame)
    return str(path)


def test_cli_enroll_identify_count_clear(fake_recognizer, image_path, capsys):
    assert cli.main(["--threshold", "0.7", "enroll", image_path]) == 0
    assert capsys.readouterr().out.strip() == "录入成功，序号: 1"
    assert fake_recognizer.seen["threshold"] == 0.7
    assert fake_recognizer.seen["device"] == "auto"

    assert cli.main(["enroll", image_path]) == 1
    assert capsys.readouterr().out.strip() == "请不要重复录入"

    assert cli.main(["--json", "identify", image_path]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "success"
    assert out["face_id"] == 1
    assert out["detection"]["bbox_norm"] is not None

    assert cli.main(["--json", "count"]) == 0
    assert json.loads(capsys.readouterr().out) == {"count": 1}

    assert cli.main(["clear"]) == 0
    capsys.readouterr()
    assert cli.main(["count"]) == 0
    assert capsys.readouterr().out.strip() == "0"


def test_cli_unreadable_image(fake_recognizer, tmp_path, capsys):
    assert cli.main(["identify", str(tmp_path / "nope.jpg")]) == 2


def test_cli_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


class _StillCamera:
    """Stands in for CameraManager: always returns the same frame."""

    def __init__(self, frame):
        self.frame = frame
        self.closed = False

    def open(self):
        pass

    def close(self):
        self.closed = True

    def get_latest_frame(self):
        return self.frame.copy()


@pytest.fixture
def live_harness(monkeypatch, frame):
    camera = _StillCamera(frame)
    shown = []
    keys = []

    monkeypatch.setattr(cli, "CameraManager", lambda config: camera)
    monkeypatch.setattr(cli, "draw_result", lambda img, result: shown.append(result))
    monkeypatch.setattr(cli, "draw_text_cn", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli.cv2, "imshow", lambda *args: None)
    monkeypatch.setattr(cli.cv2, "destroyAllWindows", lambda: None)
    monkeypatch.setattr(cli.cv2, "waitKey", lambda delay: ord(keys.pop(0)) if keys else ord("q"))
    return camera, shown, keys


def test_live_keeps_running_after_failed_extraction(face_outputs, memory_store, live_harness):
    camera, shown, keys = live_harness
    rec = FaceRecognizer(DummyDetector(face_outputs), DummyEmbedder(None), memory_store)
    keys.extend(["e", "r", "x", "q"])

    assert cli.run_live(rec, 0) == 0

    # One draw per loop turn; the result of each key shows up on the next turn.
    failed_enroll, failed_identify = shown[1], shown[2]
    assert failed_enroll.action is Action.ENROLL
    assert failed_enroll.status is Status.FAILED
    assert failed_enroll.message == "特征提取失败，请重试"
    assert failed_identify.action is Action.IDENTIFY
    assert failed_identify.status is Status.FAILED
    assert len(shown) == 4
    assert camera.closed


def test_live_recovers_after_failed_enroll(face_outputs, memory_store, live_harness, monkeypatch):
    camera, shown, keys = live_harness
    rec = FaceRecognizer(DummyDetector(face_outputs), DummyEmbedder(None), memory_store)
    keys.extend(["e", "e", "q"])

    def wait_key(delay):
        # The embedder comes back before the second key press.
        if len(shown) == 2:
            rec.embedder.feature = unit(1)
        return ord(keys.pop(0)) if keys else ord("q")

    monkeypatch.setattr(cli.cv2, "waitKey", wait_key)

    assert cli.run_live(rec, 0) == 0
    assert shown[1].status is Status.FAILED
    assert shown[2].status is Status.SUCCESS
    assert shown[2].face_id == 1
    assert rec.gallery_count() == 1


def test_live_clear_failure_is_reported(face_outputs, memory_store, live_harness, monkeypatch):
    camera, shown, keys = live_harness
    rec = FaceRecognizer(DummyDetector(face_outputs), DummyEmbedder(unit(1)), memory_store)

    def broken_clear():
        raise StorageError("disk gone")

    monkeypatch.setattr(memory_store, "clear", broken_clear)
    keys.extend(["c", "q"])

    assert cli.run_live(rec, 0) == 0
    assert shown[1].action is Action.CLEAR
    assert shown[1].status is Status.FAILED
    assert shown[1].message == "清空图库失败，请重试"
