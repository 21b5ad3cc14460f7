from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from faceid.face.decoder import Detection


class Status(str, Enum):
    SUCCESS = "success"
    NO_FACE = "no_face"
    NO_CROP = "no_crop"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    # Runtime or storage failure, reported instead of raised by the live loop.
    FAILED = "failed"


class Action(str, Enum):
    ENROLL = "enroll"
    IDENTIFY = "identify"
    CLEAR = "clear"


@dataclass(frozen=True)
class RecognitionResult:
    action: Action
    status: Status
    # SUCCESS: enrolled/recognized id. DUPLICATE: id of the existing record.
    face_id: Optional[int] = None
    similarity: float = 0.0
    detection: Optional[Detection] = None

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @property
    def message(self) -> str:
        """Prompt text shown to the user."""
        if self.status is Status.NO_FACE:
            if self.action is Action.ENROLL:
                return "未检测到人脸，请靠近并正对摄像头"
            return "未检测到人脸，请正对摄像头"
        if self.status is Status.FAILED:
            if self.action is Action.CLEAR:
                return "清空图库失败，请重试"
            return "特征提取失败，请重试"
        if self.status is Status.NO_CROP:
            return "人脸对齐失败，请重试"
        if self.status is Status.DUPLICATE:
            return "请不要重复录入"
        if self.status is Status.NOT_FOUND:
            return "请先录入人脸"
        if self.action is Action.ENROLL:
            return f"录入成功，序号: {self.face_id}"
        return f"你是{self.face_id}号"

    def with_detection(self, detection: Optional[Detection]) -> "RecognitionResult":
        return RecognitionResult(
            action=self.action,
            status=self.status,
            face_id=self.face_id,
            similarity=self.similarity,
            detection=detection,
        )
