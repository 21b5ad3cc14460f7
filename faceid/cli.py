"""命令行入口：图片录入/识别、图库管理与摄像头实时预览。"""

from __future__ import annotations

import argparse
import json
import sys

from typing import List, Optional

import cv2

from faceid.config import (
    CAMERA_DEVICE,
    CONF_THRESHOLD,
    DEFAULT_DB_PATH,
    DEFAULT_DETECTOR_MODEL,
    DEFAULT_EMBEDDER_MODEL,
    NMS_THRESHOLD,
    SIMILARITY_THRESHOLD,
)
from faceid.device.camera import CameraConfig, CameraManager
from faceid.errors import FaceIDError
from faceid.face.recognizer import FaceRecognizer
from faceid.face.types import Action, RecognitionResult, Status
from faceid.utils.draw import draw_result, draw_text_cn
from faceid.utils.log import get_logger, set_verbosity
from faceid.utils.serializer import serialize_result

logger = get_logger(__name__)

WINDOW_NAME = "faceid"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="边缘端人脸录入与识别（RetinaFace + MobileFaceNet + SQLite）")
    parser.add_argument("--detector", default=DEFAULT_DETECTOR_MODEL, help="RetinaFace ONNX 模型路径")
    parser.add_argument("--embedder", default=DEFAULT_EMBEDDER_MODEL, help="MobileFaceNet ONNX 模型路径")
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help="人脸数据库文件路径")
    parser.add_argument(
        "--device",
        type=str,
        default="auto",
        choices=["auto", "cpu", "gpu"],
        help="计算设备：auto/cpu/gpu（默认 auto：有 CUDA 就用 GPU）",
    )
    parser.add_argument(
        "--threshold", "-t", type=float, default=SIMILARITY_THRESHOLD, help="相似度阈值（录入去重与识别共用）"
    )
    parser.add_argument("--conf-threshold", type=float, default=CONF_THRESHOLD, help="人脸检测置信度阈值")
    parser.add_argument("--nms-threshold", type=float, default=NMS_THRESHOLD, help="NMS IoU 阈值")
    parser.add_argument("--json", action="store_true", help="以 JSON 输出结果")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="输出调试日志")

    sub = parser.add_subparsers(dest="command", required=True)
    p_enroll = sub.add_parser("enroll", help="从图片录入人脸")
    p_enroll.add_argument("image", help="输入图片路径")
    p_identify = sub.add_parser("identify", help="从图片识别人脸")
    p_identify.add_argument("image", help="输入图片路径")
    sub.add_parser("count", help="输出图库人脸数量")
    sub.add_parser("clear", help="清空图库并重置序号")
    p_live = sub.add_parser("live", help="摄像头实时预览：e 录入 / r 识别 / c 清空 / q 退出")
    p_live.add_argument("--camera", type=int, default=CAMERA_DEVICE, help="摄像头设备号 /dev/videoX")
    return parser


def _print_result(result: RecognitionResult, frame_shape, as_json: bool) -> None:
    if as_json:
        print(json.dumps(serialize_result(result, frame_shape), ensure_ascii=False))
    else:
        print(result.message)


def _run_image(recognizer: FaceRecognizer, command: str, image_path: str, as_json: bool) -> int:
    image = cv2.imread(image_path)
    if image is None:
        logger.error(f"无法读取图像: {image_path}")
        return 2
    if command == "enroll":
        result = recognizer.enroll(image)
    else:
        result = recognizer.identify(image)
    _print_result(result, image.shape[:2], as_json)
    return 0 if result.ok else 1


def _live_action(recognizer: FaceRecognizer, key: int, frame) -> Optional[RecognitionResult]:
    """Run the action bound to `key`; failures become a red prompt instead of ending the session."""
    if key == ord("e"):
        action = Action.ENROLL
    elif key == ord("r"):
        action = Action.IDENTIFY
    else:
        action = Action.CLEAR
    try:
        if action is Action.ENROLL:
            return recognizer.enroll(frame)
        if action is Action.IDENTIFY:
            return recognizer.identify(frame)
        recognizer.clear_gallery()
        return None
    except FaceIDError as e:
        logger.error(f"{action.value} 失败: {e}")
        return RecognitionResult(action, Status.FAILED)


def run_live(recognizer: FaceRecognizer, camera_id: int) -> int:
    camera = CameraManager(CameraConfig(device_id=int(camera_id)))
    camera.open()
    last: Optional[RecognitionResult] = None
    try:
        while True:
            frame = camera.get_latest_frame()
            if frame is None:
                if (cv2.waitKey(10) & 0xFF) == ord("q"):
                    break
                continue

            vis = frame.copy()
            draw_result(vis, last)
            draw_text_cn(vis, f"图库: {recognizer.gallery_count()}  e 录入 / r 识别 / c 清空 / q 退出", (10, vis.shape[0] - 30), 18)
            cv2.imshow(WINDOW_NAME, vis)

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key in (ord("e"), ord("r"), ord("c")):
                last = _live_action(recognizer, key, frame)
    finally:
        camera.close()
        cv2.destroyAllWindows()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    set_verbosity(args.verbose)

    recognizer = FaceRecognizer.from_paths(
        detector_model=args.detector,
        embedder_model=args.embedder,
        db_path=args.db,
        device=args.device,
        threshold=args.threshold,
        conf_threshold=args.conf_threshold,
        nms_threshold=args.nms_threshold,
    )
    with recognizer:
        if args.command in ("enroll", "identify"):
            return _run_image(recognizer, args.command, args.image, args.json)
        if args.command == "count":
            count = recognizer.gallery_count()
            print(json.dumps({"count": count}) if args.json else count)
            return 0
        if args.command == "clear":
            recognizer.clear_gallery()
            print(json.dumps({"count": 0}) if args.json else "图库已清空")
            return 0
        return run_live(recognizer, args.camera)


if __name__ == "__main__":
    sys.exit(main())
