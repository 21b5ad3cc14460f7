from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from faceid.config import (
    ALIGNED_SIZE,
    CONF_THRESHOLD,
    DEFAULT_DB_PATH,
    DEFAULT_DETECTOR_MODEL,
    DEFAULT_EMBEDDER_MODEL,
    NMS_THRESHOLD,
    SIMILARITY_THRESHOLD,
)
from faceid.errors import ConfigurationError, InferenceError
from faceid.face.align import Aligner
from faceid.face.decoder import Detection, DetectionDecoder, DetectorConfig
from faceid.face.gallery import EmbeddingStore, GalleryConfig, SQLiteEmbeddingStore
from faceid.face.matcher import Matcher, MatcherConfig
from faceid.face.nms import Suppressor, select_largest
from faceid.face.priors import PriorTable
from faceid.face.types import Action, RecognitionResult, Status
from faceid.runtime.base import MOBILEFACENET_112, RETINAFACE_320, InferenceModel
from faceid.utils.log import get_logger
from faceid.utils.math import l2_normalize

logger = get_logger(__name__)


def _frozen_view(image: np.ndarray) -> np.ndarray:
    """Read-only view of the caller's snapshot; the pipeline never writes to it."""
    arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] != 3 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ConfigurationError(f"expected a non-empty (H, W, 3) BGR image, got shape {arr.shape}")
    view = arr.view()
    view.setflags(write=False)
    return view


class FaceRecognizer:
    """
    人脸识别器：检测 -> 取最大人脸 -> 5点对齐 -> 特征提取 -> 图库比对。

    主要功能：
    1. enroll(image): 录入（相似度 >= 阈值则拒绝重复录入）
    2. identify(image): 识别（相似度 >= 阈值则返回序号）
    3. gallery_count() / clear_gallery(): 图库管理

    Absence outcomes (no face, no crop, not found) come back as
    `RecognitionResult.status`; runtime and storage failures raise.
    """

    def __init__(
        self,
        detector: InferenceModel,
        embedder: InferenceModel,
        store: EmbeddingStore,
        detector_config: Optional[DetectorConfig] = None,
        matcher_config: Optional[MatcherConfig] = None,
        priors: Optional[PriorTable] = None,
        aligned_size: Tuple[int, int] = ALIGNED_SIZE,
    ):
        """
        Args:
            detector: RetinaFace 运行时，infer() 返回 (loc, conf, landm)
            embedder: MobileFaceNet 运行时，infer() 返回原始特征向量
            store: 图库存储
            detector_config: 置信度 / NMS 阈值与方差
            matcher_config: 相似度阈值（录入去重与识别共用）
            priors: 预计算的 anchors，默认 320x320
            aligned_size: 对齐后人脸尺寸 (w, h)
        """
        self.detector = detector
        self.embedder = embedder
        self.store = store

        self.priors = priors or PriorTable()
        self.decoder = DetectionDecoder(self.priors, detector_config)
        self.suppressor = Suppressor(self.decoder.config.nms_threshold)
        self.aligner = Aligner(aligned_size)
        self.matcher = Matcher(store, matcher_config)

        logger.info(f"人脸数据库初始化成功! 当前人脸数量: {self.gallery_count()}")

    @classmethod
    def from_paths(
        cls,
        detector_model: str = DEFAULT_DETECTOR_MODEL,
        embedder_model: str = DEFAULT_EMBEDDER_MODEL,
        db_path: str = DEFAULT_DB_PATH,
        device: str = "auto",
        threshold: float = SIMILARITY_THRESHOLD,
        conf_threshold: float = CONF_THRESHOLD,
        nms_threshold: float = NMS_THRESHOLD,
    ) -> "FaceRecognizer":
        """Build the ONNX Runtime + SQLite stack from file paths."""
        # 懒加载：仅在真正需要模型时引入 onnxruntime
        from faceid.runtime.onnx import OnnxModel

        detector = OnnxModel(str(Path(detector_model)), RETINAFACE_320, device=device)
        embedder = OnnxModel(str(Path(embedder_model)), MOBILEFACENET_112, device=device)
        store = SQLiteEmbeddingStore(GalleryConfig(db_path=str(db_path)))
        return cls(
            detector,
            embedder,
            store,
            detector_config=DetectorConfig(conf_threshold=float(conf_threshold), nms_threshold=float(nms_threshold)),
            matcher_config=MatcherConfig(threshold=float(threshold)),
            priors=PriorTable(RETINAFACE_320.input_size[0], RETINAFACE_320.input_size[1]),
        )

    def detect_faces(self, image: np.ndarray) -> List[Detection]:
        """
        从图像中检测人脸

        Returns:
            NMS 之后的人脸列表（坐标为原图像素）
        """
        frame = _frozen_view(image)
        h, w = frame.shape[:2]
        outputs = self.detector.infer(frame)
        candidates = self.decoder(outputs, (w, h))
        faces = self.suppressor(candidates)
        logger.debug(f"detect_faces: {len(candidates)} candidates -> {len(faces)} after NMS")
        return faces

    def get_aligned_face(self, image: np.ndarray) -> Tuple[Optional[Detection], Optional[np.ndarray]]:
        """Returns (largest face, 112x112 crop); (None, None) without a face,
        (face, None) when alignment is degenerate."""
        frame = _frozen_view(image)
        best = select_largest(self.detect_faces(frame))
        if best is None:
            return None, None
        return best, self.aligner.align(frame, best.kps)

    def extract_embedding(self, face_img: np.ndarray) -> np.ndarray:
        outputs = self.embedder.infer(face_img)
        if not outputs:
            raise InferenceError("特征提取失败: embedder returned no outputs")
        feature = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if feature.size == 0:
            raise InferenceError("特征提取失败: empty feature vector")
        if not np.all(np.isfinite(feature)):
            raise InferenceError("特征提取失败: non-finite values in feature vector")
        # L2 归一化（人脸识别比对前需要归一化）
        return l2_normalize(feature)

    def _embed_best_face(
        self, image: np.ndarray, action: Action
    ) -> Tuple[Optional[RecognitionResult], Optional[Detection], Optional[np.ndarray]]:
        face, crop = self.get_aligned_face(image)
        if face is None:
            logger.info("未能在当前画面中检测到人脸")
            return RecognitionResult(action, Status.NO_FACE), None, None
        if crop is None:
            return RecognitionResult(action, Status.NO_CROP, detection=face), face, None
        return None, face, self.extract_embedding(crop)

    def enroll(self, image: np.ndarray) -> RecognitionResult:
        """人脸录入"""
        early, face, embedding = self._embed_best_face(image, Action.ENROLL)
        if early is not None:
            return early
        result = self.matcher.enroll(embedding).with_detection(face)
        logger.info(f"人脸录入: {result.message} (相似度: {result.similarity:.4f})")
        return result

    def identify(self, image: np.ndarray) -> RecognitionResult:
        """人脸识别"""
        early, face, embedding = self._embed_best_face(image, Action.IDENTIFY)
        if early is not None:
            return early
        result = self.matcher.identify(embedding).with_detection(face)
        logger.info(f"人脸识别: {result.message} (相似度: {result.similarity:.4f})")
        return result

    def gallery_count(self) -> int:
        return self.store.count()

    def clear_gallery(self) -> None:
        self.store.clear()
        logger.info("图库已清空")

    def close(self) -> None:
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()
