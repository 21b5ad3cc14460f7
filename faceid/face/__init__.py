"""Face building blocks: priors/decoder/nms (detection), align, gallery/matcher.

`FaceRecognizer` wires them into the enroll / identify pipeline.
"""
from faceid.face.align import Aligner
from faceid.face.decoder import Detection, DetectionDecoder, DetectorConfig
from faceid.face.gallery import EmbeddingStore, GalleryConfig, InMemoryEmbeddingStore, SQLiteEmbeddingStore
from faceid.face.matcher import Matcher, MatcherConfig
from faceid.face.nms import Suppressor, select_largest
from faceid.face.priors import Prior, PriorTable
from faceid.face.recognizer import FaceRecognizer
from faceid.face.types import Action, RecognitionResult, Status

__all__ = [
    "Action",
    "Aligner",
    "Detection",
    "DetectionDecoder",
    "DetectorConfig",
    "EmbeddingStore",
    "FaceRecognizer",
    "GalleryConfig",
    "InMemoryEmbeddingStore",
    "Matcher",
    "MatcherConfig",
    "Prior",
    "PriorTable",
    "RecognitionResult",
    "SQLiteEmbeddingStore",
    "Status",
    "Suppressor",
    "select_largest",
]
