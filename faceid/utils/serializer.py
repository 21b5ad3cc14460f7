from typing import Dict, Optional, Tuple

from faceid.face.decoder import LANDMARK_NAMES, Detection
from faceid.face.types import RecognitionResult


def serialize_detection(det: Detection, frame_shape: Optional[Tuple[int, int]] = None) -> Dict:
    """Serialize a Detection into JSON-safe form and optionally add normalized coords.

    frame_shape: (h, w)
    """
    x, y, w, h = [float(v) for v in det.box]
    out = {
        "bbox": [round(x, 2), round(y, 2), round(w, 2), round(h, 2)],
        "score": round(float(det.score), 4),
        "landmarks": {name: [round(px, 2), round(py, 2)] for name, (px, py) in zip(LANDMARK_NAMES, det.landmarks)},
    }
    if frame_shape is not None:
        fh, fw = int(frame_shape[0]), int(frame_shape[1])
        if fh > 0 and fw > 0:
            out["bbox_norm"] = [round(x / fw, 4), round(y / fh, 4), round(w / fw, 4), round(h / fh, 4)]
    return out


def serialize_result(result: RecognitionResult, frame_shape: Optional[Tuple[int, int]] = None) -> Dict:
    """Serialize an enroll/identify result for JSON output."""
    return {
        "action": result.action.value,
        "status": result.status.value,
        "face_id": int(result.face_id) if result.face_id is not None else None,
        "similarity": round(float(result.similarity), 4),
        "message": result.message,
        "detection": serialize_detection(result.detection, frame_shape) if result.detection is not None else None,
    }
