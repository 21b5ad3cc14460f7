"""
Edge face enrollment and identification.

Pipeline:
- RetinaFace anchor decoding + greedy NMS
- 5-point similarity alignment to 112x112
- MobileFaceNet / ArcFace embeddings via ONNX Runtime
- SQLite gallery with cosine-similarity enroll / identify
"""

__version__ = "1.0.0"
