import numpy as np

# Detector (RetinaFace 320) input resolution and anchor layout.
MODEL_WIDTH = 320
MODEL_HEIGHT = 320
STRIDES = (8, 16, 32)
MIN_SIZES = ((16.0, 32.0), (64.0, 128.0), (256.0, 512.0))
VARIANCES = (0.1, 0.2)
CONF_THRESHOLD = 0.5
NMS_THRESHOLD = 0.4

# Recognizer (MobileFaceNet / ArcFace) canonical crop.
ALIGNED_SIZE = (112, 112)
REFERENCE_PTS_112 = np.array(
    [
        [38.2946, 51.6963],  # left eye
        [73.5318, 51.5014],  # right eye
        [56.0252, 71.7366],  # nose
        [41.5493, 92.3655],  # left mouth
        [70.7299, 92.2041],  # right mouth
    ],
    dtype=np.float32,
)

# 余弦相似度大于等于该值认为是同一个人（录入去重与识别共用）
SIMILARITY_THRESHOLD = 0.6
SIMILARITY_EPS = 1e-6

DEFAULT_DETECTOR_MODEL = "assets/model/retinaface_320.onnx"
DEFAULT_EMBEDDER_MODEL = "assets/model/w600k_mbf.onnx"
DEFAULT_DB_PATH = "face_database.db"

CAMERA_DEVICE = 0
CAMERA_WIDTH = 1280
CAMERA_HEIGHT = 720

# 常见系统字体候选（macOS/Windows/Linux），按需扩展
FONT_LIST = [
    # macOS
    "/System/Library/Fonts/STHeiti Medium.ttc",
    "/System/Library/Fonts/STHeiti Light.ttc",
    "/Library/Fonts/Arial Unicode.ttf",
    # Windows
    "C:\\Windows\\Fonts\\msyh.ttc",
    "C:\\Windows\\Fonts\\simsun.ttc",
    # 常见 Linux 字体：中文字体必须放在西文字体前面
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/wqy/wqy-zenhei.ttc",
    "/usr/share/fonts/truetype/wqy/wqy-microhei.ttc",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
]
