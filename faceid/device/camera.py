"""Background camera capture with a copy-out accessor for the latest frame."""
from __future__ import annotations

import threading
import time

from dataclasses import dataclass
from typing import Callable, Optional

import cv2
import numpy as np

from faceid.config import CAMERA_DEVICE, CAMERA_HEIGHT, CAMERA_WIDTH
from faceid.errors import FaceIDError
from faceid.utils.log import get_logger

logger = get_logger(__name__)


@dataclass
class CameraConfig:
    device_id: int = CAMERA_DEVICE
    width: int = CAMERA_WIDTH
    height: int = CAMERA_HEIGHT
    # MJPG keeps USB cameras at full frame rate.
    fourcc: Optional[str] = "MJPG"
    # Pacing between frames (~60 fps cap) and back-off after a failed read.
    frame_interval: float = 0.016
    retry_interval: float = 0.010


class CameraManager:
    """
    Owns a capture thread that keeps overwriting a single frame slot.

    Readers never see the live buffer: `get_latest_frame()` returns a deep
    copy taken under the slot lock.

    Example:
        >>> cam = CameraManager(CameraConfig(device_id=0))
        >>> cam.open()
        >>> frame = cam.get_latest_frame()
        >>> cam.close()
    """

    def __init__(
        self,
        config: Optional[CameraConfig] = None,
        on_frame: Optional[Callable[[np.ndarray], None]] = None,
        capture_factory: Callable[[int], "cv2.VideoCapture"] = cv2.VideoCapture,
    ):
        self.config = config or CameraConfig()
        # Called from the capture thread with a private copy of each frame.
        self.on_frame = on_frame
        self._capture_factory = capture_factory
        self._cap = None
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def open(self) -> None:
        if self._cap is not None:
            self.close()

        cap = self._capture_factory(int(self.config.device_id))
        if cap is None or not cap.isOpened():
            raise FaceIDError(f"Cannot open camera {self.config.device_id}")

        if self.config.fourcc:
            cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self.config.fourcc))
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self.config.width))
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self.config.height))
        self._cap = cap
        logger.info(f"Camera {self.config.device_id} opened")

        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="camera-capture", daemon=True)
        self._thread.start()

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def get_latest_frame(self) -> Optional[np.ndarray]:
        """Deep copy of the newest frame, or None before the first frame."""
        with self._lock:
            if self._frame is None:
                return None
            return self._frame.copy()

    def _run(self) -> None:
        cap = self._cap
        while not self._stop.is_set():
            ok, frame = cap.read()
            if not ok or frame is None or frame.size == 0:
                logger.warning("Failed to read frame from camera")
                time.sleep(self.config.retry_interval)
                continue

            with self._lock:
                self._frame = frame

            if self.on_frame is not None:
                try:
                    self.on_frame(frame.copy())
                except Exception as e:
                    logger.error(f"frame callback failed: {e}")

            time.sleep(self.config.frame_interval)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
