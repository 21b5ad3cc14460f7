"""兼容入口：`python face_terminal.py enroll xxx.jpg`。

实现位于 `faceid/` 包内；此文件仅保留薄封装。
"""

from __future__ import annotations

import sys
import time

from faceid.cli import main
from faceid.utils.log import get_logger

logger = get_logger(__name__)


if __name__ == "__main__":
    st = time.time()
    code = main()
    ed = time.time()
    logger.info(f"总耗时: {ed - st:.2f} 秒")
    sys.exit(code)
