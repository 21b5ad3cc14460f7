"""日志配置

级别可通过环境变量 FACEID_LOG_LEVEL 覆盖（DEBUG/INFO/WARNING...）。
"""

import logging
import os

from contextlib import contextmanager

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logging.basicConfig(level=os.environ.get("FACEID_LOG_LEVEL", "INFO").upper(), format=LOG_FORMAT)


def get_logger(name):
    """获取日志记录器"""
    return logging.getLogger(name)


def set_verbosity(verbose: int) -> None:
    """0 -> INFO, >=1 -> DEBUG for every `faceid.*` logger."""
    logging.getLogger("faceid").setLevel(logging.DEBUG if verbose > 0 else logging.INFO)


@contextmanager
def suppress_fds():
    """Redirect FD 1 and 2 to /dev/null for the duration of the block.

    Runtime libraries print from native code while a model session is
    created; that output never goes through sys.stdout/sys.stderr.
    """
    devnull = os.open(os.devnull, os.O_RDWR)
    saved = (os.dup(1), os.dup(2))
    try:
        os.dup2(devnull, 1)
        os.dup2(devnull, 2)
        yield
    finally:
        os.dup2(saved[0], 1)
        os.dup2(saved[1], 2)
        for fd in (devnull, *saved):
            os.close(fd)
