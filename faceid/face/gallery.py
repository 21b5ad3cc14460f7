from __future__ import annotations

import sqlite3
import threading

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from faceid.config import DEFAULT_DB_PATH
from faceid.errors import DimensionMismatchError, StorageError
from faceid.utils.log import get_logger

logger = get_logger(__name__)

# Byte-exact on-disk layout of one embedding.
FEATURE_DTYPE = np.dtype("<f4")


@dataclass
class GalleryConfig:
    # SQLite database file; ":memory:" keeps everything in RAM.
    db_path: str = DEFAULT_DB_PATH
    table: str = "faces"


def feature_to_blob(feature: np.ndarray) -> bytes:
    return np.asarray(feature, dtype=FEATURE_DTYPE).reshape(-1).tobytes()


def blob_to_feature(blob: bytes) -> np.ndarray:
    if len(blob) % FEATURE_DTYPE.itemsize != 0:
        raise StorageError(f"corrupt feature blob of {len(blob)} bytes")
    return np.frombuffer(blob, dtype=FEATURE_DTYPE).astype(np.float32)


def _as_feature(vec: np.ndarray) -> np.ndarray:
    arr = np.asarray(vec, dtype=np.float32).reshape(-1)
    if arr.size == 0:
        raise DimensionMismatchError("cannot store an empty embedding")
    return arr


class EmbeddingStore(ABC):
    """Persisted embeddings keyed by store-assigned ids.

    Ids increase strictly and are never reused; only `clear()` resets the
    sequence so that the next `append()` returns 1.
    """

    @abstractmethod
    def append(self, embedding: np.ndarray) -> int:
        ...

    @abstractmethod
    def iterate(self) -> Iterator[Tuple[int, np.ndarray]]:
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    @property
    @abstractmethod
    def dim(self) -> Optional[int]:
        """Dimension of stored embeddings, None while empty."""

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return self.count()

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _check_dim(self, feature: np.ndarray) -> None:
        dim = self.dim
        if dim is not None and int(feature.size) != dim:
            raise DimensionMismatchError(f"embedding dim {feature.size} does not match gallery dim {dim}")


class InMemoryEmbeddingStore(EmbeddingStore):
    def __init__(self):
        self._records: Dict[int, np.ndarray] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def append(self, embedding: np.ndarray) -> int:
        feature = _as_feature(embedding)
        with self._lock:
            self._check_dim(feature)
            new_id = self._next_id
            self._records[new_id] = feature.copy()
            self._next_id += 1
        return new_id

    def iterate(self) -> Iterator[Tuple[int, np.ndarray]]:
        with self._lock:
            snapshot = [(i, v.copy()) for i, v in self._records.items()]
        return iter(snapshot)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._next_id = 1

    @property
    def dim(self) -> Optional[int]:
        with self._lock:
            for v in self._records.values():
                return int(v.size)
        return None


class SQLiteEmbeddingStore(EmbeddingStore):
    """SQLite-backed gallery.

    表结构：
      - id: INTEGER 自增主键 (AUTOINCREMENT never reuses ids)
      - feature: BLOB, little-endian float32
    """

    def __init__(self, config: Optional[GalleryConfig] = None):
        self.config = config or GalleryConfig()
        self._lock = threading.RLock()
        db_path = str(self.config.db_path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            # Calls are serialized by self._lock, so the connection may be shared.
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._create_table()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {db_path}: {e}") from e
        self._dim: Optional[int] = self._query_dim()

    def _create_table(self) -> None:
        with self._conn:
            self._conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.config.table} ("
                "id INTEGER PRIMARY KEY AUTOINCREMENT,"
                "feature BLOB NOT NULL);"
            )

    def _query_dim(self) -> Optional[int]:
        try:
            with self._lock:
                row = self._conn.execute(f"SELECT feature FROM {self.config.table} LIMIT 1;").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read database: {e}") from e
        if row is None:
            return None
        return int(len(row[0]) // FEATURE_DTYPE.itemsize)

    def append(self, embedding: np.ndarray) -> int:
        feature = _as_feature(embedding)
        with self._lock:
            self._check_dim(feature)
            try:
                with self._conn:
                    cur = self._conn.execute(
                        f"INSERT INTO {self.config.table} (feature) VALUES (?);",
                        (sqlite3.Binary(feature_to_blob(feature)),),
                    )
            except sqlite3.Error as e:
                raise StorageError(f"插入数据失败: {e}") from e
            self._dim = int(feature.size)
            return int(cur.lastrowid)

    def iterate(self) -> Iterator[Tuple[int, np.ndarray]]:
        try:
            with self._lock:
                rows = self._conn.execute(f"SELECT id, feature FROM {self.config.table} ORDER BY id;").fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read database: {e}") from e
        records: List[Tuple[int, np.ndarray]] = []
        for face_id, blob in rows:
            if not blob:
                continue
            records.append((int(face_id), blob_to_feature(blob)))
        return iter(records)

    def count(self) -> int:
        try:
            with self._lock:
                row = self._conn.execute(f"SELECT COUNT(*) FROM {self.config.table};").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count faces: {e}") from e
        return int(row[0]) if row else 0

    def clear(self) -> None:
        """Delete every record and reset the AUTOINCREMENT counter."""
        try:
            with self._lock, self._conn:
                self._conn.execute(f"DELETE FROM {self.config.table};")
                # sqlite_sequence holds the AUTOINCREMENT high-water mark
                self._conn.execute("DELETE FROM sqlite_sequence WHERE name = ?;", (self.config.table,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear database: {e}") from e
        self._dim = None

    @property
    def dim(self) -> Optional[int]:
        return self._dim

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
