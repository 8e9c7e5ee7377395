"""
Embedding vector codec and similarity.

Vectors are stored as little-endian float32 bytes.
"""

from typing import Iterable, List, Optional, Sequence, Union

import numpy as np

VectorLike = Union[np.ndarray, Sequence[float]]

_DTYPE = np.dtype("<f4")


def to_bytes(vector: VectorLike) -> bytes:
    """Serialize a vector to float32 bytes."""
    return np.asarray(vector, dtype=_DTYPE).reshape(-1).tobytes()


def from_bytes(data: bytes) -> np.ndarray:
    """Deserialize float32 bytes into a vector."""
    return np.frombuffer(data, dtype=_DTYPE).astype(np.float32)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 for empty vectors, zero vectors, or vectors of different
    dimension.
    """
    a = np.asarray(a, dtype=np.float32).reshape(-1)
    b = np.asarray(b, dtype=np.float32).reshape(-1)
    if a.size == 0 or a.shape != b.shape:
        return 0.0

    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def cosine_matrix(query: VectorLike, vectors: Iterable[np.ndarray]) -> Optional[np.ndarray]:
    """Cosine similarity of a query against a stack of same-sized vectors."""
    rows: List[np.ndarray] = list(vectors)
    if not rows:
        return None

    matrix = np.vstack(rows).astype(np.float32)
    query = np.asarray(query, dtype=np.float32).reshape(-1)

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    norms = np.where(norms == 0, 1, norms)
    return matrix.dot(query) / norms
