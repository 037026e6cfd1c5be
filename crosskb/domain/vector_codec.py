"""Codec des vecteurs d'embedding et similarité cosinus.

Représentation de stockage: float32 little-endian contigu (`bytes`), ce qui fige la dimension et
la métrique: changer l'une ou l'autre impose de migrer tous les embeddings stockés.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from crosskb.domain.errors import InvalidVectorDimensionality

_STORAGE_DTYPE = np.dtype("<f4")
# en dessous, la norme est considérée nulle
_ZERO_NORM_EPS = 1e-12


class VectorCodec:
    """Encode/décode les vecteurs et calcule leur similarité."""

    def __init__(self, dim: int = 1536) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = dim

    def _as_array(self, vector: Sequence[float] | np.ndarray) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float64)
        if arr.ndim != 1 or arr.shape[0] != self.dim:
            raise InvalidVectorDimensionality(
                f"expected vector of dim {self.dim}, got shape {arr.shape}",
                {"expected": self.dim, "shape": list(arr.shape)},
            )
        return arr

    def validate(self, vector: Sequence[float] | np.ndarray) -> None:
        """Lève InvalidVectorDimensionality si la dimension ne correspond pas."""
        self._as_array(vector)

    def similarity(self, a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
        """Similarité cosinus dans [-1, 1]; 0.0 si l'un des vecteurs est de norme nulle."""
        va = self._as_array(a)
        vb = self._as_array(b)
        na = float(np.linalg.norm(va))
        nb = float(np.linalg.norm(vb))
        if na < _ZERO_NORM_EPS or nb < _ZERO_NORM_EPS:
            return 0.0
        cos = float(np.dot(va, vb) / (na * nb))
        return max(-1.0, min(1.0, cos))

    def similarities(self, query: Sequence[float] | np.ndarray, matrix: np.ndarray) -> np.ndarray:
        """Similarités cosinus d'une requête contre une matrice (n, dim), vectorisé."""
        q = self._as_array(query)
        if matrix.size == 0:
            return np.zeros(0, dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[1] != self.dim:
            raise InvalidVectorDimensionality(
                f"expected matrix of shape (n, {self.dim}), got {matrix.shape}",
                {"expected": self.dim, "shape": list(matrix.shape)},
            )
        m = matrix.astype(np.float64, copy=False)
        qn = float(np.linalg.norm(q))
        row_norms = np.linalg.norm(m, axis=1)
        if qn < _ZERO_NORM_EPS:
            return np.zeros(m.shape[0], dtype=np.float64)
        denom = row_norms * qn
        out = np.zeros(m.shape[0], dtype=np.float64)
        nz = denom >= _ZERO_NORM_EPS
        out[nz] = (m[nz] @ q) / denom[nz]
        return np.clip(out, -1.0, 1.0)

    def encode(self, vector: Sequence[float] | np.ndarray) -> bytes:
        """Forme de stockage (float32 little-endian)."""
        return self._as_array(vector).astype(_STORAGE_DTYPE).tobytes()

    def decode(self, blob: bytes) -> list[float]:
        """Inverse de `encode`."""
        expected = self.dim * _STORAGE_DTYPE.itemsize
        if len(blob) != expected:
            raise InvalidVectorDimensionality(
                f"stored vector has {len(blob)} bytes, expected {expected}",
                {"expected": self.dim, "bytes": len(blob)},
            )
        return np.frombuffer(blob, dtype=_STORAGE_DTYPE).astype(np.float64).tolist()
