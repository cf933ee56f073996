"""Shared force and virial accumulators for concurrent workers."""

from __future__ import annotations

import threading

import numpy as np


class ForceAccumulator:
    """Per-site 3-vectors, one lock per site.

    Stores energy gradients ``dE/dR``; the sign convention is the caller's.
    """

    def __init__(self, natom: int):
        natom = int(natom)
        if natom < 0:
            raise ValueError("natom must be >= 0")
        self._f = np.zeros((natom, 3), dtype=np.float64)
        self._locks = [threading.Lock() for _ in range(natom)]

    @property
    def natom(self) -> int:
        return int(self._f.shape[0])

    @property
    def forces(self) -> np.ndarray:
        return self._f

    def add(self, atom: int, vec, *, alpha: float = 1.0) -> None:
        vec = np.asarray(vec, dtype=np.float64).reshape((3,))
        atom = int(atom)
        with self._locks[atom]:
            self._f[atom] += alpha * vec

    def zero(self) -> None:
        self._f[...] = 0.0


class VirialAccumulator:
    """Single 3x3 pair virial ``pv[i, j] += f0 * f[i] * r[j]`` behind one lock."""

    def __init__(self) -> None:
        self._pv = np.zeros((3, 3), dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def pv(self) -> np.ndarray:
        return self._pv

    def add_pair_force(self, f0: float, f, r) -> None:
        f = np.asarray(f, dtype=np.float64).reshape((3,))
        r = np.asarray(r, dtype=np.float64).reshape((3,))
        contrib = float(f0) * np.outer(f, r)
        with self._lock:
            self._pv += contrib

    def zero(self) -> None:
        self._pv[...] = 0.0


__all__ = ["ForceAccumulator", "VirialAccumulator"]
