"""Numba-accelerated shell overlap kernel.

Imported lazily by :mod:`ppnl.integrals.overlap` when the backend resolves to
``numba``. Mirrors ``_shell_overlap_python`` term by term.
"""

from __future__ import annotations

import math

import numpy as np

import numba as nb  # type: ignore

HAS_NUMBA = True


@nb.njit(cache=True)
def _overlap_1d_table(la: int, lb: int, a: float, b: float, Ax: float, Bx: float) -> np.ndarray:
    p = a + b
    inv_p = 1.0 / p
    Px = (a * Ax + b * Bx) * inv_p
    PA = Px - Ax
    PB = Px - Bx
    AB = Ax - Bx
    inv_2p = 0.5 * inv_p

    out = np.zeros((la + 1, lb + 1), dtype=np.float64)
    out[0, 0] = math.sqrt(math.pi * inv_p) * math.exp(-a * b * inv_p * AB * AB)

    for j in range(lb):
        out[0, j + 1] = PB * out[0, j]
        if j > 0:
            out[0, j + 1] += float(j) * inv_2p * out[0, j - 1]

    for i in range(la):
        out[i + 1, 0] = PA * out[i, 0]
        if i > 0:
            out[i + 1, 0] += float(i) * inv_2p * out[i - 1, 0]
        for j in range(lb):
            out[i + 1, j + 1] = PA * out[i, j + 1]
            if i > 0:
                out[i + 1, j + 1] += float(i) * inv_2p * out[i - 1, j + 1]
            out[i + 1, j + 1] += float(j + 1) * inv_2p * out[i, j]
    return out


@nb.njit(cache=True)
def _overlap_1d_deriv_tables(la: int, lb: int, a: float, b: float, Ax: float, Bx: float, nder: int) -> np.ndarray:
    prev = _overlap_1d_table(la + nder, lb, a, b, Ax, Bx)
    out = np.empty((nder + 1, la + 1, lb + 1), dtype=np.float64)
    for i in range(la + 1):
        for j in range(lb + 1):
            out[0, i, j] = prev[i, j]
    for n in range(1, nder + 1):
        imax = la + nder - n
        cur = np.empty((imax + 1, lb + 1), dtype=np.float64)
        for i in range(imax + 1):
            for j in range(lb + 1):
                val = 2.0 * a * prev[i + 1, j]
                if i > 0:
                    val -= float(i) * prev[i - 1, j]
                cur[i, j] = val
        for i in range(la + 1):
            for j in range(lb + 1):
                out[n, i, j] = cur[i, j]
        prev = cur
    return out


@nb.njit(cache=True)
def shell_overlap_numba(
    la: int,
    exp_a: np.ndarray,
    coef_a: np.ndarray,
    lb: int,
    exp_b: np.ndarray,
    coef_b: np.ndarray,
    rab: np.ndarray,
    nder: int,
    ax: np.ndarray,
    ay: np.ndarray,
    az: np.ndarray,
    bx: np.ndarray,
    by: np.ndarray,
    bz: np.ndarray,
    dx: np.ndarray,
    dy: np.ndarray,
    dz: np.ndarray,
) -> np.ndarray:
    nA = ax.shape[0]
    nB = bx.shape[0]
    nD = dx.shape[0]
    out = np.zeros((nA, nB, nD), dtype=np.float64)
    for ia in range(exp_a.shape[0]):
        a = exp_a[ia]
        for ib in range(exp_b.shape[0]):
            b = exp_b[ib]
            c = coef_a[ia] * coef_b[ib]
            Dx = _overlap_1d_deriv_tables(la, lb, a, b, 0.0, rab[0], nder)
            Dy = _overlap_1d_deriv_tables(la, lb, a, b, 0.0, rab[1], nder)
            Dz = _overlap_1d_deriv_tables(la, lb, a, b, 0.0, rab[2], nder)
            for i in range(nA):
                for j in range(nB):
                    for k in range(nD):
                        out[i, j, k] += c * (
                            Dx[dx[k], ax[i], bx[j]] * Dy[dy[k], ay[i], by[j]] * Dz[dz[k], az[i], bz[j]]
                        )
    return out
