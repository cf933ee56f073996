"""Primitive overlap integrals between two Gaussian shells (with derivatives).

This is the primitive integral evaluator used by the projector transform
stage. For a shell ``a`` centred at the origin and a shell ``b`` centred at
``rab`` it returns

    out[μ, ν, k] = ∂^k/∂A^k <μ_a | ν_b>

for Cartesian components ``μ`` of ``a`` (degree ``a.cart_l``), ``ν`` of ``b``
(degree ``b.cart_l``) and derivative terms ``k`` enumerated by
``coset_components(nder)`` (``k=0`` is the plain overlap, ``k=1..3`` are
d/dAx, d/dAy, d/dAz, ...).

Backend
-------
``PPNL_INT_BACKEND`` selects ``python`` or ``numba`` (default ``auto``: numba
when it imports). All backends are pure functions and safe to call from
several worker threads at once.
"""

from __future__ import annotations

from math import pi, sqrt

import functools
import numpy as np
import os

from ppnl.gto.cart import cartesian_components, coset_components, ncart, ncoset


def _overlap_1d_table(*, la: int, lb: int, a: float, b: float, Ax: float, Bx: float) -> np.ndarray:
    """Return 1D overlap integrals S[i,j] for i<=la, j<=lb (Obara-Saika)."""

    la = int(la)
    lb = int(lb)
    if la < 0 or lb < 0:
        raise ValueError("la/lb must be >= 0")

    p = a + b
    inv_p = 1.0 / p
    Px = (a * Ax + b * Bx) * inv_p
    PA = Px - Ax
    PB = Px - Bx
    AB = Ax - Bx
    inv_2p = 0.5 * inv_p

    out = np.zeros((la + 1, lb + 1), dtype=np.float64)
    out[0, 0] = sqrt(pi * inv_p) * np.exp(-a * b * inv_p * AB * AB)

    for j in range(lb):
        out[0, j + 1] = PB * out[0, j]
        if j > 0:
            out[0, j + 1] += j * inv_2p * out[0, j - 1]

    for i in range(la):
        out[i + 1, :] = PA * out[i, :]
        if i > 0:
            out[i + 1, :] += i * inv_2p * out[i - 1, :]
        out[i + 1, 1:] += np.arange(1, lb + 1, dtype=np.float64) * inv_2p * out[i, :-1]

    return out


def _overlap_1d_deriv_tables(
    *, la: int, lb: int, a: float, b: float, Ax: float, Bx: float, nder: int
) -> np.ndarray:
    """Return D[n, i, j] = d^n/dAx^n S[i, j] for n<=nder, i<=la, j<=lb.

    Uses d/dA (x-A)^i exp(-a (x-A)^2) = 2a (x-A)^(i+1) e - i (x-A)^(i-1) e.
    """

    nder = int(nder)
    if nder < 0:
        raise ValueError("nder must be >= 0")
    prev = _overlap_1d_table(la=la + nder, lb=lb, a=a, b=b, Ax=Ax, Bx=Bx)
    out = np.empty((nder + 1, la + 1, lb + 1), dtype=np.float64)
    out[0] = prev[: la + 1]
    for n in range(1, nder + 1):
        imax = la + nder - n
        cur = 2.0 * a * prev[1 : imax + 2]
        cur[1:] -= np.arange(1, imax + 1, dtype=np.float64)[:, None] * prev[:imax]
        out[n] = cur[: la + 1]
        prev = cur
    return out


@functools.lru_cache(maxsize=64)
def _comp_index_tables(l: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    comp = np.asarray(cartesian_components(int(l)), dtype=np.int64).reshape((-1, 3))
    lx, ly, lz = (np.ascontiguousarray(comp[:, k]) for k in range(3))
    for arr in (lx, ly, lz):
        arr.setflags(write=False)
    return lx, ly, lz


@functools.lru_cache(maxsize=16)
def _deriv_index_tables(nder: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    comp = np.asarray(coset_components(int(nder)), dtype=np.int64).reshape((-1, 3))
    dx, dy, dz = (np.ascontiguousarray(comp[:, k]) for k in range(3))
    for arr in (dx, dy, dz):
        arr.setflags(write=False)
    return dx, dy, dz


def _int_backend() -> str:
    """Return selected overlap backend: 'python' | 'numba'."""

    v = os.environ.get("PPNL_INT_BACKEND", "auto").strip().lower()
    return resolve_backend(v)


def resolve_backend(name: str | None) -> str:
    """Normalise a backend name; ``auto`` prefers numba when it imports."""

    v = "auto" if name is None else str(name).strip().lower()
    if v in ("", "auto"):
        try:
            from ppnl.integrals import _overlap_numba as _nb  # noqa: PLC0415

            if bool(getattr(_nb, "HAS_NUMBA", False)):
                return "numba"
        except ImportError:
            pass
        return "python"
    if v in ("py", "python"):
        return "python"
    if v in ("nb", "numba"):
        return "numba"
    raise ValueError("PPNL_INT_BACKEND must be one of: auto|python|numba")


def _shell_overlap_python(
    la: int,
    exp_a: np.ndarray,
    coef_a: np.ndarray,
    lb: int,
    exp_b: np.ndarray,
    coef_b: np.ndarray,
    rab: np.ndarray,
    nder: int,
) -> np.ndarray:
    ax, ay, az = _comp_index_tables(la)
    bx, by, bz = _comp_index_tables(lb)
    dx, dy, dz = _deriv_index_tables(nder)

    out = np.zeros((ncoset(nder), ncart(la), ncart(lb)), dtype=np.float64)
    X, Y, Z = (float(v) for v in rab)
    for a, ca in zip(exp_a, coef_a):
        for b, cb in zip(exp_b, coef_b):
            Dx = _overlap_1d_deriv_tables(la=la, lb=lb, a=float(a), b=float(b), Ax=0.0, Bx=X, nder=nder)
            Dy = _overlap_1d_deriv_tables(la=la, lb=lb, a=float(a), b=float(b), Ax=0.0, Bx=Y, nder=nder)
            Dz = _overlap_1d_deriv_tables(la=la, lb=lb, a=float(a), b=float(b), Ax=0.0, Bx=Z, nder=nder)
            out += (float(ca) * float(cb)) * (
                Dx[np.ix_(dx, ax, bx)] * Dy[np.ix_(dy, ay, by)] * Dz[np.ix_(dz, az, bz)]
            )
    return np.ascontiguousarray(out.transpose(1, 2, 0))


def shell_overlap(shell_a, shell_b, rab, nder: int = 0, *, backend: str | None = None) -> np.ndarray:
    """Contracted Cartesian overlap ``<a|b>`` and its derivatives w.r.t. centre A.

    Parameters
    ----------
    shell_a, shell_b :
        Objects exposing ``cart_l``, ``exponents`` and ``coefficients``
        (see :class:`ppnl.system.kinds.Shell`). Coefficients must already
        include the primitive normalisation.
    rab : array_like, shape (3,)
        Position of centre B relative to centre A.
    nder : int
        Highest derivative order (>= 0).
    backend : str | None
        ``python`` | ``numba`` | ``auto``; ``None`` reads ``PPNL_INT_BACKEND``.

    Returns
    -------
    np.ndarray
        Shape ``(ncart(a.cart_l), ncart(b.cart_l), ncoset(nder))``.
    """

    nder = int(nder)
    if nder < 0:
        raise ValueError("nder must be >= 0")
    rab = np.asarray(rab, dtype=np.float64).reshape((3,))
    la = int(shell_a.cart_l)
    lb = int(shell_b.cart_l)
    exp_a = np.asarray(shell_a.exponents, dtype=np.float64)
    coef_a = np.asarray(shell_a.coefficients, dtype=np.float64)
    exp_b = np.asarray(shell_b.exponents, dtype=np.float64)
    coef_b = np.asarray(shell_b.coefficients, dtype=np.float64)

    backend_s = _int_backend() if backend is None else resolve_backend(backend)
    if backend_s == "numba":
        from ppnl.integrals import _overlap_numba as _nb  # noqa: PLC0415

        ax, ay, az = _comp_index_tables(la)
        bx, by, bz = _comp_index_tables(lb)
        dx, dy, dz = _deriv_index_tables(nder)
        return _nb.shell_overlap_numba(
            la, exp_a, coef_a, lb, exp_b, coef_b, rab, nder, ax, ay, az, bx, by, bz, dx, dy, dz
        )
    return _shell_overlap_python(la, exp_a, coef_a, lb, exp_b, coef_b, rab, nder)


__all__ = ["resolve_backend", "shell_overlap"]
