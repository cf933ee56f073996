"""Gaussian primitive normalisation and extent helpers.

Primitive coefficients stored on a :class:`ppnl.system.kinds.Shell` already
include the radial normalisation returned by :func:`gto_norm_radial`; the
angular part lives in the Cartesian-to-spherical transform
(:mod:`ppnl.gto.sph`).
"""

from __future__ import annotations

from math import gamma, log, sqrt

import numpy as np


def _gaussian_int(n: int, alpha: np.ndarray) -> np.ndarray:
    """Compute ∫_0^∞ x^n exp(-alpha x^2) dx for vector alpha (float64)."""

    n = int(n)
    if n < 0:
        raise ValueError("n must be >= 0")
    alpha = np.asarray(alpha, dtype=np.float64)
    if alpha.ndim != 1:
        raise ValueError("alpha must be 1D")
    n1 = 0.5 * float(n + 1)
    return (gamma(n1) / 2.0) / np.power(alpha, n1)


def gto_norm_radial(n: int, exp: np.ndarray) -> np.ndarray:
    """Radial normalisation of ``r^n exp(-a r^2)``: ``1/sqrt(∫ r^(2n+2) exp(-2 a r^2) dr)``."""

    n = int(n)
    if n < 0:
        raise ValueError("n must be >= 0")
    exp = np.asarray(exp, dtype=np.float64)
    if exp.ndim != 1:
        raise ValueError("exp must be 1D")
    return 1.0 / np.sqrt(_gaussian_int(n * 2 + 2, 2.0 * exp))


def _primitive_radius(n: int, a: float, c: float, eps: float) -> float:
    # Largest r with |c| r^n exp(-a r^2) >= eps (0 if the peak is already below eps).
    def f(r: float) -> float:
        rn = n * log(r) if n > 0 else 0.0
        return log(abs(c)) + rn - a * r * r - log(eps)

    r_peak = sqrt(0.5 * n / a) if n > 0 else 0.0
    if f(max(r_peak, 1e-12)) < 0.0:
        return 0.0
    lo = max(r_peak, 1e-12)
    hi = lo + 1.0
    while f(hi) >= 0.0:
        lo = hi
        hi *= 2.0
    for _ in range(80):
        mid = 0.5 * (lo + hi)
        if f(mid) >= 0.0:
            lo = mid
        else:
            hi = mid
    return hi


def gaussian_radius(n: int, exponents, coefficients, *, eps: float = 1e-10) -> float:
    """Extent of a contracted radial Gaussian ``sum_p c_p r^n exp(-a_p r^2)``.

    Returns the largest primitive radius at which ``|c_p| r^n exp(-a_p r^2)``
    drops below ``eps``.
    """

    exponents = np.asarray(exponents, dtype=np.float64).ravel()
    coefficients = np.asarray(coefficients, dtype=np.float64).ravel()
    if exponents.shape != coefficients.shape:
        raise ValueError("exponents and coefficients must have identical shape")
    if eps <= 0.0:
        raise ValueError("eps must be > 0")
    if np.any(exponents <= 0.0):
        raise ValueError("exponents must be > 0")
    radius = 0.0
    for a, c in zip(exponents, coefficients):
        if c == 0.0:
            continue
        radius = max(radius, _primitive_radius(int(n), float(a), float(c), float(eps)))
    return float(radius)


__all__ = ["gaussian_radius", "gto_norm_radial"]
