"""Real solid harmonics expressed in Cartesian monomials.

``cart2sph_matrix(l)`` returns ``T (ncart(l), nsph(l))`` such that a spherical
function is ``Y_m = sum_c T[c, m] * cart_c``. The angular normalisation
``sqrt((2l+1)/(4*pi))`` is folded into ``T`` so that primitives only need the
radial normalisation (libcint convention). Components are ordered
``m = -l..l`` except for l=1, which uses x, y, z.
"""

from __future__ import annotations

from functools import lru_cache
from math import comb, factorial, pi, sqrt

import numpy as np

from .cart import cart_index, ncart


def nsph(l: int) -> int:
    """Number of real spherical components for angular momentum ``l``."""
    if l < 0:
        raise ValueError("l must be >= 0")
    return 2 * l + 1


def sph_m_order(l: int) -> tuple[int, ...]:
    """Magnetic quantum numbers in storage order."""
    if l < 0:
        raise ValueError("l must be >= 0")
    if l == 1:
        return (1, -1, 0)
    return tuple(range(-l, l + 1))


def _solid_harmonic(l: int, m: int) -> dict[tuple[int, int, int], float]:
    # Schlegel & Frisch, IJQC 54, 83 (1995), eq. 15.
    am = abs(m)
    norm = sqrt(2.0 * factorial(l + am) * factorial(l - am) / (2.0 if m == 0 else 1.0))
    norm /= float(2**am * factorial(l))
    norm *= sqrt((2 * l + 1) / (4.0 * pi))
    v2_start = 0 if m >= 0 else 1
    poly: dict[tuple[int, int, int], float] = {}
    for t in range((l - am) // 2 + 1):
        for u in range(t + 1):
            for v2 in range(v2_start, am + 1, 2):
                sign = -1.0 if (t + (v2 - v2_start) // 2) % 2 else 1.0
                c = sign * 0.25**t * comb(l, t) * comb(l - t, am + t) * comb(t, u) * comb(am, v2)
                key = (2 * t + am - 2 * u - v2, 2 * u + v2, l - 2 * t - am)
                poly[key] = poly.get(key, 0.0) + c * norm
    return poly


def _r2_power(k: int) -> dict[tuple[int, int, int], float]:
    """Monomial expansion of ``(x^2 + y^2 + z^2)^k``."""
    out: dict[tuple[int, int, int], float] = {}
    for a in range(k + 1):
        for b in range(k - a + 1):
            c = k - a - b
            out[(2 * a, 2 * b, 2 * c)] = float(factorial(k) // (factorial(a) * factorial(b) * factorial(c)))
    return out


@lru_cache(maxsize=None)
def cart2sph_matrix_rpow(l: int, k: int) -> np.ndarray:
    """Transform for ``r^(2k) * S_lm``: shape ``(ncart(l+2k), nsph(l))``.

    Used for projector functions whose radial part carries an extra even
    power of ``r`` (``r^(l+2k) exp(-a r^2) Y_lm``).
    """
    if l < 0 or k < 0:
        raise ValueError("l and k must be >= 0")
    lc = l + 2 * k
    r2k = _r2_power(k)
    T = np.zeros((ncart(lc), nsph(l)), dtype=np.float64)
    for im, m in enumerate(sph_m_order(l)):
        for (ax, ay, az), ca in _solid_harmonic(l, m).items():
            for (bx, by, bz), cb in r2k.items():
                T[cart_index(ax + bx, ay + by, az + bz), im] += ca * cb
    T.setflags(write=False)
    return T


def cart2sph_matrix(l: int) -> np.ndarray:
    """Cartesian-to-spherical block ``(ncart(l), nsph(l))`` (read-only, cached)."""
    return cart2sph_matrix_rpow(l, 0)


__all__ = ["cart2sph_matrix", "cart2sph_matrix_rpow", "nsph", "sph_m_order"]
