from __future__ import annotations

from functools import lru_cache


def ncart(l: int) -> int:
    """Number of Cartesian monomials ``x^lx y^ly z^lz`` with ``lx+ly+lz == l``.

    Parameters
    ----------
    l : int
        Total angular momentum (l >= 0).

    Returns
    -------
    int
        ``(l + 1) * (l + 2) // 2``.
    """
    if l < 0:
        raise ValueError("l must be >= 0")
    return (l + 1) * (l + 2) // 2


def ncoset(n: int) -> int:
    """Number of Cartesian monomials of total degree ``0..n`` (cumulative ``ncart``).

    ``ncoset(nder)`` is the number of derivative terms carried by an integral
    tensor that holds the value and all derivatives up to order ``nder``.
    ``ncoset(-1) == 0``.
    """
    if n < -1:
        raise ValueError("n must be >= -1")
    return (n + 1) * (n + 2) * (n + 3) // 6


@lru_cache(maxsize=None)
def cartesian_components(l: int) -> tuple[tuple[int, int, int], ...]:
    """Exponent tuples ``(lx, ly, lz)`` for angular momentum ``l``.

    Ordering follows the PySCF/libcint convention: decreasing ``lx``, then
    decreasing ``ly``. For l=1 this is x, y, z; for l=2 it is
    xx, xy, xz, yy, yz, zz.
    """
    if l < 0:
        raise ValueError("l must be >= 0")
    out: list[tuple[int, int, int]] = []
    for lx in range(l, -1, -1):
        for ly in range(l - lx, -1, -1):
            out.append((lx, ly, l - lx - ly))
    return tuple(out)


@lru_cache(maxsize=None)
def coset_components(n: int) -> tuple[tuple[int, int, int], ...]:
    """All exponent tuples of total degree ``0..n`` concatenated by degree.

    Index ``k`` of the result labels derivative term ``k`` of an integral
    tensor: ``(0,0,0)`` is the value, ``(1,0,0)`` is d/dx, and so on.
    """
    if n < 0:
        raise ValueError("n must be >= 0")
    out: list[tuple[int, int, int]] = []
    for k in range(n + 1):
        out.extend(cartesian_components(k))
    return tuple(out)


@lru_cache(maxsize=None)
def _cart_index_map(l: int) -> dict[tuple[int, int, int], int]:
    return {c: i for i, c in enumerate(cartesian_components(l))}


def cart_index(lx: int, ly: int, lz: int) -> int:
    """Position of ``(lx, ly, lz)`` within ``cartesian_components(lx+ly+lz)``."""
    if lx < 0 or ly < 0 or lz < 0:
        raise ValueError("lx/ly/lz must be >= 0")
    return _cart_index_map(lx + ly + lz)[(lx, ly, lz)]


__all__ = ["cart_index", "cartesian_components", "coset_components", "ncart", "ncoset"]
