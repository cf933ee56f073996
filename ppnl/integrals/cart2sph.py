"""Cartesian-to-spherical transforms for shell-pair integral tensors.

Integrals are evaluated between Cartesian primitives and transformed per shell
pair at the boundary: ``M_sph(A,B) = T_A^T @ M_cart(A,B) @ T_B`` for every
derivative slice.
"""

from __future__ import annotations

import numpy as np

from ppnl.gto.sph import nsph


def compute_sph_layout(shell_l) -> tuple[np.ndarray, int]:
    """Spherical function offsets for a sequence of shell angular momenta.

    Returns
    -------
    first_sgf : ndarray[int32]
        Start offset of each shell in the spherical function list.
    nsgf : int
        Total number of spherical functions.
    """
    shell_l = np.asarray(shell_l, dtype=np.int32).ravel()
    nshell = int(shell_l.size)
    first_sgf = np.empty((nshell,), dtype=np.int32)
    cursor = 0
    for i in range(nshell):
        first_sgf[i] = cursor
        cursor += nsph(int(shell_l[i]))
    return first_sgf, int(cursor)


def transform_pair_cart_to_sph(block_cart: np.ndarray, TA: np.ndarray, TB: np.ndarray) -> np.ndarray:
    """Transform a Cartesian shell-pair tensor to the spherical basis.

    ``block_cart`` has shape ``(ncartA, ncartB)`` or ``(ncartA, ncartB, nderiv)``;
    ``TA`` is ``(ncartA, nsphA)`` and ``TB`` is ``(ncartB, nsphB)``.
    """
    blk = np.asarray(block_cart, dtype=np.float64)
    if blk.ndim == 2:
        if blk.shape != (TA.shape[0], TB.shape[0]):
            raise ValueError(f"block shape {blk.shape} does not match transforms {TA.shape[0]}x{TB.shape[0]}")
        return TA.T @ blk @ TB
    if blk.ndim == 3:
        if blk.shape[:2] != (TA.shape[0], TB.shape[0]):
            raise ValueError(f"block shape {blk.shape} does not match transforms {TA.shape[0]}x{TB.shape[0]}")
        return np.einsum("mi,mnk,nj->ijk", TA, blk, TB, optimize=True)
    raise ValueError("block_cart must have ndim in {2,3}")


__all__ = ["compute_sph_layout", "transform_pair_cart_to_sph"]
