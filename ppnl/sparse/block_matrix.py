"""Symmetric block-sparse matrix over site pairs and periodic images.

Only canonical blocks ``(row <= col, cell)`` are stored. Block ``(i, j, R)``
holds ``<i(0)| O |j(R)>``; the transposed partner ``(j, i, -R)`` is implied.
Non-periodic matrices fold every image onto ``(0, 0, 0)``.

Each :class:`Block` owns a lock, so concurrent writers only have to call
:meth:`Block.accumulate`; the sparsity pattern itself is fixed by the caller
(:meth:`BlockSparseMatrix.reserve_block`) before any worker runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Iterator

import numpy as np

_ZERO_CELL = (0, 0, 0)


def _as_cell(cell) -> tuple[int, int, int]:
    if cell is None:
        return _ZERO_CELL
    c = tuple(int(v) for v in cell)
    if len(c) != 3:
        raise ValueError("cell must have three integer components")
    return c  # type: ignore[return-value]


@dataclass(eq=False)
class Block:
    row: int
    col: int
    cell: tuple[int, int, int]
    data: np.ndarray
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def shape(self) -> tuple[int, int]:
        return (int(self.data.shape[0]), int(self.data.shape[1]))

    def accumulate(self, x: np.ndarray, *, alpha: float = 1.0) -> None:
        """``data += alpha * x`` under the block lock."""

        x = np.asarray(x, dtype=np.float64)
        if x.shape != self.data.shape:
            raise ValueError(
                f"contribution of shape {x.shape} does not fit block ({self.row},{self.col},{self.cell}) "
                f"of shape {self.data.shape}"
            )
        with self.lock:
            if alpha == 1.0:
                self.data += x
            else:
                self.data += alpha * x


class BlockSparseMatrix:
    """Block-sparse symmetric matrix keyed by ``(row, col, cell)`` with ``row <= col``."""

    def __init__(self, block_sizes, *, periodic: bool = False):
        sizes = np.asarray(block_sizes, dtype=np.int32).ravel()
        if sizes.size and int(sizes.min()) < 0:
            raise ValueError("block_sizes must be >= 0")
        sizes.setflags(write=False)
        self.block_sizes = sizes
        self.periodic = bool(periodic)
        self._blocks: dict[tuple[int, int, tuple[int, int, int]], Block] = {}
        self._pattern_lock = threading.Lock()

    @property
    def nsites(self) -> int:
        return int(self.block_sizes.size)

    @property
    def nblocks(self) -> int:
        return len(self._blocks)

    def _key(self, row: int, col: int, cell) -> tuple[int, int, tuple[int, int, int]]:
        row = int(row)
        col = int(col)
        if row > col:
            raise ValueError(f"only canonical blocks (row <= col) are stored, got ({row}, {col})")
        if not (0 <= row < self.nsites and 0 <= col < self.nsites):
            raise ValueError(f"block ({row}, {col}) out of range for {self.nsites} sites")
        return (row, col, _as_cell(cell) if self.periodic else _ZERO_CELL)

    def reserve_block(self, row: int, col: int, cell=None) -> Block:
        """Return block ``(row, col, cell)``, creating a zero block if absent."""

        key = self._key(row, col, cell)
        with self._pattern_lock:
            blk = self._blocks.get(key)
            if blk is None:
                shape = (int(self.block_sizes[key[0]]), int(self.block_sizes[key[1]]))
                blk = Block(row=key[0], col=key[1], cell=key[2], data=np.zeros(shape, dtype=np.float64))
                self._blocks[key] = blk
            return blk

    def drop_block(self, row: int, col: int, cell=None) -> Block | None:
        """Remove block ``(row, col, cell)`` from the pattern; returns it or ``None``."""

        key = self._key(row, col, cell)
        with self._pattern_lock:
            return self._blocks.pop(key, None)

    def get_block(self, row: int, col: int, cell=None) -> Block | None:
        """Existing block or ``None``; never allocates."""
        return self._blocks.get(self._key(row, col, cell))

    def __contains__(self, key) -> bool:
        row, col, cell = key
        return self.get_block(row, col, cell) is not None

    def blocks(self) -> Iterator[Block]:
        for key in sorted(self._blocks):
            yield self._blocks[key]

    def keys(self) -> list[tuple[int, int, tuple[int, int, int]]]:
        return sorted(self._blocks)

    def zero(self) -> None:
        for blk in self._blocks.values():
            blk.data[...] = 0.0

    def copy(self) -> "BlockSparseMatrix":
        out = BlockSparseMatrix(self.block_sizes, periodic=self.periodic)
        for key, blk in self._blocks.items():
            out._blocks[key] = Block(row=blk.row, col=blk.col, cell=blk.cell, data=blk.data.copy())
        return out

    def add(self, other: "BlockSparseMatrix", alpha: float = 1.0, beta: float = 1.0) -> None:
        """In place ``self = alpha * self + beta * other``; blocks only in ``other`` are created."""

        if not isinstance(other, BlockSparseMatrix):
            raise TypeError("other must be a BlockSparseMatrix")
        if other.block_sizes.shape != self.block_sizes.shape or np.any(other.block_sizes != self.block_sizes):
            raise ValueError("matrices have different block sizes")
        if other.periodic != self.periodic:
            raise ValueError("cannot add periodic and non-periodic matrices")
        alpha = float(alpha)
        beta = float(beta)
        if alpha != 1.0:
            for blk in self._blocks.values():
                blk.data *= alpha
        for key, oblk in other._blocks.items():
            blk = self._blocks.get(key)
            if blk is None:
                blk = self.reserve_block(*key)
            blk.data += beta * oblk.data

    def norm(self) -> float:
        """Frobenius norm over stored blocks."""
        tot = 0.0
        for blk in self._blocks.values():
            tot += float(np.einsum("ij,ij->", blk.data, blk.data))
        return float(np.sqrt(tot))

    def first_index(self) -> np.ndarray:
        offs = np.zeros((self.nsites + 1,), dtype=np.int64)
        np.cumsum(self.block_sizes, out=offs[1:])
        return offs

    def to_dense(self) -> np.ndarray:
        """Gamma-point dense matrix (sum over images, symmetrised)."""

        offs = self.first_index()
        n = int(offs[-1])
        out = np.zeros((n, n), dtype=np.float64)
        for (row, col, _cell), blk in self._blocks.items():
            r0, r1 = int(offs[row]), int(offs[row + 1])
            c0, c1 = int(offs[col]), int(offs[col + 1])
            out[r0:r1, c0:c1] += blk.data
            if row != col:
                out[c0:c1, r0:r1] += blk.data.T
        return out

    @classmethod
    def from_neighbor_list(cls, nl, block_sizes, *, periodic: bool = False) -> "BlockSparseMatrix":
        """Allocate the zero pattern of every pair in a neighbor list."""

        mat = cls(block_sizes, periodic=periodic)
        for e in nl:
            if int(mat.block_sizes[e.iatom]) == 0 or int(mat.block_sizes[e.jatom]) == 0:
                continue
            if e.iatom <= e.jatom:
                mat.reserve_block(e.iatom, e.jatom, e.cell)
            else:
                mat.reserve_block(e.jatom, e.iatom, tuple(-c for c in e.cell))
        return mat


__all__ = ["Block", "BlockSparseMatrix"]
