"""Block-sparse matrix storage and shared accumulators."""

from __future__ import annotations

from .block_matrix import Block, BlockSparseMatrix
from .forces import ForceAccumulator, VirialAccumulator

__all__ = ["Block", "BlockSparseMatrix", "ForceAccumulator", "VirialAccumulator"]
