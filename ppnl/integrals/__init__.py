"""Primitive integral evaluation and Cartesian/spherical transforms.

The overlap evaluator is the only numerical special-function routine the
projector code depends on; anything with the same call signature can be
injected into :func:`ppnl.core.core_ppnl.build_core_ppnl` instead.
"""

from __future__ import annotations

from .cart2sph import compute_sph_layout, transform_pair_cart_to_sph
from .overlap import resolve_backend, shell_overlap

__all__ = [
    "compute_sph_layout",
    "resolve_backend",
    "shell_overlap",
    "transform_pair_cart_to_sph",
]
