"""Cartesian/spherical Gaussian tables shared by the integral and transform code."""

from __future__ import annotations

from .cart import cart_index, cartesian_components, coset_components, ncart, ncoset
from .norm import gaussian_radius, gto_norm_radial
from .sph import cart2sph_matrix, cart2sph_matrix_rpow, nsph, sph_m_order

__all__ = [
    "cart2sph_matrix",
    "cart2sph_matrix_rpow",
    "cart_index",
    "cartesian_components",
    "coset_components",
    "gaussian_radius",
    "gto_norm_radial",
    "ncart",
    "ncoset",
    "nsph",
    "sph_m_order",
]
