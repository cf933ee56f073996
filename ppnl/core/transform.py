"""Outer-basis x projector integrals in the contracted spherical basis.

For an outer site with basis ``A`` at the origin and a bridge site with
projector bank ``P`` at ``rac`` this builds

    acint[μ, p, k]  = ∂^k <μ_A | p_P>            (k over ncoset(nder))
    achint[μ, q, k] = sum_p acint[μ, p, k] h[p, q]

where the derivative is taken with respect to the outer site's position.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from ppnl.gto.cart import ncart, ncoset
from ppnl.integrals.cart2sph import transform_pair_cart_to_sph
from ppnl.system.kinds import OrbitalBasis, ProjectorBank


def ppnl_integrals(
    basis: OrbitalBasis,
    bank: ProjectorBank,
    rac,
    nder: int,
    evaluator: Callable,
) -> np.ndarray:
    """Return ``acint`` with shape ``(basis.nsgf, bank.nprojectors, ncoset(nder))``.

    Outer shells whose extent cannot reach the projectors
    (``shell.radius + bank.cutoff_radius() < |rac|``) leave their rows zero.
    """

    rac = np.asarray(rac, dtype=np.float64).reshape((3,))
    nder = int(nder)
    nderiv = ncoset(nder)
    dac = float(np.linalg.norm(rac))
    proj_shells = bank.projector_shells()
    proj_first = bank.projector_offsets()
    nppnl = int(bank.nprojectors)
    rcut = float(bank.cutoff_radius())

    out = np.zeros((basis.nsgf, nppnl, nderiv), dtype=np.float64)
    for ish, sha in enumerate(basis.shells):
        if float(sha.radius) + rcut < dac:
            continue
        a0 = int(basis.first_sgf[ish])
        Ta = sha.cart_to_sph()
        for ksh, shp in enumerate(proj_shells):
            cart = np.asarray(evaluator(sha, shp, rac, nder))
            expect = (ncart(sha.cart_l), ncart(shp.cart_l), nderiv)
            if cart.shape != expect:
                raise ValueError(f"evaluator returned shape {cart.shape}, expected {expect}")
            p0 = int(proj_first[ksh])
            out[a0 : a0 + sha.nsph, p0 : p0 + shp.nsph, :] = transform_pair_cart_to_sph(cart, Ta, shp.cart_to_sph())
    return out


def ppnl_pair_tensors(
    basis: OrbitalBasis,
    bank: ProjectorBank,
    rac,
    nder: int,
    evaluator: Callable,
) -> tuple[np.ndarray, np.ndarray]:
    """``(acint, achint)`` for one (outer site, bridge site) pair."""

    acint = ppnl_integrals(basis, bank, rac, nder, evaluator)
    achint = np.asarray(bank.couple(acint), dtype=np.float64)
    if achint.shape != acint.shape:
        raise ValueError(
            f"coupled tensor shape {achint.shape} differs from integral tensor shape {acint.shape}"
        )
    return acint, achint


__all__ = ["ppnl_integrals", "ppnl_pair_tensors"]
