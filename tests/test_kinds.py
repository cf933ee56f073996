from __future__ import annotations

import numpy as np
import pytest

from ppnl.gto import gto_norm_radial
from ppnl.system import (
    GTHProjectorBank,
    Kind,
    OrbitalBasis,
    ParticleSet,
    SeparableProjectorBank,
    Shell,
)


def test_shell_defaults_and_validation():
    sh = Shell.normalized(1, [0.5], [1.0], rpow=1)
    assert sh.cart_l == 3
    assert sh.nsph == 3
    assert sh.radius > 0.0
    assert sh.coefficients[0] == pytest.approx(float(gto_norm_radial(3, np.array([0.5]))[0]))
    assert not sh.exponents.flags.writeable
    with pytest.raises(ValueError):
        Shell(0, [1.0, 2.0], [1.0])
    with pytest.raises(ValueError):
        Shell(0, [-1.0], [1.0])
    with pytest.raises(ValueError):
        Shell(-1, [1.0], [1.0])


def test_shell_radius_grows_with_diffuseness():
    tight = Shell.normalized(0, [3.0], [1.0])
    diffuse = Shell.normalized(0, [0.2], [1.0])
    assert diffuse.radius > tight.radius
    assert Shell.normalized(0, [0.2], [1.0], radius=2.5).radius == 2.5


def test_orbital_basis_layout():
    basis = OrbitalBasis(
        (Shell.normalized(0, [1.0], [1.0]), Shell.normalized(2, [0.5], [1.0]), Shell.normalized(1, [0.3], [1.0]))
    )
    assert basis.nshell == 3
    assert basis.nsgf == 1 + 5 + 3
    assert basis.first_sgf.tolist() == [0, 1, 6]
    assert basis.lmax == 2


def test_gth_bank_structure():
    bank = GTHProjectorBank([0.5, 0.6, 0.7], [[[1.0, 0.2], [0.2, -0.5]], [], [[0.3]]])
    shells = bank.projector_shells()
    assert [(sh.l, sh.rpow) for sh in shells] == [(0, 0), (0, 1), (2, 0)]
    assert shells[0].exponents[0] == pytest.approx(0.5 / 0.25)
    assert shells[2].exponents[0] == pytest.approx(0.5 / 0.49)
    assert bank.nprojectors == 1 + 1 + 5
    h = bank.coupling_matrix()
    assert h.shape == (7, 7)
    assert np.allclose(h, h.T)
    assert h[0, 0] == pytest.approx(1.0)
    assert h[0, 1] == pytest.approx(0.2)
    assert h[1, 1] == pytest.approx(-0.5)
    assert np.allclose(h[2:, 2:], 0.3 * np.eye(5))
    assert np.allclose(h[:2, 2:], 0.0)
    assert bank.cutoff_radius() == pytest.approx(max(sh.radius for sh in shells))


def test_gth_bank_rejects_bad_coupling():
    with pytest.raises(ValueError):
        GTHProjectorBank([0.5], [[[1.0, 0.2], [0.3, 1.0]]])
    with pytest.raises(ValueError):
        GTHProjectorBank([0.5, 0.4], [[[1.0]]])
    with pytest.raises(ValueError):
        GTHProjectorBank([-0.5], [[[1.0]]])


def test_separable_bank_couple_is_diagonal(rng):
    bank = SeparableProjectorBank(
        [1.5, 0.6],
        [[[0.7], [0.3]], [[0.5, 0.1], [0.2, 0.9]]],
        [[1.3], [-0.4, 0.8]],
        radius=3.0,
    )
    assert bank.nprojectors == 1 + 3 + 3
    assert bank.cutoff_radius() == 3.0
    assert np.allclose(np.diag(bank.coupling_matrix()), [1.3, -0.4, -0.4, -0.4, 0.8, 0.8, 0.8])
    acint = rng.standard_normal((4, 7, 4))
    ref = np.einsum("apk,pq->aqk", acint, bank.coupling_matrix())
    assert np.allclose(bank.couple(acint), ref)
    with pytest.raises(ValueError):
        bank.couple(rng.standard_normal((4, 6, 1)))


def test_generic_couple_checks_shape(rng):
    bank = GTHProjectorBank([0.5], [[[2.0]]])
    with pytest.raises(ValueError):
        bank.couple(rng.standard_normal((2, 3, 1)))
    out = bank.couple(np.ones((2, 1, 1)))
    assert np.allclose(out, 2.0)


def test_kind_basis_lookup():
    basis = OrbitalBasis((Shell.normalized(0, [1.0], [1.0]),))
    aux = OrbitalBasis((Shell.normalized(1, [1.0], [1.0]),))
    k = Kind("H", basis={"orb": basis, "AUX": aux})
    assert k.basis_set() is basis
    assert k.basis_set("aux") is aux
    assert k.basis_set("RI") is None
    assert not k.has_projectors
    assert Kind("ghost").basis_set() is None
    assert Kind("H", basis=basis).basis_set("ORB") is basis
    with pytest.raises(TypeError):
        Kind("bad", basis={"ORB": "sto-3g"})
    with pytest.raises(TypeError):
        Kind("bad", projectors=object())


def test_particle_set_validation(mixed_system):
    assert mixed_system.natom == 6
    assert mixed_system.nkind == 3
    assert mixed_system.sites_of_kind(2).tolist() == [2, 5]
    assert mixed_system.block_sizes().tolist() == [4, 6, 0, 4, 6, 0]
    assert mixed_system.site(1).kind == 1
    moved = mixed_system.with_positions(mixed_system.positions + 1.0)
    assert np.allclose(moved.positions - mixed_system.positions, 1.0)
    with pytest.raises(ValueError):
        ParticleSet(mixed_system.kinds, [0, 1], np.zeros((3, 3)))
    with pytest.raises(ValueError):
        ParticleSet(mixed_system.kinds, [0, 7], np.zeros((2, 3)))
    with pytest.raises(ValueError):
        ParticleSet(mixed_system.kinds, [0], np.zeros((1, 3)), cell=np.eye(2))
