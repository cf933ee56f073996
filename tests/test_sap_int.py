"""Transform stage and pair cache (phase 1)."""

from __future__ import annotations

import functools

import numpy as np
import pytest

from _systems import make_mixed_system
from ppnl.core import BridgeRecord, SapInt, build_sap_int, ppnl_integrals, ppnl_pair_tensors
from ppnl.integrals import shell_overlap
from ppnl.system import GTHProjectorBank, OrbitalBasis, Shell, build_sap_neighbor_list

_PY = functools.partial(shell_overlap, backend="python")


def _s_overlap(a: float, b: float, d: float) -> float:
    return (2.0 * np.sqrt(a * b) / (a + b)) ** 1.5 * np.exp(-a * b / (a + b) * d * d)


def test_transform_stage_s_projector():
    basis = OrbitalBasis((Shell.normalized(0, [1.0], [1.0], radius=2.0),))
    bank = GTHProjectorBank([0.5], [[[2.0]]], radius=1.6)
    rac = np.array([1.5, 0.0, 0.0])
    acint, achint = ppnl_pair_tensors(basis, bank, rac, 1, _PY)
    assert acint.shape == (1, 1, 4)
    s = _s_overlap(1.0, 2.0, 1.5)
    assert acint[0, 0, 0] == pytest.approx(s, rel=1e-12)
    assert np.allclose(achint, 2.0 * acint)
    # d/dA along x: moving A towards C increases the overlap
    assert acint[0, 0, 1] > 0.0
    assert acint[0, 0, 2] == pytest.approx(0.0, abs=1e-14)


def test_transform_stage_radius_check_zeroes_far_shells():
    basis = OrbitalBasis(
        (Shell.normalized(0, [1.0], [1.0], radius=0.5), Shell.normalized(1, [0.2], [1.0], radius=5.0))
    )
    bank = GTHProjectorBank([0.5], [[[1.0]]], radius=1.0)
    acint = ppnl_integrals(basis, bank, np.array([0.0, 2.0, 0.0]), 0, _PY)
    assert acint.shape == (4, 1, 1)
    assert np.all(acint[0] == 0.0)
    assert np.any(acint[1:] != 0.0)


def test_transform_stage_rejects_bad_evaluator():
    basis = OrbitalBasis((Shell.normalized(1, [1.0], [1.0]),))
    bank = GTHProjectorBank([0.5], [[[1.0]]])

    def bad(sa, sb, rab, nder):
        return np.zeros((1, 1, 1))

    with pytest.raises(ValueError):
        ppnl_integrals(basis, bank, np.zeros(3), 0, bad)


def test_bridge_record_bounds_cover_all_slices():
    acint = np.zeros((2, 1, 4))
    acint[0, 0, 0] = 0.1
    acint[1, 0, 3] = -0.7
    rec = BridgeRecord.from_tensors(3, (0, 0, 0), np.zeros(3), acint, 2.0 * acint)
    assert rec.maxac == pytest.approx(0.7)
    assert rec.maxach == pytest.approx(1.4)


@pytest.mark.parametrize("nthreads", [1, 4])
def test_build_sort_and_lookup(nthreads):
    ps = make_mixed_system()
    sap = build_sap_neighbor_list(ps)
    stats: dict[str, int] = {}
    sap_int = build_sap_int(ps, sap, nder=1, evaluator=_PY, nthreads=nthreads, stats=stats)
    assert sap_int.sorted
    assert sap_int.n_records == len(sap) == stats["n_sap_records"]

    for e in sap:
        entry = sap_int.find(e.ikind, e.jkind, e.iatom)
        assert entry is not None
        rec = entry.lookup(e.jatom, e.cell)
        assert rec is not None
        assert rec.catom == e.jatom
        assert np.allclose(rec.rac, e.r)
        basis = ps.kinds[e.ikind].basis_set()
        bank = ps.kinds[e.jkind].projectors
        assert rec.acint.shape == (basis.nsgf, bank.nprojectors, 4)
        ref = ppnl_integrals(basis, bank, e.r, 1, _PY)
        assert np.allclose(rec.acint, ref, atol=1e-14)
        assert np.allclose(rec.achint, bank.couple(ref), atol=1e-14)

    # outer kind without this bridge kind, or unknown site
    assert sap_int.find(0, 0, 0) is None
    assert sap_int.find(0, 1, 1) is None
    row = sap_int.row(0, 1)
    assert row.asort.tolist() == sorted(row.asort.tolist())
    sap_int.release()
    assert sap_int.n_records == 0


def test_lookup_requires_sort():
    ps = make_mixed_system()
    sap = build_sap_neighbor_list(ps)
    sap_int = build_sap_int(ps, sap, evaluator=_PY, sort=False)
    e = sap[0]
    entry = sap_int.row(e.ikind, e.jkind).alist[e.ilist]
    with pytest.raises(RuntimeError):
        entry.lookup(e.jatom, e.cell)
    sap_int.sort()
    with pytest.raises(RuntimeError):
        sap_int.store(e, entry.lookup(e.jatom, e.cell))


def test_record_slot_written_once():
    ps = make_mixed_system()
    sap = build_sap_neighbor_list(ps)
    e = sap[0]
    cache = SapInt(ps.nkind)
    rec = BridgeRecord.from_tensors(e.jatom, e.cell, e.r, np.zeros((1, 1, 1)), np.zeros((1, 1, 1)))
    cache.store(e, rec)
    with pytest.raises(ValueError):
        cache.store(e, rec)


def test_phase1_error_propagates_from_workers():
    ps = make_mixed_system()
    sap = build_sap_neighbor_list(ps)

    def boom(sa, sb, rab, nder):
        raise ValueError("evaluator failure")

    with pytest.raises(ValueError, match="evaluator failure"):
        build_sap_int(ps, sap, evaluator=boom, nthreads=3)
