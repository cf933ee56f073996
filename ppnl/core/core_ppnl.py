"""Non-local pseudopotential (projector) contribution to a block-sparse matrix.

    H[i, j] += sum_c  <i | p_c> h_c <p_c | j>

for every pair of outer sites ``(i, j)`` of the orbital neighbor list and
every bridge site ``c`` within reach of both. Optionally the energy gradient
``dE/dR`` with ``E = sum P ⊙ H`` and the pair virial are accumulated.

The build runs in two phases on a fixed pool of worker threads:

1. :func:`build_sap_int` walks the (outer site, bridge site) list and caches
   ``acint = <a|p>`` and ``achint = <a|p> h`` per pair, then sorts the cache.
2. :func:`contract_sap_int` walks the (outer site, outer site) list, matches
   cached records that refer to the same bridge image, and accumulates
   ``achint(a) @ acint(b).T`` into the existing matrix block.

Matrix blocks, per-site forces and the virial are the only shared writes;
each accumulator serialises its own updates.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import functools
import time
from typing import Any, Callable, Sequence

import numpy as np

from ppnl.core.config import PPNLConfig
from ppnl.core.sap_int import BridgeRecord, SapInt
from ppnl.core.transform import ppnl_pair_tensors
from ppnl.core.workers import run_workers
from ppnl.integrals.overlap import shell_overlap
from ppnl.sparse.block_matrix import BlockSparseMatrix
from ppnl.sparse.forces import ForceAccumulator, VirialAccumulator
from ppnl.system.kinds import ParticleSet
from ppnl.utils.blas_threads import blas_thread_limit


def _bump(stats: dict[str, int], key: str, n: int = 1) -> None:
    stats[key] = stats.get(key, 0) + n


def build_sap_int(
    particles: ParticleSet,
    sap_ppnl,
    *,
    nder: int = 0,
    basis_type: str = "ORB",
    evaluator: Callable | None = None,
    nthreads: int = 1,
    executor: ThreadPoolExecutor | None = None,
    sort: bool = True,
    stats: dict[str, int] | None = None,
) -> SapInt:
    """Phase 1: fill the pair cache from the (outer site, bridge site) list.

    Entries whose outer kind has no ``basis_type`` basis or whose bridge kind
    carries no projectors are skipped.
    """

    nder = int(nder)
    if nder < 0:
        raise ValueError("nder must be >= 0")
    if evaluator is None:
        evaluator = shell_overlap

    bases = [k.basis_set(basis_type) for k in particles.kinds]
    banks = [k.projectors if k.has_projectors else None for k in particles.kinds]
    sap_int = SapInt(particles.nkind, nder=nder)

    def _work(entry, st: dict[str, int]) -> None:
        basis = bases[entry.ikind]
        bank = banks[entry.jkind]
        if basis is None or bank is None:
            _bump(st, "n_sap_skipped")
            return
        acint, achint = ppnl_pair_tensors(basis, bank, entry.r, nder, evaluator)
        sap_int.store(entry, BridgeRecord.from_tensors(entry.jatom, entry.cell, entry.r, acint, achint))
        _bump(st, "n_sap_records")

    counts = run_workers(sap_ppnl, _work, nthreads=nthreads, executor=executor)
    if stats is not None:
        for k, v in counts.items():
            stats[k] = stats.get(k, 0) + v
    if sort:
        sap_int.sort()
    return sap_int


def contract_sap_int(
    sap_int: SapInt,
    matrix_h: BlockSparseMatrix,
    particles: ParticleSet,
    sab_orb,
    *,
    matrix_p: BlockSparseMatrix | None = None,
    calculate_forces: bool = False,
    force: ForceAccumulator | None = None,
    virial: VirialAccumulator | None = None,
    eps_ppnl: float = 1e-9,
    basis_type: str = "ORB",
    nthreads: int = 1,
    executor: ThreadPoolExecutor | None = None,
) -> dict[str, int]:
    """Phase 2: contract matching cache records into ``matrix_h`` (and forces).

    ``matrix_p`` must hold the total density when forces are requested.
    Returns summed worker counters (``n_contractions``, ``n_screened``, ...).
    """

    if not sap_int.sorted:
        raise RuntimeError("pair cache must be sorted before contraction")
    if calculate_forces:
        if sap_int.nder < 1:
            raise ValueError("forces need first-derivative integrals (nder >= 1)")
        if force is None:
            raise ValueError("force accumulator is required when calculate_forces=True")
    eps = float(eps_ppnl)

    bases = [k.basis_set(basis_type) for k in particles.kinds]
    bridge_kinds = [ik for ik, k in enumerate(particles.kinds) if k.has_projectors]

    def _work(entry, st: dict[str, int]) -> None:
        if bases[entry.ikind] is None or bases[entry.jkind] is None:
            return
        iatom = int(entry.iatom)
        jatom = int(entry.jatom)
        cell_ab = tuple(int(c) for c in entry.cell)
        if iatom <= jatom:
            key = (iatom, jatom, cell_ab)
        else:
            key = (jatom, iatom, tuple(-c for c in cell_ab))
        h_block = matrix_h.get_block(*key)
        if h_block is None:
            _bump(st, "n_missing_blocks")
            return

        na = bases[entry.ikind].nsgf  # type: ignore[union-attr]
        nb = bases[entry.jkind].nsgf  # type: ignore[union-attr]
        expect_h = (na, nb) if iatom <= jatom else (nb, na)
        if h_block.shape != expect_h:
            raise ValueError(f"matrix block {key} has shape {h_block.shape}, expected {expect_h}")

        p_ab = None
        if calculate_forces and matrix_p is not None:
            p_block = matrix_p.get_block(*key)
            if p_block is not None:
                if p_block.shape != expect_h:
                    raise ValueError(f"density block {key} has shape {p_block.shape}, expected {expect_h}")
                p_ab = p_block.data if iatom <= jatom else p_block.data.T
        f0 = 1.0 if iatom == jatom else 2.0

        for kkind in bridge_kinds:
            alist_a = sap_int.find(entry.ikind, kkind, iatom)
            if alist_a is None:
                continue
            alist_b = sap_int.find(entry.jkind, kkind, jatom)
            if alist_b is None:
                continue
            for rec_a in alist_a.iter_records():
                # Same bridge image seen from j(cell_ab): cell_ab + cell_bc - cell_ac == 0.
                cell_bc = (rec_a.cell[0] - cell_ab[0], rec_a.cell[1] - cell_ab[1], rec_a.cell[2] - cell_ab[2])
                rec_b = alist_b.lookup(rec_a.catom, cell_bc)
                if rec_b is None:
                    continue
                if rec_a.acint.shape[1] != rec_b.acint.shape[1] or rec_a.acint.shape[0] != na or rec_b.acint.shape[0] != nb:
                    raise ValueError(
                        f"cached tensors {rec_a.acint.shape} and {rec_b.acint.shape} do not match "
                        f"block ({iatom},{jatom}) with {na}x{nb} functions"
                    )
                if rec_a.maxach * rec_b.maxac < eps:
                    _bump(st, "n_screened")
                    continue
                if iatom <= jatom:
                    h_block.accumulate(rec_a.achint[:, :, 0] @ rec_b.acint[:, :, 0].T)
                else:
                    h_block.accumulate(rec_b.achint[:, :, 0] @ rec_a.acint[:, :, 0].T)
                _bump(st, "n_contractions")

                if p_ab is None:
                    continue
                fa = np.einsum("ab,apk,bp->k", p_ab, rec_a.acint[:, :, 1:4], rec_b.achint[:, :, 0], optimize=True)
                fb = np.einsum("ab,ap,bpk->k", p_ab, rec_a.achint[:, :, 0], rec_b.acint[:, :, 1:4], optimize=True)
                force.add(iatom, fa, alpha=f0)  # type: ignore[union-attr]
                force.add(rec_a.catom, fa + fb, alpha=-f0)  # type: ignore[union-attr]
                force.add(jatom, fb, alpha=f0)  # type: ignore[union-attr]
                if virial is not None:
                    virial.add_pair_force(f0, fa, rec_a.rac)
                    virial.add_pair_force(f0, fb, rec_b.rac)

    return run_workers(sab_orb, _work, nthreads=nthreads, executor=executor)


def decombine_spin(a: np.ndarray, b: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """``(alpha, beta) -> (total, difference)``."""
    return a + b, a - b


def recombine_spin(total: np.ndarray, diff: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """``(total, difference) -> (alpha, beta)``."""
    a = 0.5 * (total + diff)
    return a, total - a


def decombine_spin_matrices(matrix_p: Sequence[BlockSparseMatrix]) -> tuple[list, list]:
    """In place ``p[0] <- a + b``, ``p[1] <- a - b``.

    A block present in only one channel is created in the other; the keys
    created in each matrix are returned so :func:`recombine_spin_matrices`
    can restore both sparsity patterns.
    """

    if len(matrix_p) != 2:
        raise ValueError("spin recombination needs exactly two density matrices")
    pa, pb = matrix_p
    keys_a = set(pa.keys())
    keys_b = set(pb.keys())
    added = (sorted(keys_b - keys_a), sorted(keys_a - keys_b))
    pa.add(pb, alpha=1.0, beta=1.0)
    pb.add(pa, alpha=-2.0, beta=1.0)
    return added


def recombine_spin_matrices(matrix_p: Sequence[BlockSparseMatrix], added: tuple[list, list] | None = None) -> None:
    """Inverse of :func:`decombine_spin_matrices`; drops the blocks listed in ``added``."""

    if len(matrix_p) != 2:
        raise ValueError("spin recombination needs exactly two density matrices")
    pt, pd = matrix_p
    pt.add(pd, alpha=0.5, beta=0.5)
    pd.add(pt, alpha=-1.0, beta=1.0)
    if added is not None:
        for mat, keys in zip((pt, pd), added):
            for row, col, cell in keys:
                mat.drop_block(row, col, cell)


def _density_list(matrix_p) -> list[BlockSparseMatrix]:
    if matrix_p is None:
        return []
    if isinstance(matrix_p, BlockSparseMatrix):
        return [matrix_p]
    ps = list(matrix_p)
    if len(ps) not in (1, 2):
        raise ValueError("matrix_p must hold one (closed shell) or two (spin) density matrices")
    for p in ps:
        if not isinstance(p, BlockSparseMatrix):
            raise TypeError("matrix_p entries must be BlockSparseMatrix instances")
    return ps


def build_core_ppnl(
    matrix_h: BlockSparseMatrix,
    matrix_p,
    particles: ParticleSet,
    sab_orb,
    sap_ppnl,
    *,
    calculate_forces: bool = False,
    use_virial: bool = False,
    nder: int | None = None,
    force: ForceAccumulator | None = None,
    virial: VirialAccumulator | None = None,
    basis_type: str = "ORB",
    config: PPNLConfig | None = None,
    evaluator: Callable | None = None,
    profile: dict | None = None,
    executor: ThreadPoolExecutor | None = None,
) -> None:
    """Add the projector term to ``matrix_h`` and optionally its gradient.

    Parameters
    ----------
    matrix_h:
        Target matrix; only blocks already present are written.
    matrix_p:
        ``None``, a density matrix or a sequence of one or two (alpha, beta)
        density matrices. Two channels are folded into total/difference form
        for the force contraction and restored on exit.
    particles:
        Sites, kinds and the optional periodic cell.
    sab_orb:
        Half (symmetric) orbital neighbor list; one entry per unordered pair
        and image.
    sap_ppnl:
        (outer site, bridge site) neighbor list; ``None`` makes the call a
        no-op.
    calculate_forces, use_virial:
        Accumulate ``dE/dR`` into ``force`` and the pair virial into
        ``virial``.
    nder:
        Derivative order of the cached integrals; defaults to 1 with forces
        and 0 otherwise.
    config:
        :class:`PPNLConfig`; defaults to :meth:`PPNLConfig.from_env`.
    evaluator:
        Primitive integral evaluator with the signature of
        :func:`ppnl.integrals.overlap.shell_overlap`.
    profile:
        Optional dict receiving phase timings and counters.
    """

    cfg = PPNLConfig.from_env() if config is None else config
    if not isinstance(cfg, PPNLConfig):
        raise TypeError("config must be a PPNLConfig")
    if not isinstance(matrix_h, BlockSparseMatrix):
        raise TypeError("matrix_h must be a BlockSparseMatrix")
    if not isinstance(particles, ParticleSet):
        raise TypeError("particles must be a ParticleSet")
    if use_virial and not calculate_forces:
        raise ValueError("use_virial requires calculate_forces=True")

    if sap_ppnl is None or not any(k.has_projectors for k in particles.kinds):
        if profile is not None:
            profile["skipped"] = True
        return

    nder_i = (1 if calculate_forces else 0) if nder is None else int(nder)
    if nder_i < 0:
        raise ValueError("nder must be >= 0")
    ps = _density_list(matrix_p)
    if calculate_forces:
        if nder_i < 1:
            raise ValueError("calculate_forces requires nder >= 1")
        if force is None:
            raise ValueError("force accumulator is required when calculate_forces=True")
        if not ps:
            raise ValueError("matrix_p is required when calculate_forces=True")
        if force.natom != particles.natom:
            raise ValueError(f"force accumulator holds {force.natom} sites, expected {particles.natom}")
    if use_virial and virial is None:
        raise ValueError("virial accumulator is required when use_virial=True")
    if not bool(getattr(sab_orb, "symmetric", True)):
        raise ValueError("sab_orb must be a symmetric (half) neighbor list")
    if matrix_h.nsites != particles.natom:
        raise ValueError(f"matrix_h covers {matrix_h.nsites} sites, expected {particles.natom}")

    if evaluator is None:
        evaluator = functools.partial(shell_overlap, backend=cfg.backend)
    nthreads = cfg.resolved_nthreads()

    t0 = time.perf_counter()
    stats: dict[str, Any] = {}
    with blas_thread_limit(int(cfg.blas_threads)):
        sap_int = build_sap_int(
            particles,
            sap_ppnl,
            nder=nder_i,
            basis_type=basis_type,
            evaluator=evaluator,
            nthreads=nthreads,
            executor=executor,
            sort=False,
            stats=stats,
        )
        t1 = time.perf_counter()
        sap_int.sort()
        t2 = time.perf_counter()
        n_records = sap_int.n_records
        if cfg.verbose:
            print(f"[ppnl] sap_int: {n_records} records in {t1 - t0:.3f}s (nthreads={nthreads}, nder={nder_i})")

        spin_added = None
        try:
            if calculate_forces and len(ps) == 2:
                spin_added = decombine_spin_matrices(ps)
            counts = contract_sap_int(
                sap_int,
                matrix_h,
                particles,
                sab_orb,
                matrix_p=ps[0] if ps else None,
                calculate_forces=calculate_forces,
                force=force,
                virial=virial if use_virial else None,
                eps_ppnl=float(cfg.eps_ppnl),
                basis_type=basis_type,
                nthreads=nthreads,
                executor=executor,
            )
        finally:
            if spin_added is not None:
                recombine_spin_matrices(ps, spin_added)
            sap_int.release()
    t3 = time.perf_counter()
    stats.update(counts)

    if cfg.verbose:
        print(
            f"[ppnl] contract: {stats.get('n_contractions', 0)} contractions, "
            f"{stats.get('n_screened', 0)} screened in {t3 - t2:.3f}s"
        )

    if profile is not None:
        profile["t_sap_int_s"] = float(t1 - t0)
        profile["t_sap_sort_s"] = float(t2 - t1)
        profile["t_contract_s"] = float(t3 - t2)
        profile["t_total_s"] = float(t3 - t0)
        profile["n_sap_records"] = int(n_records)
        profile["n_contractions"] = int(stats.get("n_contractions", 0))
        profile["n_screened"] = int(stats.get("n_screened", 0))
        profile["n_missing_blocks"] = int(stats.get("n_missing_blocks", 0))
        profile["nthreads"] = int(nthreads)
        profile["nder"] = int(nder_i)
        profile["eps_ppnl"] = float(cfg.eps_ppnl)


__all__ = [
    "build_core_ppnl",
    "build_sap_int",
    "contract_sap_int",
    "decombine_spin",
    "decombine_spin_matrices",
    "recombine_spin",
    "recombine_spin_matrices",
]
