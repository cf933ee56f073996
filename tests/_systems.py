"""Small test systems and helpers shared by the projector tests."""

from __future__ import annotations

import numpy as np

from ppnl.core.config import PPNLConfig
from ppnl.core.core_ppnl import build_core_ppnl
from ppnl.sparse import BlockSparseMatrix, ForceAccumulator, VirialAccumulator
from ppnl.system import (
    GTHProjectorBank,
    Kind,
    OrbitalBasis,
    ParticleSet,
    SeparableProjectorBank,
    Shell,
    build_orb_neighbor_list,
    build_sap_neighbor_list,
)

_MIXED_POSITIONS = np.array(
    [
        [0.0, 0.0, 0.0],
        [1.3, 0.2, -0.1],
        [0.6, 1.1, 0.4],
        [-0.9, 0.7, 1.2],
        [0.3, -1.2, 0.9],
        [1.5, 1.4, 1.1],
    ],
    dtype=np.float64,
)


def make_mixed_system(*, radius: float | None = None, positions: np.ndarray | None = None) -> ParticleSet:
    """Three kinds: basis only, basis + GTH projectors, separable projectors only."""

    kind_a = Kind(
        "A",
        basis=OrbitalBasis(
            (
                Shell.normalized(0, [1.2, 0.4], [0.6, 0.5], radius=radius),
                Shell.normalized(1, [0.8], [1.0], radius=radius),
            )
        ),
    )
    kind_b = Kind(
        "B",
        basis=OrbitalBasis(
            (
                Shell.normalized(0, [0.9], [1.0], radius=radius),
                Shell.normalized(2, [0.7], [1.0], radius=radius),
            )
        ),
        projectors=GTHProjectorBank(
            [0.45, 0.55],
            [[[-1.1, 0.3], [0.3, 0.7]], [[0.9]]],
            radius=radius,
        ),
    )
    kind_x = Kind(
        "X",
        projectors=SeparableProjectorBank(
            [1.5, 0.6],
            [[[0.7], [0.3]], [[0.5, 0.1], [0.2, 0.9]]],
            [[1.3], [-0.4, 0.8]],
            radius=radius,
        ),
    )
    pos = _MIXED_POSITIONS if positions is None else positions
    return ParticleSet(
        kinds=(kind_a, kind_b, kind_x),
        kind_of_site=[0, 1, 2, 0, 1, 2],
        positions=pos,
    )


def random_density(matrix: BlockSparseMatrix, rng: np.random.Generator) -> BlockSparseMatrix:
    """Random density on the pattern of ``matrix`` (on-site zero-image blocks symmetric)."""

    p = BlockSparseMatrix(matrix.block_sizes, periodic=matrix.periodic)
    for blk in matrix.blocks():
        pb = p.reserve_block(blk.row, blk.col, blk.cell)
        data = rng.standard_normal(blk.shape)
        if blk.row == blk.col and blk.cell == (0, 0, 0):
            data = 0.5 * (data + data.T)
        pb.data[...] = data
    return p


def pair_energy(matrix_h: BlockSparseMatrix, matrix_p: BlockSparseMatrix) -> float:
    """``E = sum_blocks f0 * sum(P ⊙ H)`` over the stored half of the matrix."""

    e = 0.0
    for blk in matrix_h.blocks():
        pb = matrix_p.get_block(blk.row, blk.col, blk.cell)
        if pb is None:
            continue
        f0 = 1.0 if blk.row == blk.col else 2.0
        e += f0 * float(np.sum(pb.data * blk.data))
    return e


def run_ppnl(
    particles: ParticleSet,
    *,
    matrix_p=None,
    pattern: BlockSparseMatrix | None = None,
    calculate_forces: bool = False,
    use_virial: bool = False,
    nthreads: int = 1,
    eps_ppnl: float = 0.0,
    backend: str = "python",
    profile: dict | None = None,
):
    sab = build_orb_neighbor_list(particles)
    sap = build_sap_neighbor_list(particles)
    if pattern is None:
        matrix_h = BlockSparseMatrix.from_neighbor_list(
            sab, particles.block_sizes(), periodic=particles.periodic
        )
    else:
        matrix_h = pattern.copy()
        matrix_h.zero()
    force = ForceAccumulator(particles.natom) if calculate_forces else None
    virial = VirialAccumulator() if use_virial else None
    cfg = PPNLConfig(eps_ppnl=eps_ppnl, nthreads=nthreads, backend=backend)
    build_core_ppnl(
        matrix_h,
        matrix_p,
        particles,
        sab,
        sap,
        calculate_forces=calculate_forces,
        use_virial=use_virial,
        force=force,
        virial=virial,
        config=cfg,
        profile=profile,
    )
    return matrix_h, force, virial
