"""Pair neighbor lists over a :class:`~ppnl.system.kinds.ParticleSet`.

Two lists drive the projector build:

- the *orbital* list (``sab_orb``): pairs of sites carrying basis functions,
  defines which matrix blocks are visited in the contraction phase;
- the *projector* list (``sap_ppnl``): pairs (outer site, bridge site) whose
  basis and projector extents overlap, drives the pair-cache build.

Entries are grouped per (first kind, second kind) and per first site so that
consumers can size per-site storage up front: ``nlist``/``ilist`` count and
index the first sites with neighbours in a kind pair, ``nnode``/``inode``
count and index the neighbours of one first site. All indices are 0-based.

The builder is a plain O(N^2 * ncells) loop; it is meant for test systems and
small benchmarks, not for production-size cells.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
import threading
from typing import Any, Iterable, Iterator, Sequence

import numpy as np

from .kinds import ParticleSet


@dataclass(frozen=True, eq=False)
class NeighborEntry:
    ikind: int
    jkind: int
    iatom: int
    jatom: int
    nlist: int
    ilist: int
    nnode: int
    inode: int
    cell: tuple[int, int, int]
    r: np.ndarray


class NeighborList:
    """Immutable, grouped sequence of :class:`NeighborEntry`."""

    def __init__(self, entries: Sequence[NeighborEntry], *, nkind: int, symmetric: bool):
        self._entries = tuple(entries)
        self.nkind = int(nkind)
        self.symmetric = bool(symmetric)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[NeighborEntry]:
        return iter(self._entries)

    def __getitem__(self, idx: int) -> NeighborEntry:
        return self._entries[idx]

    @property
    def entries(self) -> tuple[NeighborEntry, ...]:
        return self._entries

    def iterator(self) -> "NeighborListIterator":
        return NeighborListIterator(self)

    def kind_pairs(self) -> list[tuple[int, int]]:
        seen: dict[tuple[int, int], None] = {}
        for e in self._entries:
            seen.setdefault((e.ikind, e.jkind), None)
        return list(seen)


class NeighborListIterator:
    """Thread-safe work distribution over a :class:`NeighborList` or any iterable of entries.

    Every call to :meth:`next_entry` hands out a distinct entry to exactly
    one caller. After :meth:`abort` all callers receive ``None``.
    """

    def __init__(self, nl: NeighborList | Iterable[Any]):
        self._entries = nl.entries if isinstance(nl, NeighborList) else tuple(nl)
        self._pos = 0
        self._aborted = False
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def next_entry(self) -> NeighborEntry | None:
        with self._lock:
            if self._aborted or self._pos >= len(self._entries):
                return None
            e = self._entries[self._pos]
            self._pos += 1
            return e

    def abort(self) -> None:
        with self._lock:
            self._aborted = True

    @property
    def aborted(self) -> bool:
        with self._lock:
            return self._aborted


def _auto_ncells(cell: np.ndarray, rcut: float) -> tuple[int, int, int]:
    # Number of images per lattice direction needed to reach rcut.
    vol = abs(float(np.linalg.det(cell)))
    if vol <= 0.0:
        raise ValueError("cell must be non-singular")
    out = []
    for k in range(3):
        a, b = cell[(k + 1) % 3], cell[(k + 2) % 3]
        height = vol / float(np.linalg.norm(np.cross(a, b)))
        out.append(int(math.ceil(rcut / height)) + 1)
    return (out[0], out[1], out[2])


def _image_offsets(ncells: tuple[int, int, int]) -> np.ndarray:
    nx, ny, nz = (int(v) for v in ncells)
    grid = np.mgrid[-nx : nx + 1, -ny : ny + 1, -nz : nz + 1]
    return grid.reshape((3, -1)).T.astype(np.int64)


def build_neighbor_list(
    particles: ParticleSet,
    radius_i: Sequence[float | None],
    radius_j: Sequence[float | None],
    *,
    symmetric: bool = False,
    ncells: Sequence[int] | None = None,
    cutoff: float | None = None,
) -> NeighborList:
    """Brute-force neighbor list.

    Parameters
    ----------
    radius_i, radius_j : sequence of float | None
        Per-kind extent of the first and second site; ``None`` excludes the
        kind from that role.
    symmetric : bool
        Keep each unordered pair once: ``iatom < jatom`` for all images and
        ``iatom == jatom`` for every image (including the zero image).
    ncells : sequence of int | None
        Images per lattice direction; derived from the largest cutoff when
        omitted. Ignored for non-periodic particle sets.
    cutoff : float | None
        Fixed pair cutoff replacing ``radius_i + radius_j``.
    """

    nkind = particles.nkind
    if len(radius_i) != nkind or len(radius_j) != nkind:
        raise ValueError("radius_i/radius_j must have one entry per kind")
    if cutoff is not None and float(cutoff) < 0.0:
        raise ValueError("cutoff must be >= 0")

    pos = particles.positions

    rc_max = 0.0
    for ik in range(nkind):
        for jk in range(nkind):
            if radius_i[ik] is None or radius_j[jk] is None:
                continue
            rc = float(cutoff) if cutoff is not None else float(radius_i[ik]) + float(radius_j[jk])
            rc_max = max(rc_max, rc)

    if particles.cell is None:
        images = np.zeros((1, 3), dtype=np.int64)
        shifts = np.zeros((1, 3), dtype=np.float64)
    else:
        nc = _auto_ncells(particles.cell, rc_max) if ncells is None else tuple(int(v) for v in ncells)
        if len(nc) != 3 or min(nc) < 0:
            raise ValueError("ncells must be three non-negative integers")
        images = _image_offsets(nc)  # type: ignore[arg-type]
        shifts = images.astype(np.float64) @ particles.cell

    raw: list[tuple[int, int, int, int, tuple[int, int, int], np.ndarray]] = []
    for ik in range(nkind):
        if radius_i[ik] is None:
            continue
        for jk in range(nkind):
            if radius_j[jk] is None:
                continue
            rc = float(cutoff) if cutoff is not None else float(radius_i[ik]) + float(radius_j[jk])
            jsites = particles.sites_of_kind(jk)
            for ia in particles.sites_of_kind(ik):
                ia = int(ia)
                for ja in jsites:
                    ja = int(ja)
                    if symmetric and ja < ia:
                        continue
                    rvec = pos[ja][None, :] + shifts - pos[ia][None, :]
                    dist = np.sqrt(np.einsum("ij,ij->i", rvec, rvec))
                    for ic in np.nonzero(dist <= rc)[0]:
                        cell = (int(images[ic, 0]), int(images[ic, 1]), int(images[ic, 2]))
                        raw.append((ik, jk, ia, ja, cell, np.array(rvec[ic], dtype=np.float64)))

    entries: list[NeighborEntry] = []
    groups: dict[tuple[int, int], dict[int, list[tuple[int, tuple[int, int, int], np.ndarray]]]] = {}
    for ik, jk, ia, ja, cell, r in raw:
        groups.setdefault((ik, jk), {}).setdefault(ia, []).append((ja, cell, r))
    for (ik, jk), per_atom in groups.items():
        nlist = len(per_atom)
        for ilist, (ia, nodes) in enumerate(per_atom.items()):
            nnode = len(nodes)
            for inode, (ja, cell, r) in enumerate(nodes):
                r.setflags(write=False)
                entries.append(
                    NeighborEntry(
                        ikind=ik,
                        jkind=jk,
                        iatom=ia,
                        jatom=ja,
                        nlist=nlist,
                        ilist=ilist,
                        nnode=nnode,
                        inode=inode,
                        cell=cell,
                        r=r,
                    )
                )
    return NeighborList(entries, nkind=nkind, symmetric=symmetric)


def build_sap_neighbor_list(
    particles: ParticleSet, basis_type: str = "ORB", *, ncells: Sequence[int] | None = None
) -> NeighborList:
    """Outer-site x bridge-site list: basis extent + projector cutoff."""

    radius_i: list[float | None] = []
    radius_j: list[float | None] = []
    for kind in particles.kinds:
        basis = kind.basis_set(basis_type)
        radius_i.append(None if basis is None else basis.max_radius)
        radius_j.append(kind.projectors.cutoff_radius() if kind.has_projectors else None)  # type: ignore[union-attr]
    return build_neighbor_list(particles, radius_i, radius_j, symmetric=False, ncells=ncells)


def build_orb_neighbor_list(
    particles: ParticleSet,
    basis_type: str = "ORB",
    *,
    cutoff: float | None = None,
    ncells: Sequence[int] | None = None,
) -> NeighborList:
    """Symmetric outer-site x outer-site list.

    Without ``cutoff`` two sites are neighbours when their basis extents
    overlap.
    """

    radius: list[float | None] = []
    for kind in particles.kinds:
        basis = kind.basis_set(basis_type)
        radius.append(None if basis is None else basis.max_radius)
    return build_neighbor_list(particles, radius, radius, symmetric=True, ncells=ncells, cutoff=cutoff)


__all__ = [
    "NeighborEntry",
    "NeighborList",
    "NeighborListIterator",
    "build_neighbor_list",
    "build_orb_neighbor_list",
    "build_sap_neighbor_list",
]
