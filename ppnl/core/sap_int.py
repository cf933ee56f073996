"""Pair cache of (outer site, bridge site) projector integrals.

Layout mirrors the neighbor list that fills it::

    SapInt[(ikind, kkind)] -> KindPairEntries
        .alist[ilist]      -> AtomEntry (one per outer site)
            .records[inode] -> BridgeRecord (one per bridge image)

Storage for a kind pair and for an outer site is allocated on first touch,
sized from the neighbor entry's ``nlist``/``nnode``; that is the only step
taking a lock. Every record slot is then written by exactly one worker.
After the build, :meth:`SapInt.sort` orders outer sites by index and builds
the per-site ``(bridge atom, cell) -> record`` index used by the contraction.
"""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Iterator

import numpy as np


@dataclass(frozen=True, eq=False)
class BridgeRecord:
    catom: int
    cell: tuple[int, int, int]
    rac: np.ndarray
    acint: np.ndarray
    achint: np.ndarray
    maxac: float
    maxach: float

    @classmethod
    def from_tensors(cls, catom: int, cell, rac, acint: np.ndarray, achint: np.ndarray) -> "BridgeRecord":
        # Bounds over every derivative slice, so the screen also holds for forces.
        maxac = float(np.max(np.abs(acint))) if acint.size else 0.0
        maxach = float(np.max(np.abs(achint))) if achint.size else 0.0
        return cls(
            catom=int(catom),
            cell=tuple(int(c) for c in cell),  # type: ignore[arg-type]
            rac=np.asarray(rac, dtype=np.float64).reshape((3,)),
            acint=acint,
            achint=achint,
            maxac=maxac,
            maxach=maxach,
        )


class AtomEntry:
    """Bridge records of one outer site within a kind pair."""

    def __init__(self, atom: int, nnode: int):
        self.atom = int(atom)
        self.records: list[BridgeRecord | None] = [None] * int(nnode)
        self._index: dict[tuple[int, tuple[int, int, int]], BridgeRecord] | None = None

    @property
    def nrecords(self) -> int:
        return sum(1 for r in self.records if r is not None)

    def store(self, inode: int, record: BridgeRecord) -> None:
        inode = int(inode)
        if not 0 <= inode < len(self.records):
            raise ValueError(f"record slot {inode} out of range for {len(self.records)} neighbours")
        if self.records[inode] is not None:
            raise ValueError(f"record slot {inode} of atom {self.atom} written twice")
        self.records[inode] = record

    def build_index(self) -> None:
        index: dict[tuple[int, tuple[int, int, int]], BridgeRecord] = {}
        for rec in self.records:
            if rec is None:
                continue
            index[(rec.catom, rec.cell)] = rec
        self._index = index

    def iter_records(self) -> Iterator[BridgeRecord]:
        for rec in self.records:
            if rec is not None:
                yield rec

    def lookup(self, catom: int, cell) -> BridgeRecord | None:
        if self._index is None:
            raise RuntimeError("pair cache must be sorted before lookups")
        return self._index.get((int(catom), tuple(int(c) for c in cell)))  # type: ignore[arg-type]


class KindPairEntries:
    """Outer-site rows for one (outer kind, bridge kind) pair."""

    def __init__(self, ikind: int, kkind: int, nlist: int):
        self.ikind = int(ikind)
        self.kkind = int(kkind)
        self.alist: list[AtomEntry | None] = [None] * int(nlist)
        self.asort = np.zeros((0,), dtype=np.int64)
        self.aindex = np.zeros((0,), dtype=np.int64)
        self._lock = threading.Lock()

    def atom_entry(self, ilist: int, atom: int, nnode: int) -> AtomEntry:
        """Return row ``ilist``, allocating it with ``nnode`` slots on first touch."""

        ilist = int(ilist)
        if not 0 <= ilist < len(self.alist):
            raise ValueError(f"atom slot {ilist} out of range for {len(self.alist)} outer sites")
        entry = self.alist[ilist]
        if entry is not None:
            return entry
        with self._lock:
            entry = self.alist[ilist]
            if entry is None:
                entry = AtomEntry(atom, nnode)
                self.alist[ilist] = entry
        return entry

    def sort(self) -> None:
        atoms: list[int] = []
        slots: list[int] = []
        for i, entry in enumerate(self.alist):
            if entry is None:
                continue
            entry.build_index()
            atoms.append(entry.atom)
            slots.append(i)
        atoms_a = np.asarray(atoms, dtype=np.int64)
        order = np.argsort(atoms_a, kind="stable")
        self.asort = atoms_a[order]
        self.aindex = np.asarray(slots, dtype=np.int64)[order]

    def find(self, atom: int) -> AtomEntry | None:
        """Row of outer site ``atom`` (binary search over the sorted index)."""

        atom = int(atom)
        pos = int(np.searchsorted(self.asort, atom))
        if pos >= self.asort.size or int(self.asort[pos]) != atom:
            return None
        return self.alist[int(self.aindex[pos])]


class SapInt:
    """Two-level sparse cache keyed by (outer kind, bridge kind)."""

    def __init__(self, nkind: int, *, nder: int = 0):
        self.nkind = int(nkind)
        self.nder = int(nder)
        self._rows: dict[tuple[int, int], KindPairEntries] = {}
        self._lock = threading.Lock()
        self.sorted = False

    def kind_pair(self, ikind: int, kkind: int, nlist: int) -> KindPairEntries:
        key = (int(ikind), int(kkind))
        row = self._rows.get(key)
        if row is not None:
            return row
        with self._lock:
            row = self._rows.get(key)
            if row is None:
                row = KindPairEntries(key[0], key[1], nlist)
                self._rows[key] = row
        return row

    def store(self, entry, record: BridgeRecord) -> None:
        """Write ``record`` into the slot reserved for neighbor ``entry``."""

        if self.sorted:
            raise RuntimeError("pair cache is read-only after sort()")
        row = self.kind_pair(entry.ikind, entry.jkind, entry.nlist)
        atom_entry = row.atom_entry(entry.ilist, entry.iatom, entry.nnode)
        atom_entry.store(entry.inode, record)

    def sort(self) -> None:
        for row in self._rows.values():
            row.sort()
        self.sorted = True

    def row(self, ikind: int, kkind: int) -> KindPairEntries | None:
        return self._rows.get((int(ikind), int(kkind)))

    def find(self, ikind: int, kkind: int, atom: int) -> AtomEntry | None:
        row = self._rows.get((int(ikind), int(kkind)))
        if row is None:
            return None
        return row.find(atom)

    @property
    def n_records(self) -> int:
        tot = 0
        for row in self._rows.values():
            for entry in row.alist:
                if entry is not None:
                    tot += entry.nrecords
        return tot

    def release(self) -> None:
        self._rows.clear()
        self.sorted = False


__all__ = ["AtomEntry", "BridgeRecord", "KindPairEntries", "SapInt"]
