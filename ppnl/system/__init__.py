"""Site kinds, particle sets and neighbor lists."""

from __future__ import annotations

from .kinds import (
    GTHProjectorBank,
    Kind,
    OrbitalBasis,
    ParticleSet,
    ProjectorBank,
    SeparableProjectorBank,
    Shell,
    Site,
)
from .neighbor_list import (
    NeighborEntry,
    NeighborList,
    NeighborListIterator,
    build_neighbor_list,
    build_orb_neighbor_list,
    build_sap_neighbor_list,
)

__all__ = [
    "GTHProjectorBank",
    "Kind",
    "NeighborEntry",
    "NeighborList",
    "NeighborListIterator",
    "OrbitalBasis",
    "ParticleSet",
    "ProjectorBank",
    "SeparableProjectorBank",
    "Shell",
    "Site",
    "build_neighbor_list",
    "build_orb_neighbor_list",
    "build_sap_neighbor_list",
]
