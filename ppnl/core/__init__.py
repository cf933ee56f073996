"""Two-phase projector build: pair cache, contraction and orchestration."""

from __future__ import annotations

from .config import PPNLConfig
from .core_ppnl import (
    build_core_ppnl,
    build_sap_int,
    contract_sap_int,
    decombine_spin,
    decombine_spin_matrices,
    recombine_spin,
    recombine_spin_matrices,
)
from .sap_int import AtomEntry, BridgeRecord, KindPairEntries, SapInt
from .transform import ppnl_integrals, ppnl_pair_tensors
from .workers import run_workers

__all__ = [
    "AtomEntry",
    "BridgeRecord",
    "KindPairEntries",
    "PPNLConfig",
    "SapInt",
    "build_core_ppnl",
    "build_sap_int",
    "contract_sap_int",
    "decombine_spin",
    "decombine_spin_matrices",
    "ppnl_integrals",
    "ppnl_pair_tensors",
    "recombine_spin",
    "recombine_spin_matrices",
    "run_workers",
]
