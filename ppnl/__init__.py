"""ppnl: threaded non-local pseudopotential contributions to block-sparse matrices."""

from importlib.metadata import PackageNotFoundError, version as _dist_version

from ppnl.core import PPNLConfig, build_core_ppnl, build_sap_int, contract_sap_int
from ppnl.integrals import shell_overlap
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

try:
    __version__ = _dist_version("ppnl")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Data model
    "GTHProjectorBank",
    "Kind",
    "OrbitalBasis",
    "ParticleSet",
    "SeparableProjectorBank",
    "Shell",
    # Neighbor lists
    "build_orb_neighbor_list",
    "build_sap_neighbor_list",
    # Storage
    "BlockSparseMatrix",
    "ForceAccumulator",
    "VirialAccumulator",
    # Core
    "PPNLConfig",
    "build_core_ppnl",
    "build_sap_int",
    "contract_sap_int",
    "shell_overlap",
]
