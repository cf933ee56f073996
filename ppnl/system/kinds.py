"""Basis-set and projector metadata for site kinds.

A :class:`Kind` optionally carries an orbital basis (one or more, selected by a
``basis_type`` string) and optionally a :class:`ProjectorBank`. The two roles
are looked up independently: a kind without a basis never acts as an outer
site and a kind without projectors never acts as a bridge site.

Two projector-bank flavours share one interface:

- :class:`GTHProjectorBank` partitions projectors by angular-momentum class,
  each class with its own Gaussian exponent and a full ``h_l`` coupling block;
- :class:`SeparableProjectorBank` contracts a single shared set of exponents
  into projectors and couples them with a diagonal strength.

Phase 1 and 2 of :mod:`ppnl.core.core_ppnl` only see ``projector_shells()``,
``coupling_matrix()``, ``cutoff_radius()`` and ``couple()``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import numpy as np

from ppnl.gto.norm import gaussian_radius, gto_norm_radial
from ppnl.gto.sph import cart2sph_matrix_rpow, nsph
from ppnl.integrals.cart2sph import compute_sph_layout


@dataclass(frozen=True, eq=False)
class Shell:
    """Contracted Gaussian shell ``sum_p c_p r^(2*rpow) exp(-a_p r^2) S_lm``.

    ``coefficients`` include the primitive radial normalisation (see
    :meth:`Shell.normalized`). ``radius`` is the extent used for cutoff
    checks; when omitted it is estimated with :func:`gaussian_radius`.
    """

    l: int
    exponents: np.ndarray
    coefficients: np.ndarray
    radius: float | None = None
    rpow: int = 0

    def __post_init__(self) -> None:
        l = int(self.l)
        rpow = int(self.rpow)
        if l < 0:
            raise ValueError("l must be >= 0")
        if rpow < 0:
            raise ValueError("rpow must be >= 0")
        exps = np.asarray(self.exponents, dtype=np.float64).ravel()
        coefs = np.asarray(self.coefficients, dtype=np.float64).ravel()
        if exps.size == 0:
            raise ValueError("a shell needs at least one primitive")
        if exps.shape != coefs.shape:
            raise ValueError("exponents and coefficients must have identical shape")
        if np.any(exps <= 0.0):
            raise ValueError("exponents must be > 0")
        exps.setflags(write=False)
        coefs.setflags(write=False)
        object.__setattr__(self, "l", l)
        object.__setattr__(self, "rpow", rpow)
        object.__setattr__(self, "exponents", exps)
        object.__setattr__(self, "coefficients", coefs)
        if self.radius is None:
            object.__setattr__(self, "radius", gaussian_radius(l + 2 * rpow, exps, coefs))
        elif float(self.radius) < 0.0:
            raise ValueError("radius must be >= 0")
        else:
            object.__setattr__(self, "radius", float(self.radius))

    @classmethod
    def normalized(
        cls,
        l: int,
        exponents: Sequence[float],
        coefficients: Sequence[float],
        *,
        radius: float | None = None,
        rpow: int = 0,
    ) -> "Shell":
        """Build a shell from raw contraction coefficients, folding in ``gto_norm_radial``."""

        exps = np.asarray(exponents, dtype=np.float64).ravel()
        coefs = np.asarray(coefficients, dtype=np.float64).ravel()
        if exps.shape != coefs.shape:
            raise ValueError("exponents and coefficients must have identical shape")
        coefs = coefs * gto_norm_radial(int(l) + 2 * int(rpow), exps)
        return cls(l=int(l), exponents=exps, coefficients=coefs, radius=radius, rpow=int(rpow))

    @property
    def cart_l(self) -> int:
        """Total degree of the Cartesian monomials the shell expands into."""
        return self.l + 2 * self.rpow

    @property
    def nsph(self) -> int:
        return nsph(self.l)

    def cart_to_sph(self) -> np.ndarray:
        """Transform ``(ncart(cart_l), nsph(l))`` from Cartesian monomials to this shell."""
        return cart2sph_matrix_rpow(self.l, self.rpow)


@dataclass(frozen=True, eq=False)
class OrbitalBasis:
    """Ordered shells of one site kind, spherical functions numbered shell by shell."""

    shells: tuple[Shell, ...]
    first_sgf: np.ndarray = field(init=False, repr=False)
    nsgf: int = field(init=False)

    def __post_init__(self) -> None:
        shells = tuple(self.shells)
        for sh in shells:
            if not isinstance(sh, Shell):
                raise TypeError("OrbitalBasis.shells must contain Shell instances")
        first_sgf, nsgf = compute_sph_layout([sh.l for sh in shells])
        first_sgf.setflags(write=False)
        object.__setattr__(self, "shells", shells)
        object.__setattr__(self, "first_sgf", first_sgf)
        object.__setattr__(self, "nsgf", int(nsgf))

    @property
    def nshell(self) -> int:
        return len(self.shells)

    @property
    def lmax(self) -> int:
        return max((sh.l for sh in self.shells), default=-1)

    @property
    def max_radius(self) -> float:
        return max((float(sh.radius) for sh in self.shells), default=0.0)


class ProjectorBank(ABC):
    """Bridge-site capability: projector shells, coupling matrix and cutoff radius."""

    @abstractmethod
    def projector_shells(self) -> tuple[Shell, ...]:
        """Projector shells in projector-index order."""

    @abstractmethod
    def coupling_matrix(self) -> np.ndarray:
        """Dense ``(nprojectors, nprojectors)`` coupling matrix."""

    @abstractmethod
    def cutoff_radius(self) -> float:
        """Extent of the projectors used in outer-site cutoff checks."""

    @property
    def nprojectors(self) -> int:
        return int(sum(sh.nsph for sh in self.projector_shells()))

    @property
    def lmax(self) -> int:
        return max((sh.l for sh in self.projector_shells()), default=-1)

    def projector_offsets(self) -> np.ndarray:
        first, _n = compute_sph_layout([sh.l for sh in self.projector_shells()])
        return first

    def couple(self, acint: np.ndarray) -> np.ndarray:
        """Apply the coupling along axis 1 of an ``(nsgf, nprojectors, nderiv)`` tensor."""

        acint = np.asarray(acint, dtype=np.float64)
        h = self.coupling_matrix()
        if acint.ndim != 3 or acint.shape[1] != h.shape[0]:
            raise ValueError(
                f"integral tensor {acint.shape} does not match coupling matrix {h.shape}"
            )
        return np.einsum("apk,pq->aqk", acint, h, optimize=True)


def _layout_blocks(shells: Sequence[Shell]) -> list[tuple[int, int]]:
    out: list[tuple[int, int]] = []
    cursor = 0
    for sh in shells:
        out.append((cursor, sh.nsph))
        cursor += sh.nsph
    return out


class GTHProjectorBank(ProjectorBank):
    """Goedecker-Teter-Hutter style projectors.

    For every angular-momentum class ``l`` with ``nprj(l) = len(h_l[l]) > 0``
    the bank holds projectors ``p_i^l ∝ r^(l+2(i-1)) exp(-r^2 / (2 r_l^2)) Y_lm``,
    ``i = 1..nprj(l)``, coupled by the symmetric matrix ``h_l[l]``:

        V = sum_l sum_ij sum_m |p_i^lm> h^l_ij <p_j^lm|

    Parameters
    ----------
    r_l : sequence of float
        Projector radius per class ``l = 0..lmax``.
    h_l : sequence of array_like
        ``(nprj(l), nprj(l))`` coupling block per class; empty for classes
        without projectors.
    radius : float | None
        Common cutoff radius; estimated from the projector shells if omitted.
    """

    def __init__(self, r_l: Sequence[float], h_l: Sequence[Any], *, radius: float | None = None):
        if len(r_l) != len(h_l):
            raise ValueError("r_l and h_l must have one entry per angular-momentum class")
        shells: list[Shell] = []
        blocks: list[np.ndarray] = []
        for l, (rl, hl) in enumerate(zip(r_l, h_l)):
            h = np.asarray(hl, dtype=np.float64)
            if h.size == 0:
                continue
            h = np.atleast_2d(h)
            n = int(h.shape[0])
            if h.shape != (n, n):
                raise ValueError(f"h_l[{l}] must be square, got shape {h.shape}")
            if not np.allclose(h, h.T, rtol=0.0, atol=1e-12):
                raise ValueError(f"h_l[{l}] must be symmetric")
            rl = float(rl)
            if rl <= 0.0:
                raise ValueError(f"r_l[{l}] must be > 0")
            alpha = 0.5 / (rl * rl)
            for i in range(n):
                shells.append(Shell.normalized(l, [alpha], [1.0], rpow=i))
            blocks.append(h)
        self._shells = tuple(shells)
        self._class_blocks = tuple(blocks)
        if radius is None:
            radius = max((float(sh.radius) for sh in self._shells), default=0.0)
        self._radius = float(radius)
        self._h = self._build_coupling()
        self._h.setflags(write=False)

    def _build_coupling(self) -> np.ndarray:
        layout = _layout_blocks(self._shells)
        n = sum(width for _off, width in layout)
        h = np.zeros((n, n), dtype=np.float64)
        ish = 0
        for block in self._class_blocks:
            nprj = int(block.shape[0])
            for i in range(nprj):
                off_i, width = layout[ish + i]
                for j in range(nprj):
                    off_j, _ = layout[ish + j]
                    h[off_i : off_i + width, off_j : off_j + width] += block[i, j] * np.eye(width)
            ish += nprj
        return h

    def projector_shells(self) -> tuple[Shell, ...]:
        return self._shells

    def coupling_matrix(self) -> np.ndarray:
        return self._h

    def cutoff_radius(self) -> float:
        return self._radius


class SeparableProjectorBank(ProjectorBank):
    """Separable projectors built from one shared set of Gaussian exponents.

    Each class ``l`` contracts the common ``exponents`` with the columns of
    ``coefficients[l]`` (shape ``(n_nonlocal, nprj(l))``); projector ``i`` of
    class ``l`` is coupled to itself only, with strength ``couplings[l][i]``.
    All projectors share a single cutoff ``radius``.
    """

    def __init__(
        self,
        exponents: Sequence[float],
        coefficients: Sequence[Any],
        couplings: Sequence[Any],
        *,
        radius: float | None = None,
    ):
        exps = np.asarray(exponents, dtype=np.float64).ravel()
        if exps.size == 0:
            raise ValueError("exponents must be non-empty")
        if len(coefficients) != len(couplings):
            raise ValueError("coefficients and couplings must have one entry per angular-momentum class")
        shells: list[Shell] = []
        diag: list[np.ndarray] = []
        for l, (cl, hl) in enumerate(zip(coefficients, couplings)):
            if cl is None:
                continue
            c = np.asarray(cl, dtype=np.float64)
            if c.size == 0:
                continue
            c = c.reshape((exps.size, -1))
            h = np.asarray(hl, dtype=np.float64).ravel()
            if h.shape != (c.shape[1],):
                raise ValueError(f"couplings[{l}] must have length {c.shape[1]}")
            for i in range(c.shape[1]):
                shells.append(Shell.normalized(l, exps, c[:, i], radius=radius))
                diag.append(np.full((2 * l + 1,), h[i], dtype=np.float64))
        self._shells = tuple(shells)
        self._hdiag = np.concatenate(diag) if diag else np.zeros((0,), dtype=np.float64)
        self._hdiag.setflags(write=False)
        if radius is None:
            radius = max((float(sh.radius) for sh in self._shells), default=0.0)
        self._radius = float(radius)

    def projector_shells(self) -> tuple[Shell, ...]:
        return self._shells

    def coupling_matrix(self) -> np.ndarray:
        return np.diag(self._hdiag)

    def cutoff_radius(self) -> float:
        return self._radius

    def couple(self, acint: np.ndarray) -> np.ndarray:
        acint = np.asarray(acint, dtype=np.float64)
        if acint.ndim != 3 or acint.shape[1] != self._hdiag.shape[0]:
            raise ValueError(
                f"integral tensor {acint.shape} does not match {self._hdiag.shape[0]} projectors"
            )
        return acint * self._hdiag[None, :, None]


@dataclass(frozen=True, eq=False)
class Kind:
    """Category of sites sharing basis and projector data.

    ``basis`` is either a single :class:`OrbitalBasis` (registered as
    ``"ORB"``), a mapping ``basis_type -> OrbitalBasis``, or ``None``.
    """

    name: str
    basis: OrbitalBasis | Mapping[str, OrbitalBasis] | None = None
    projectors: ProjectorBank | None = None

    def __post_init__(self) -> None:
        if self.basis is None:
            sets: dict[str, OrbitalBasis] = {}
        elif isinstance(self.basis, OrbitalBasis):
            sets = {"ORB": self.basis}
        else:
            sets = {str(k).upper(): v for k, v in dict(self.basis).items()}
        for key, val in sets.items():
            if not isinstance(val, OrbitalBasis):
                raise TypeError(f"basis set {key!r} of kind {self.name!r} must be an OrbitalBasis")
        if self.projectors is not None and not isinstance(self.projectors, ProjectorBank):
            raise TypeError(f"projectors of kind {self.name!r} must be a ProjectorBank")
        object.__setattr__(self, "basis", sets)

    def basis_set(self, basis_type: str = "ORB") -> OrbitalBasis | None:
        basis = self.basis.get(str(basis_type).upper())  # type: ignore[union-attr]
        if basis is None or basis.nsgf == 0:
            return None
        return basis

    @property
    def has_projectors(self) -> bool:
        return self.projectors is not None and self.projectors.nprojectors > 0


@dataclass(frozen=True)
class Site:
    index: int
    kind: int
    position: np.ndarray


@dataclass(frozen=True, eq=False)
class ParticleSet:
    """Sites (kind index + position) plus an optional periodic cell.

    ``cell`` rows are the lattice vectors; ``None`` means an isolated system.
    """

    kinds: tuple[Kind, ...]
    kind_of_site: np.ndarray
    positions: np.ndarray
    cell: np.ndarray | None = None

    def __post_init__(self) -> None:
        kinds = tuple(self.kinds)
        kind_of_site = np.asarray(self.kind_of_site, dtype=np.int32).ravel()
        positions = np.asarray(self.positions, dtype=np.float64)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise ValueError("positions must have shape (natom, 3)")
        if kind_of_site.shape != (positions.shape[0],):
            raise ValueError("kind_of_site must have shape (natom,)")
        if kind_of_site.size and (int(kind_of_site.min()) < 0 or int(kind_of_site.max()) >= len(kinds)):
            raise ValueError("kind_of_site entries must index into kinds")
        cell = None
        if self.cell is not None:
            cell = np.asarray(self.cell, dtype=np.float64)
            if cell.shape != (3, 3):
                raise ValueError("cell must have shape (3, 3)")
            cell.setflags(write=False)
        kind_of_site.setflags(write=False)
        positions.setflags(write=False)
        object.__setattr__(self, "kinds", kinds)
        object.__setattr__(self, "kind_of_site", kind_of_site)
        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "cell", cell)

    @property
    def natom(self) -> int:
        return int(self.positions.shape[0])

    @property
    def nkind(self) -> int:
        return len(self.kinds)

    @property
    def periodic(self) -> bool:
        return self.cell is not None

    def site(self, i: int) -> Site:
        i = int(i)
        return Site(index=i, kind=int(self.kind_of_site[i]), position=self.positions[i])

    def sites_of_kind(self, ikind: int) -> np.ndarray:
        return np.nonzero(self.kind_of_site == int(ikind))[0].astype(np.int32)

    def block_sizes(self, basis_type: str = "ORB") -> np.ndarray:
        """Number of spherical basis functions per site (0 where the kind has no basis)."""
        out = np.zeros((self.natom,), dtype=np.int32)
        for ia in range(self.natom):
            basis = self.kinds[int(self.kind_of_site[ia])].basis_set(basis_type)
            out[ia] = 0 if basis is None else basis.nsgf
        return out

    def with_positions(self, positions: np.ndarray) -> "ParticleSet":
        return ParticleSet(kinds=self.kinds, kind_of_site=self.kind_of_site, positions=positions, cell=self.cell)


__all__ = [
    "GTHProjectorBank",
    "Kind",
    "OrbitalBasis",
    "ParticleSet",
    "ProjectorBank",
    "SeparableProjectorBank",
    "Shell",
    "Site",
]
