from __future__ import annotations

from dataclasses import dataclass
import os


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except Exception:
        return float(default)


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return bool(default)
    return raw.strip().lower() not in ("", "0", "false", "no", "off")


@dataclass(frozen=True)
class PPNLConfig:
    """Options for :func:`ppnl.core.core_ppnl.build_core_ppnl`.

    Attributes
    ----------
    eps_ppnl:
        Absolute screening tolerance on ``max|coupled(a)| * max|value(b)|``.
        ``0`` disables screening.
    nthreads:
        Python worker threads; ``None`` reads ``PPNL_NUM_THREADS`` and falls
        back to ``os.cpu_count()``.
    blas_threads:
        BLAS threads per process while the worker pool runs.
    backend:
        Overlap backend (``auto``/``python``/``numba``); ``None`` reads
        ``PPNL_INT_BACKEND``.
    verbose:
        Print a one-line summary per phase.
    """

    eps_ppnl: float = 1e-9
    nthreads: int | None = None
    blas_threads: int = 1
    backend: str | None = None
    verbose: bool = False

    def __post_init__(self) -> None:
        if float(self.eps_ppnl) < 0.0:
            raise ValueError("eps_ppnl must be >= 0")
        if self.nthreads is not None and int(self.nthreads) < 1:
            raise ValueError("nthreads must be >= 1")
        if int(self.blas_threads) < 1:
            raise ValueError("blas_threads must be >= 1")
        if self.backend is not None:
            b = str(self.backend).strip().lower()
            if b not in ("auto", "python", "py", "numba", "nb"):
                raise ValueError("backend must be one of: auto|python|numba")

    @classmethod
    def from_env(cls, **overrides) -> "PPNLConfig":
        """Defaults from ``PPNL_EPS_PPNL``, ``PPNL_NUM_THREADS``, ``PPNL_INT_BACKEND``, ``PPNL_VERBOSE``."""

        kw = dict(
            eps_ppnl=_env_float("PPNL_EPS_PPNL", 1e-9),
            nthreads=_env_int("PPNL_NUM_THREADS", None),
            backend=os.environ.get("PPNL_INT_BACKEND") or None,
            verbose=_env_bool("PPNL_VERBOSE", False),
        )
        kw.update(overrides)
        return cls(**kw)

    def resolved_nthreads(self) -> int:
        if self.nthreads is not None:
            return int(self.nthreads)
        env_n = _env_int("PPNL_NUM_THREADS", None)
        if env_n is not None and env_n >= 1:
            return int(env_n)
        return max(1, int(os.cpu_count() or 1))


__all__ = ["PPNLConfig"]
