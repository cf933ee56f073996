"""Runtime helpers (thread-pool limits)."""

from __future__ import annotations

from .blas_threads import blas_thread_limit

__all__ = ["blas_thread_limit"]
