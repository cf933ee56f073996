from __future__ import annotations

import contextlib
from typing import Iterator

from threadpoolctl import threadpool_limits


@contextlib.contextmanager
def blas_thread_limit(n: int) -> Iterator[None]:
    """Temporarily limit BLAS threads for this process.

    The projector build already runs one Python worker per core; letting every
    worker's ``matmul`` spawn its own BLAS pool oversubscribes the machine.
    """

    n = int(n)
    if n < 1:
        raise ValueError("BLAS thread limit must be >= 1")

    # Restrict only BLAS-style threadpools; numba/OpenMP pools are left alone.
    with threadpool_limits(limits=n, user_api="blas"):
        yield


__all__ = ["blas_thread_limit"]
