from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from ppnl.system.neighbor_list import NeighborListIterator


def run_workers(
    nl,
    work: Callable[[Any, dict[str, int]], None],
    *,
    nthreads: int,
    executor: ThreadPoolExecutor | None = None,
) -> dict[str, int]:
    """Drain neighbor list ``nl`` with ``nthreads`` workers and wait for all of them.

    ``nl`` may be any iterable of entries; it is materialised once up front.
    Each worker pulls entries from one shared :class:`NeighborListIterator`
    and calls ``work(entry, stats)`` with a worker-private ``stats`` dict;
    the summed counters are returned. The first exception raised by any
    worker aborts the iterator (the others stop at their next pull) and is
    re-raised here once every worker has returned.
    """

    nthreads = int(nthreads)
    if nthreads < 1:
        raise ValueError("nthreads must be >= 1")

    it = NeighborListIterator(nl)

    def _worker() -> dict[str, int]:
        stats: dict[str, int] = {}
        try:
            while True:
                entry = it.next_entry()
                if entry is None:
                    break
                work(entry, stats)
        except BaseException:
            it.abort()
            raise
        return stats

    if nthreads == 1 or len(it) <= 1:
        per_worker = [_worker()]
    else:
        shutdown = executor is None
        pool = ThreadPoolExecutor(max_workers=nthreads) if executor is None else executor
        try:
            futs = [pool.submit(_worker) for _ in range(nthreads)]
            per_worker = []
            first_exc: BaseException | None = None
            for fut in futs:
                try:
                    per_worker.append(fut.result())
                except BaseException as e:  # noqa: BLE001
                    if first_exc is None:
                        first_exc = e
            if first_exc is not None:
                raise first_exc
        finally:
            if shutdown:
                pool.shutdown(wait=True)

    out: dict[str, int] = {}
    for stats in per_worker:
        for k, v in stats.items():
            out[k] = out.get(k, 0) + int(v)
    return out


__all__ = ["run_workers"]
