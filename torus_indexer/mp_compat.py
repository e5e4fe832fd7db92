# torus_indexer/mp_compat.py
# --------------------------------------------------------------------------- #
# bittensor's logging stack creates a multiprocessing.Queue at import time.
# Sandboxed runners (CI, some containers) refuse POSIX semaphores, so the
# queue constructor raises. When that happens we swap in a thread queue that
# honours the small part of the multiprocessing API the logger touches.
# --------------------------------------------------------------------------- #

from __future__ import annotations

import multiprocessing as _mp
from queue import Queue as _ThreadQueue


class _ThreadBackedQueue(_ThreadQueue):
    def __init__(self, maxsize: int = -1):
        # queue.Queue reads maxsize <= 0 as unbounded
        super().__init__(max(maxsize or 0, 0))

    def close(self) -> None:
        pass

    def join_thread(self) -> None:
        pass


def _semaphores_available() -> bool:
    try:
        q = _mp.Queue(-1)
    except (PermissionError, OSError):
        return False
    q.close()
    q.join_thread()
    return True


def ensure_multiprocessing_compat() -> bool:
    """Patch ``multiprocessing.Queue`` when semaphores are unavailable.

    Returns True if the patch was applied.
    """
    if _semaphores_available():
        return False
    _mp.Queue = _ThreadBackedQueue  # type: ignore[assignment,misc]
    return True
