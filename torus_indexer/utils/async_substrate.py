from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, TypeVar

T = TypeVar("T")

# ── core helper ────────────────────────────────────────────────────────── #


async def maybe_async(fn: Callable[..., T], *args, **kwargs) -> T:          # noqa: N802
    """
    Await *fn* whether it is a coroutine function or a plain blocking call.

    Plain calls run in the default thread-pool; if they hand back an
    awaitable (some substrate clients return cached coroutines) it is
    awaited here so callers always get a value.
    """
    if asyncio.iscoroutinefunction(fn):
        return await fn(*args, **kwargs)                                     # type: ignore[misc]
    result: Any = await asyncio.to_thread(fn, *args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


async def aiter_pairs(result: Any):
    """Yield (key, value) from a query_map result, async or sync iterable."""
    if hasattr(result, "__aiter__"):
        async for key, value in result:
            yield key, value
    else:
        for key, value in result:
            yield key, value
