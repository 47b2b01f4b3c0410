"""
Async utilities for Manifold.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


def dual(func: Callable[..., Awaitable[T]]) -> Callable[..., Any]:
    """
    Decorator: makes an async function callable both synchronously and asynchronously.

    Usage:
        @dual
        async def run(self):
            await ...

        # Both work:
        project.run()          # blocks when no event loop is running
        await project.run()    # returns the coroutine inside a running loop
    """
    if not inspect.iscoroutinefunction(func):
        raise TypeError("@dual can only be applied to async def functions")

    @functools.wraps(func)
    def sync_or_async_call(*args: Any, **kwargs: Any) -> Any:
        coro = func(*args, **kwargs)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)
        return coro

    return sync_or_async_call
