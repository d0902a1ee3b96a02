"""
Per-key single-flight execution for asyncio.

Concurrent callers asking for the same key share one in-flight call instead
of starting duplicates. Different keys never block each other.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)


class SingleFlight:
    def __init__(self):
        self._inflight: dict[Hashable, asyncio.Future] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run `fn` for `key` unless a call for that key is already running,
        in which case wait for and return its result (or exception).
        """
        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug(f"Joining in-flight call for {key!r}")
            return await asyncio.shield(existing)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await fn()
        except BaseException as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure does not warn at GC.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)
