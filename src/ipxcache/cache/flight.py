"""Single-flight coordination — one in-flight transform per cache key."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Deduplicates concurrent calls that share a key.

    The first caller for a key (the leader) runs the function; callers that
    arrive while it is running await the leader's outcome, result or
    exception. The key is released as soon as the leader finishes, so later
    calls run again. If the leader is cancelled, a waiting follower that was
    not cancelled itself takes over as the new leader.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[T]] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: str, fn: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run ``fn`` once per concurrent ``key``.

        Returns ``(result, shared)`` where ``shared`` is True for callers that
        reused another caller's result.
        """
        while (existing := self._inflight.get(key)) is not None:
            logger.debug("Joining in-flight transform for key %s", key)
            try:
                return await asyncio.shield(existing), True
            except asyncio.CancelledError:
                if not existing.cancelled() or asyncio.current_task().cancelling():
                    raise
                logger.debug("Leader for key %s was cancelled; retrying", key)

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        self._inflight[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]


def _consume_exception(future: asyncio.Future) -> None:
    # Followers may not exist; keep asyncio from logging "never retrieved"
    if not future.cancelled():
        future.exception()
