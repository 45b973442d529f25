"""Storage for live :class:`CallContext` records, keyed by provider call id.

The store is an explicit collaborator handed to the call service rather
than a module-level map.  :class:`CachedCallContextStore` rides on
:class:`~src.services.cache.CacheManager`, so the same code path serves an
in-process deployment (memory backend) and a multi-instance one (Redis).

Per-call serialisation is separate: :class:`KeyedLocks` hands out one
:class:`asyncio.Lock` per call id so overlapping webhook deliveries for the
same call are applied one at a time.  The locks are process-local; a
multi-process deployment must route each call's webhooks to one worker.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

import structlog
from pydantic import ValidationError

from src.models.call import CallContext
from src.services.cache import CacheManager

logger = structlog.get_logger(__name__)


@runtime_checkable
class CallContextStore(Protocol):
    """get/put/delete over call contexts."""

    async def get(self, call_id: str) -> CallContext | None: ...

    async def put(self, context: CallContext) -> None: ...

    async def delete(self, call_id: str) -> None: ...


class CachedCallContextStore:
    """:class:`CallContextStore` backed by a namespaced :class:`CacheManager`.

    Contexts expire after *ttl_seconds* so a call whose terminal status
    callback never arrives cannot leak forever.
    """

    __slots__ = ("_cache", "_ttl_seconds")

    def __init__(self, cache: CacheManager, *, ttl_seconds: int = 3600) -> None:
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    @property
    def backend_name(self) -> str:
        return self._cache.backend_name

    async def get(self, call_id: str) -> CallContext | None:
        raw = await self._cache.get(call_id)
        if raw is None:
            return None
        try:
            return CallContext.model_validate(raw)
        except ValidationError:
            logger.warning("call_context_store.corrupt_entry", call_id=call_id)
            await self._cache.delete(call_id)
            return None

    async def put(self, context: CallContext) -> None:
        if not context.call_id:
            raise ValueError("CallContext.call_id must be set before storing")
        await self._cache.set(
            context.call_id,
            context.model_dump(mode="json"),
            ttl_seconds=self._ttl_seconds,
        )

    async def delete(self, call_id: str) -> None:
        await self._cache.delete(call_id)

    async def ping(self) -> bool:
        """Round-trip a sentinel value through the backing cache."""
        key = "__ping__"
        try:
            await self._cache.set(key, 1, ttl_seconds=5)
            ok = await self._cache.get(key) == 1
            await self._cache.delete(key)
        except Exception:
            logger.warning("call_context_store.ping_failed", exc_info=True)
            return False
        return ok


class KeyedLocks:
    """Registry of per-key :class:`asyncio.Lock` objects.

    Locks are created on demand and dropped once no coroutine holds or
    waits on them, so the registry only grows with concurrently active
    calls.
    """

    __slots__ = ("_locks", "_waiters")

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[key] - 1
            if remaining:
                self._waiters[key] = remaining
            else:
                del self._waiters[key]
                del self._locks[key]
