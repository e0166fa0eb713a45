"""Per-instance advisory locks.

Lifecycle calls for the same instance ID are serialized within this
process; calls for different instances never wait on each other. Locks are
dropped once no caller holds or awaits them, so the registry only grows
with the number of instances that are busy right now.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class InstanceLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, instance_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(instance_id)
        if lock is None:
            lock = self._locks[instance_id] = asyncio.Lock()
        self._waiters[instance_id] = self._waiters.get(instance_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[instance_id] - 1
            if remaining:
                self._waiters[instance_id] = remaining
            else:
                del self._waiters[instance_id]
                del self._locks[instance_id]

    def __len__(self) -> int:
        return len(self._locks)

    def is_held(self, instance_id: str) -> bool:
        lock = self._locks.get(instance_id)
        return lock is not None and lock.locked()


class NullLocks:
    """No serialization; the caller guarantees one call per instance at a time."""

    @asynccontextmanager
    async def hold(self, instance_id: str) -> AsyncIterator[None]:
        yield
