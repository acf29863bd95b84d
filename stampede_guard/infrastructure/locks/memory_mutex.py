"""
In-Memory Mutex Service

Per-name asyncio locks for a single process. Table entries exist only
while a lock is held or awaited, so the table does not grow with the
number of distinct keys ever seen.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ...domain.cache.repository_interfaces import MutexService

logger = logging.getLogger(__name__)


@dataclass
class _LockSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0
    owner: Optional[str] = None


class InMemoryMutexService(MutexService):
    """MutexService for tests and single-process deployments."""

    def __init__(self):
        self._slots: Dict[str, _LockSlot] = {}

    def _leave(self, name: str, slot: _LockSlot) -> None:
        slot.users -= 1
        if slot.users <= 0 and not slot.lock.locked():
            self._slots.pop(name, None)

    async def acquire(self, name: str, timeout: float) -> Optional[Any]:
        slot = self._slots.setdefault(name, _LockSlot())
        slot.users += 1
        try:
            if timeout <= 0:
                if slot.lock.locked():
                    self._leave(name, slot)
                    return None
                await slot.lock.acquire()
            else:
                await asyncio.wait_for(slot.lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            self._leave(name, slot)
            return None
        except asyncio.CancelledError:
            self._leave(name, slot)
            raise

        slot.owner = uuid.uuid4().hex
        return slot.owner

    async def release(self, name: str, lease: Any) -> None:
        slot = self._slots.get(name)
        if slot is None or slot.owner != lease or not slot.lock.locked():
            logger.warning(
                "Release of a lock not held by this lease ignored",
                extra={"lock_name": name},
            )
            return

        slot.owner = None
        slot.lock.release()
        self._leave(name, slot)

    def is_locked(self, name: str) -> bool:
        slot = self._slots.get(name)
        return slot is not None and slot.lock.locked()

    @property
    def active_locks(self) -> int:
        return len(self._slots)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "backend": "memory",
            "active_locks": len(self._slots),
        }
