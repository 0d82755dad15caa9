"""
Per-project mutual exclusion.

At most one transition runs per project at a time: a workflow holds its
project's lock from the precondition check to the end of cleanup. Runs on
different projects never wait on each other.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ProjectLockRegistry:
    """
    Keyed ``asyncio.Lock`` registry.

    Entries exist only while a holder or waiter references them, so the
    registry does not grow with the number of projects ever seen.

    Usage:
        >>> locks = ProjectLockRegistry()
        >>> async with locks.hold("p1"):
        ...     ...
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, project_id: str) -> AsyncIterator[None]:
        entry = self._entries.get(project_id)
        if entry is None:
            entry = self._entries[project_id] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(project_id) is entry:
                del self._entries[project_id]

    def locked(self, project_id: str) -> bool:
        entry = self._entries.get(project_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)


# Shared by every workflow and engine built without an explicit registry
DEFAULT_LOCKS = ProjectLockRegistry()


__all__ = ["DEFAULT_LOCKS", "ProjectLockRegistry"]
