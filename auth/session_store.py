from __future__ import annotations

from abc import ABC, abstractmethod

from auth.models import Grant


class SessionStore(ABC):
    @abstractmethod
    async def get(self, session_id: str) -> Grant | None:
        raise NotImplementedError

    @abstractmethod
    async def put(self, session_id: str, grant: Grant) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-lifetime session map. Sessions are never evicted."""

    def __init__(self) -> None:
        self._grants: dict[str, Grant] = {}

    async def get(self, session_id: str) -> Grant | None:
        return self._grants.get(session_id)

    async def put(self, session_id: str, grant: Grant) -> None:
        self._grants[session_id] = grant

    async def clear(self) -> None:
        self._grants.clear()

    def __len__(self) -> int:
        return len(self._grants)
