from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator

from .models import Session


class SessionRepository(ABC):
    """Storage seam for sessions.

    The registry owns locking and lifecycle rules; a repository only stores.
    Swapping this for Redis or SQLite leaves the registry and the
    consensus pipeline untouched.
    """

    @abstractmethod
    def get(self, session_id: str) -> Session | None: ...

    @abstractmethod
    def put(self, session: Session) -> None: ...

    @abstractmethod
    def delete(self, session_id: str) -> None: ...

    @abstractmethod
    def items(self) -> Iterator[tuple[str, Session]]: ...


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._data: dict[str, Session] = {}

    def get(self, session_id: str) -> Session | None:
        return self._data.get(session_id)

    def put(self, session: Session) -> None:
        self._data[session.id] = session

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

    def items(self) -> Iterator[tuple[str, Session]]:
        # Snapshot so callers may delete while iterating.
        return iter(list(self._data.items()))

    def __len__(self) -> int:
        return len(self._data)
