from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

from ..consensus.models import Preference, RankedResult
from ..errors import NoPreferencesError, NotFoundError, SessionBusyError
from .config import DEFAULT_SESSION_CONFIG, SessionConfig
from .models import Participant, Session, SessionStatus
from .repository import InMemorySessionRepository, SessionRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistry:
    """Single source of truth for session state.

    Every read-modify-write happens under that session's lock, so concurrent
    joins and submissions cannot interleave. Sessions handed back to callers
    are deep copies; mutate through the registry, never through the copy.
    """

    def __init__(
        self,
        repository: SessionRepository | None = None,
        config: SessionConfig = DEFAULT_SESSION_CONFIG,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repository if repository is not None else InMemorySessionRepository()
        self._config = config
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ── Locking ──────────────────────────────────────────────────────────

    def _lock_for(self, session_id: str) -> threading.Lock | None:
        # Locks exist only for stored sessions; unknown ids never grow the table.
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None and self._repo.get(session_id) is not None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    @contextmanager
    def _reading(self, session_id: str) -> Iterator[Session | None]:
        lock = self._lock_for(session_id)
        if lock is None:
            yield None
            return
        with lock:
            yield self._repo.get(session_id)

    @contextmanager
    def _editing(self, session_id: str) -> Iterator[Session | None]:
        lock = self._lock_for(session_id)
        if lock is None:
            yield None
            return
        with lock:
            session = self._repo.get(session_id)
            yield session
            if session is not None:
                self._repo.put(session)

    # ── Lifecycle ────────────────────────────────────────────────────────

    def create_session(self, host_name: str) -> Session:
        now = self._clock()
        host = Participant(id=str(uuid.uuid4()), name=host_name, joined_at=now)
        session = Session(
            id=str(uuid.uuid4()),
            host_name=host_name,
            host_participant_id=host.id,
            created_at=now,
            expires_at=now + timedelta(hours=self._config.ttl_hours),
            status=SessionStatus.collecting,
            participants=[host],
        )
        with self._locks_guard:
            self._repo.put(session)
            self._locks[session.id] = threading.Lock()
        logger.info("Created session %s for host %s", session.id, host_name)
        return session.model_copy(deep=True)

    def get_session(self, session_id: str) -> Session | None:
        with self._reading(session_id) as session:
            return session.model_copy(deep=True) if session else None

    def add_participant(self, session_id: str, name: str) -> Participant | None:
        with self._editing(session_id) as session:
            if session is None:
                return None
            participant = Participant(id=str(uuid.uuid4()), name=name, joined_at=self._clock())
            session.participants.append(participant)
            # A join never interrupts a run in flight.
            if session.status != SessionStatus.analyzing:
                session.status = SessionStatus.collecting
            logger.info("%s joined session %s", name, session_id)
            return participant.model_copy(deep=True)

    # ── Preferences ──────────────────────────────────────────────────────

    def _attach(self, session: Session, participant_id: str, preferences: Preference) -> bool:
        participant = session.find_participant(participant_id)
        if participant is None:
            return False
        if preferences.participant_id != participant_id:
            preferences = preferences.model_copy(update={"participant_id": participant_id})
        participant.preferences = preferences
        participant.has_submitted = True
        return True

    @staticmethod
    def _ready(session: Session) -> bool:
        return bool(session.participants) and all(p.has_submitted for p in session.participants)

    def submit_preferences(
        self, session_id: str, participant_id: str, preferences: Preference
    ) -> bool:
        with self._editing(session_id) as session:
            if session is None:
                return False
            return self._attach(session, participant_id, preferences)

    def submit_and_check_ready(
        self, session_id: str, participant_id: str, preferences: Preference
    ) -> tuple[bool, bool]:
        """Submit, then evaluate readiness against the same snapshot.

        Returns ``(submitted, all_ready)``.
        """
        with self._editing(session_id) as session:
            if session is None:
                return False, False
            if not self._attach(session, participant_id, preferences):
                return False, False
            return True, self._ready(session)

    def all_participants_ready(self, session_id: str) -> bool:
        with self._reading(session_id) as session:
            return session is not None and self._ready(session)

    def preferences_snapshot(self, session_id: str) -> list[Preference] | None:
        with self._reading(session_id) as session:
            return session.submitted_preferences() if session else None

    # ── Status and results ───────────────────────────────────────────────

    def update_status(self, session_id: str, status: SessionStatus) -> bool:
        with self._editing(session_id) as session:
            if session is None:
                return False
            session.status = status
            return True

    def set_chat_id(self, session_id: str, chat_id: str) -> bool:
        with self._editing(session_id) as session:
            if session is None:
                return False
            session.chat_id = chat_id
            return True

    def set_consensus_results(self, session_id: str, results: list[RankedResult]) -> bool:
        with self._editing(session_id) as session:
            if session is None:
                return False
            session.consensus_results = list(results)
            session.status = SessionStatus.completed
            return True

    def append_consensus_results(self, session_id: str, results: list[RankedResult]) -> bool:
        with self._editing(session_id) as session:
            if session is None:
                return False
            session.consensus_results = [*(session.consensus_results or []), *results]
            return True

    def begin_analysis(self, session_id: str) -> list[Preference]:
        """Move a session into ``analyzing`` and return its preference snapshot.

        Raises NotFoundError, SessionBusyError if a run is already in flight,
        or NoPreferencesError if nobody has submitted yet.
        """
        with self._editing(session_id) as session:
            if session is None:
                raise NotFoundError("Session not found")
            if session.status == SessionStatus.analyzing:
                raise SessionBusyError()
            preferences = session.submitted_preferences()
            if not preferences:
                raise NoPreferencesError()
            session.status = SessionStatus.analyzing
            return preferences

    # ── Expiry ───────────────────────────────────────────────────────────

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete sessions past their expiry; sessions mid-analysis are kept."""
        now = now or self._clock()
        removed = 0
        for session_id, _ in self._repo.items():
            with self._reading(session_id) as session:
                if session is None or session.expires_at >= now:
                    continue
                if session.status == SessionStatus.analyzing:
                    continue
                self._repo.delete(session_id)
                removed += 1
            with self._locks_guard:
                self._locks.pop(session_id, None)
        if removed:
            logger.info("Swept %d expired sessions", removed)
        return removed
