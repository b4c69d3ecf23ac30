from __future__ import annotations

import asyncio
import logging

from ..errors import GroupDineError, NotFoundError, UpstreamError, ValidationError
from ..sessions import events
from ..sessions.events import EventBroadcaster
from ..sessions.models import Session, SessionStatus
from ..sessions.registry import SessionRegistry
from .models import RankedResult
from .orchestrator import ConsensusOrchestrator

logger = logging.getLogger(__name__)


class ConsensusRunner:
    """Drives a consensus run for one session and keeps its status honest.

    A session is never left ``analyzing``: any failure reverts it to
    ``waiting`` so the group can trigger again.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        orchestrator: ConsensusOrchestrator,
        broadcaster: EventBroadcaster,
    ) -> None:
        self._registry = registry
        self._orchestrator = orchestrator
        self._broadcaster = broadcaster

    def _revert(self, session_id: str) -> None:
        self._registry.update_status(session_id, SessionStatus.waiting)
        self._broadcaster.publish(
            session_id, events.STATUS_UPDATE, {"status": SessionStatus.waiting.value}
        )

    async def run(self, session_id: str) -> list[RankedResult]:
        try:
            preferences = self._registry.begin_analysis(session_id)
        except GroupDineError as exc:
            self._broadcaster.publish(session_id, events.CONSENSUS_ERROR, {"message": exc.message})
            raise
        self._broadcaster.publish(
            session_id, events.STATUS_UPDATE, {"status": SessionStatus.analyzing.value}
        )
        logger.info("Running consensus for %d participants in %s", len(preferences), session_id)

        try:
            outcome = await self._orchestrator.find_consensus(preferences)
        except asyncio.CancelledError:
            self._revert(session_id)
            raise
        except Exception as exc:
            message = exc.message if isinstance(exc, GroupDineError) else "Failed to find consensus"
            logger.warning("Consensus failed for session %s: %s", session_id, message, exc_info=True)
            self._revert(session_id)
            self._broadcaster.publish(session_id, events.CONSENSUS_ERROR, {"message": message})
            if isinstance(exc, GroupDineError):
                raise
            raise UpstreamError(message) from exc

        self._registry.set_chat_id(session_id, outcome.chat_id)
        self._registry.set_consensus_results(session_id, outcome.results)
        logger.info("Consensus found %d results for %s", len(outcome.results), session_id)

        self._broadcaster.publish(
            session_id,
            events.CONSENSUS_RESULTS,
            {"results": [r.model_dump(mode="json") for r in outcome.results]},
        )
        self._broadcaster.publish(
            session_id, events.STATUS_UPDATE, {"status": SessionStatus.completed.value}
        )
        return outcome.results

    def _follow_up_context(self, session_id: str, chat_id: str | None) -> tuple[Session, str | None]:
        session = self._registry.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session, chat_id or session.chat_id

    async def load_more(self, session_id: str, chat_id: str | None = None) -> list[RankedResult]:
        session, chat = self._follow_up_context(session_id, chat_id)
        preferences = session.submitted_preferences()
        if not preferences:
            return []
        if not chat:
            raise ValidationError("No conversation to continue; find a consensus first")

        results = await self._orchestrator.find_more_restaurants(preferences, chat)
        self._registry.append_consensus_results(session_id, results)
        return results

    async def refine(
        self, session_id: str, query: str, chat_id: str | None = None
    ) -> list[RankedResult]:
        session, chat = self._follow_up_context(session_id, chat_id)
        preferences = session.submitted_preferences()
        if not preferences:
            return []
        if not chat:
            raise ValidationError("No conversation to continue; find a consensus first")

        results = await self._orchestrator.refine_results(preferences, query, chat)
        self._registry.append_consensus_results(session_id, results)
        return results
