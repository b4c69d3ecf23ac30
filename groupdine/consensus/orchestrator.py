from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

import pandas as pd

from ..errors import NoPreferencesError, UpstreamError
from .aggregator import aggregate_preferences
from .models import (
    Business,
    ConsensusOutcome,
    GroupRequirements,
    Location,
    Preference,
    RankedResult,
)
from .scorer import score_candidate

logger = logging.getLogger(__name__)

TOP_N = 5
MAX_QUERY_CUISINES = 5

LOAD_MORE_QUERY = (
    "Can you suggest 5 more restaurant options similar to the previous ones? "
    "Please provide different options that still match the group's preferences."
)


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


@dataclass
class SearchResponse:
    text: str
    businesses: list[Business] = field(default_factory=list)
    chat_id: str = ""


@dataclass
class ChatReply:
    text: str
    chat_id: str


class SearchProvider(Protocol):
    async def search(
        self,
        query: str,
        location: Location | None = None,
        chat_id: str | None = None,
    ) -> SearchResponse: ...


class ReasoningProvider(Protocol):
    async def converse(self, query: str, chat_id: str) -> ChatReply: ...


# ---------------------------------------------------------------------------
# Query construction
# ---------------------------------------------------------------------------


def build_consensus_query(requirements: GroupRequirements) -> str:
    parts: list[str] = []

    if requirements.cuisines:
        cuisine_list = ", ".join(requirements.cuisines[:MAX_QUERY_CUISINES])
        parts.append(f"restaurants serving {cuisine_list}")
    else:
        parts.append("restaurants")

    if requirements.dietary_restrictions:
        parts.append(f"with {' and '.join(requirements.dietary_restrictions)} options")

    if requirements.price_range:
        symbols = "$" * max(requirements.price_range)
        parts.append(f"in the {symbols} or lower price range")

    parts.append("near me")
    parts.append("that are highly rated")

    return f"Find {' '.join(parts)}"


def build_refine_query(user_query: str) -> str:
    return (
        "Based on our previous conversation about restaurants, I'd like to find "
        f"additional options. {user_query}. Please suggest 5 more restaurants that "
        "match this description while still considering our group's preferences. "
        "Try to suggest different restaurants we haven't seen yet."
    )


def build_reasoning_query(business: Business, requirements: GroupRequirements) -> str:
    cuisines = ", ".join(requirements.cuisines) or "various"
    dietary = ", ".join(requirements.dietary_restrictions)
    dietary_clause = f" with {dietary} dietary needs" if dietary else ""
    return (
        f"Why is {business.name} a good match for a group of "
        f"{requirements.participant_count} people wanting {cuisines} cuisine{dietary_clause}?"
    )


def fallback_reasoning(result: RankedResult) -> str:
    name = result.candidate.name
    rating = result.candidate.rating
    if rating is None:
        return f"{name} matches {result.match_score}% of your group's preferences."
    return (
        f"{name} matches {result.match_score}% of your group's preferences "
        f"with a {rating:g} star rating."
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ConsensusOrchestrator:
    """Aggregate, search, score, rank and explain.

    Holds no per-run state; one instance serves every session concurrently.
    """

    def __init__(self, search: SearchProvider, reasoner: ReasoningProvider) -> None:
        self._search = search
        self._reasoner = reasoner

    async def find_consensus(self, preferences: Sequence[Preference]) -> ConsensusOutcome:
        results, chat_id = await self._search_and_rank(preferences, build_consensus_query)
        return ConsensusOutcome(results=results, chat_id=chat_id)

    async def find_more_restaurants(
        self, preferences: Sequence[Preference], chat_id: str
    ) -> list[RankedResult]:
        results, _ = await self._search_and_rank(
            preferences, lambda _req: LOAD_MORE_QUERY, chat_id=chat_id
        )
        return results

    async def refine_results(
        self, preferences: Sequence[Preference], user_query: str, chat_id: str
    ) -> list[RankedResult]:
        results, _ = await self._search_and_rank(
            preferences, lambda _req: build_refine_query(user_query), chat_id=chat_id
        )
        return results

    async def _search_and_rank(
        self,
        preferences: Sequence[Preference],
        build_query: Callable[[GroupRequirements], str],
        chat_id: str | None = None,
    ) -> tuple[list[RankedResult], str]:
        if not preferences:
            raise NoPreferencesError()

        requirements = aggregate_preferences(preferences)
        query = build_query(requirements)
        logger.info(
            "Searching for %d participants (continuing chat: %s)",
            requirements.participant_count,
            bool(chat_id),
        )

        try:
            response = await self._search.search(query, requirements.centroid, chat_id)
        except UpstreamError:
            raise
        except Exception as exc:
            logger.warning("Restaurant search failed", exc_info=True)
            raise UpstreamError("Failed to search restaurants") from exc

        conversation = response.chat_id or chat_id or ""
        if not response.businesses:
            return [], conversation

        top = rank_candidates(response.businesses, preferences)
        explained = await asyncio.gather(
            *(self._explain(result, requirements, conversation) for result in top)
        )
        return list(explained), conversation

    async def _explain(
        self,
        result: RankedResult,
        requirements: GroupRequirements,
        chat_id: str,
    ) -> RankedResult:
        try:
            reply = await self._reasoner.converse(
                build_reasoning_query(result.candidate, requirements), chat_id
            )
            text = reply.text or fallback_reasoning(result)
        except Exception:
            logger.warning(
                "Reasoning request failed for %s, using fallback text",
                result.candidate.name,
                exc_info=True,
            )
            text = fallback_reasoning(result)
        return result.model_copy(update={"reasoning_text": text})


def rank_candidates(
    businesses: Sequence[Business],
    preferences: Sequence[Preference],
    limit: int = TOP_N,
) -> list[RankedResult]:
    """Score every candidate and keep the best ``limit``.

    Ties keep the provider's original order.
    """
    scored = [score_candidate(b, preferences) for b in businesses]
    if not scored:
        return []
    frame = pd.DataFrame({"match_score": [r.match_score for r in scored]})
    order = frame.sort_values("match_score", ascending=False, kind="stable").head(limit).index
    return [scored[i] for i in order]
