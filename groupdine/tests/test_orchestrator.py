import asyncio
from unittest.mock import AsyncMock

import pytest

from groupdine.consensus.aggregator import aggregate_preferences
from groupdine.consensus.models import Business, Location, Preference
from groupdine.consensus.orchestrator import (
    LOAD_MORE_QUERY,
    ChatReply,
    ConsensusOrchestrator,
    SearchResponse,
    build_consensus_query,
    build_reasoning_query,
    fallback_reasoning,
    rank_candidates,
)
from groupdine.errors import NoPreferencesError, UpstreamError, ValidationError


def _pref(pid, lat=37.77, lng=-122.41, cuisines=("Italian",), prices=(2,), max_distance=10.0, dietary=()):
    return Preference(
        participant_id=pid,
        cuisines=list(cuisines),
        location=Location(latitude=lat, longitude=lng),
        dietary_restrictions=list(dietary),
        price_range=list(prices),
        max_distance=max_distance,
    )


PREFS = [
    _pref("a", 37.77, -122.41, prices=(2,), max_distance=10),
    _pref("b", 37.78, -122.40, prices=(3,), max_distance=5),
]


def _business(i: int, price: str = "$$", italian: bool = True, coords: bool = True) -> Business:
    return Business.model_validate({
        "id": f"biz-{i}",
        "name": f"R{i}",
        "categories": [{"alias": "italian", "title": "Italian"}] if italian else [],
        "coordinates": {"latitude": 37.775, "longitude": -122.405} if coords else None,
        "price": price,
        "rating": 4.5,
    })


class FakeSearch:
    def __init__(self, businesses, chat_id="chat-1", error=None):
        self.businesses = businesses
        self.chat_id = chat_id
        self.error = error
        self.calls = []

    async def search(self, query, location=None, chat_id=None):
        self.calls.append({"query": query, "location": location, "chat_id": chat_id})
        if self.error:
            raise self.error
        return SearchResponse(text="", businesses=list(self.businesses), chat_id=self.chat_id)


class FakeReasoner:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    async def converse(self, query, chat_id):
        self.calls.append({"query": query, "chat_id": chat_id})
        for name in self.fail_for:
            if f"Why is {name} " in query:
                raise UpstreamError("reasoning down")
        return ChatReply(text=f"Great pick ({chat_id})", chat_id=chat_id)


def _run(coro):
    return asyncio.run(coro)


# ── Query construction ───────────────────────────────────────────────────


class TestQueries:
    def test_consensus_query_scenario(self):
        query = build_consensus_query(aggregate_preferences(PREFS))
        assert query == (
            "Find restaurants serving Italian in the $$$ or lower price range "
            "near me that are highly rated"
        )

    def test_consensus_query_with_dietary(self):
        prefs = [_pref("a", dietary=("vegan",)), _pref("b", dietary=("gluten-free",))]
        query = build_consensus_query(aggregate_preferences(prefs))
        assert "with vegan and gluten-free options" in query

    def test_consensus_query_caps_cuisines_at_five(self):
        prefs = [_pref("a", cuisines=("A", "B", "C", "D", "E", "F", "G"))]
        query = build_consensus_query(aggregate_preferences(prefs))
        assert "serving A, B, C, D, E " in query
        assert ", F" not in query

    def test_consensus_query_without_cuisines_or_prices(self):
        prefs = [_pref("a", cuisines=(), prices=())]
        query = build_consensus_query(aggregate_preferences(prefs))
        assert query == "Find restaurants near me that are highly rated"

    def test_reasoning_query_mentions_group(self):
        prefs = [_pref("a", dietary=("vegan",)), _pref("b")]
        query = build_reasoning_query(_business(1), aggregate_preferences(prefs))
        assert query == (
            "Why is R1 a good match for a group of 2 people wanting Italian "
            "cuisine with vegan dietary needs?"
        )

    def test_reasoning_query_without_cuisines(self):
        query = build_reasoning_query(_business(1), aggregate_preferences([_pref("a", cuisines=())]))
        assert "wanting various cuisine?" in query


# ── Ranking ──────────────────────────────────────────────────────────────


class TestRanking:
    def test_rank_keeps_top_five_sorted(self):
        businesses = [_business(i, price="$$$$" if i % 2 else "$$") for i in range(8)]
        ranked = rank_candidates(businesses, PREFS)
        scores = [r.match_score for r in ranked]
        assert len(ranked) == 5
        assert scores == sorted(scores, reverse=True)

    def test_ties_preserve_provider_order(self):
        ranked = rank_candidates([_business(i) for i in range(7)], PREFS)
        assert [r.candidate.name for r in ranked] == ["R0", "R1", "R2", "R3", "R4"]

    def test_better_candidate_moves_up(self):
        businesses = [_business(0, coords=False), _business(1, italian=False), _business(2)]
        ranked = rank_candidates(businesses, PREFS)
        assert ranked[0].candidate.name == "R2"

    def test_empty_candidates(self):
        assert rank_candidates([], PREFS) == []


# ── find_consensus ───────────────────────────────────────────────────────


class TestFindConsensus:
    @pytest.mark.parametrize("count", [0, 3, 5, 9])
    def test_returns_min_five_results_sorted(self, count):
        search = FakeSearch([_business(i, price="$" * (1 + i % 4)) for i in range(count)])
        orchestrator = ConsensusOrchestrator(search, FakeReasoner())

        outcome = _run(orchestrator.find_consensus(PREFS))

        assert len(outcome.results) == min(5, count)
        scores = [r.match_score for r in outcome.results]
        assert scores == sorted(scores, reverse=True)
        assert outcome.chat_id == "chat-1"

    def test_searches_from_group_centroid(self):
        search = FakeSearch([_business(1)])
        _run(ConsensusOrchestrator(search, FakeReasoner()).find_consensus(PREFS))

        call = search.calls[0]
        assert call["chat_id"] is None
        assert call["location"].latitude == pytest.approx(37.775)
        assert call["location"].longitude == pytest.approx(-122.405)

    def test_reasoning_uses_new_conversation(self):
        reasoner = FakeReasoner()
        outcome = _run(
            ConsensusOrchestrator(FakeSearch([_business(1), _business(2)]), reasoner).find_consensus(PREFS)
        )
        assert {c["chat_id"] for c in reasoner.calls} == {"chat-1"}
        assert all(r.reasoning_text == "Great pick (chat-1)" for r in outcome.results)

    def test_reasoning_failure_falls_back_per_candidate(self):
        reasoner = FakeReasoner(fail_for=["R1"])
        outcome = _run(
            ConsensusOrchestrator(FakeSearch([_business(1), _business(2)]), reasoner).find_consensus(PREFS)
        )
        by_name = {r.candidate.name: r for r in outcome.results}
        r1 = by_name["R1"]
        assert r1.reasoning_text == (
            f"R1 matches {r1.match_score}% of your group's preferences with a 4.5 star rating."
        )
        assert by_name["R2"].reasoning_text == "Great pick (chat-1)"

    def test_no_preferences_fails_before_any_external_call(self):
        search = AsyncMock()
        reasoner = AsyncMock()
        orchestrator = ConsensusOrchestrator(search, reasoner)

        with pytest.raises(NoPreferencesError) as exc_info:
            _run(orchestrator.find_consensus([]))

        assert isinstance(exc_info.value, ValidationError)
        search.search.assert_not_awaited()
        reasoner.converse.assert_not_awaited()

    def test_search_failure_raises_upstream_error(self):
        search = FakeSearch([], error=RuntimeError("connection reset"))
        with pytest.raises(UpstreamError):
            _run(ConsensusOrchestrator(search, FakeReasoner()).find_consensus(PREFS))

    def test_empty_search_result_is_not_an_error(self):
        reasoner = FakeReasoner()
        outcome = _run(ConsensusOrchestrator(FakeSearch([]), reasoner).find_consensus(PREFS))
        assert outcome.results == []
        assert reasoner.calls == []


# ── Follow-ups ───────────────────────────────────────────────────────────


class TestFollowUps:
    def test_find_more_uses_existing_chat(self):
        search = FakeSearch([_business(i) for i in range(6)], chat_id="chat-9")
        results = _run(
            ConsensusOrchestrator(search, FakeReasoner()).find_more_restaurants(PREFS, "chat-9")
        )
        assert len(results) == 5
        assert search.calls[0]["query"] == LOAD_MORE_QUERY
        assert search.calls[0]["chat_id"] == "chat-9"

    def test_find_more_empty_result(self):
        results = _run(
            ConsensusOrchestrator(FakeSearch([]), FakeReasoner()).find_more_restaurants(PREFS, "chat-1")
        )
        assert results == []

    def test_refine_embeds_user_query_verbatim(self):
        search = FakeSearch([_business(1)])
        _run(
            ConsensusOrchestrator(search, FakeReasoner()).refine_results(
                PREFS, "somewhere with outdoor seating", "chat-1",
            )
        )
        query = search.calls[0]["query"]
        assert "somewhere with outdoor seating." in query
        assert "haven't seen yet" in query

    def test_follow_ups_require_preferences(self):
        orchestrator = ConsensusOrchestrator(FakeSearch([]), FakeReasoner())
        with pytest.raises(NoPreferencesError):
            _run(orchestrator.find_more_restaurants([], "chat-1"))
        with pytest.raises(NoPreferencesError):
            _run(orchestrator.refine_results([], "anything", "chat-1"))


def test_fallback_without_rating():
    biz = Business(name="Nameless")
    from groupdine.consensus.scorer import score_candidate

    result = score_candidate(biz, PREFS)
    assert fallback_reasoning(result) == (
        f"Nameless matches {result.match_score}% of your group's preferences."
    )
