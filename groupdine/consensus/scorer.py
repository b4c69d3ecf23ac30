"""
Candidate scoring.

Each candidate gets a 0-100 composite score built from four independently
computed dimensions:

* **cuisine** (30) - share of participants with at least one requested
  cuisine found in the candidate's category aliases or titles.
* **location** (25) - average distance to every participant, normalized by
  the group's most permissive distance tolerance.
* **price** (20) - share of participants who accept the candidate's tier.
* **dietary** (25) - all or nothing: every restriction anyone asked for
  must appear in the candidate's record.

Missing candidate fields score as the worst case; nothing here raises.
"""
from __future__ import annotations

import math
from typing import Sequence

from .geo import distances_miles
from .models import Business, MatchDetails, Preference, RankedResult

WEIGHTS: dict[str, float] = {"cuisine": 30, "location": 25, "price": 20, "dietary": 25}

UNKNOWN_DISTANCE_MILES = 999.0
DEFAULT_PRICE_TIER = 2


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _category_labels(business: Business) -> list[str]:
    labels: list[str] = []
    for cat in business.categories:
        for label in (cat.alias, cat.title):
            if label is not None:
                labels.append(label.lower())
    return labels


def _cuisine_fraction(business: Business, preferences: Sequence[Preference]) -> float:
    if not preferences:
        return 0.0
    labels = _category_labels(business)
    matches = sum(
        1
        for p in preferences
        if any(c.lower() in label for c in p.cuisines for label in labels)
    )
    return matches / len(preferences)


def average_distance(business: Business, preferences: Sequence[Preference]) -> float:
    """Mean miles from the candidate to each participant, 999 when unplaceable."""
    coords = business.coordinates
    if coords is None or coords.latitude is None or coords.longitude is None:
        return UNKNOWN_DISTANCE_MILES
    if not preferences:
        return UNKNOWN_DISTANCE_MILES

    distances = distances_miles(
        coords.latitude,
        coords.longitude,
        [p.location.latitude for p in preferences],
        [p.location.longitude for p in preferences],
    )
    return float(distances.mean())


def _location_fraction(business: Business, preferences: Sequence[Preference]) -> float:
    coords = business.coordinates
    if coords is None or coords.latitude is None or coords.longitude is None:
        return 0.0
    if not preferences:
        return 0.0
    max_tolerance = max(p.max_distance for p in preferences)
    if max_tolerance <= 0:
        return 0.0
    fraction = 1 - average_distance(business, preferences) / max_tolerance
    if math.isnan(fraction):
        return 0.0
    return max(0.0, fraction)


def price_tier(business: Business) -> int:
    return len(business.price) if business.price else DEFAULT_PRICE_TIER


def _price_fraction(business: Business, preferences: Sequence[Preference]) -> float:
    if not preferences:
        return 0.0
    tier = price_tier(business)
    matches = sum(1 for p in preferences if tier in p.price_range)
    return matches / len(preferences)


def _restriction_variants(restriction: str) -> set[str]:
    keyword = restriction.lower()
    return {
        keyword,
        keyword.replace("-", " "),
        keyword.replace(" ", "-"),
        keyword.replace("-", "").replace(" ", ""),
    }


def satisfies_dietary(business: Business, restrictions: Sequence[str]) -> bool:
    """True when every restriction shows up somewhere in the candidate record.

    Matching is a keyword search over the serialized record, tolerant of
    ``gluten-free`` / ``gluten free`` / ``glutenfree`` spellings.
    """
    if not restrictions:
        return True
    text = business.searchable_text()
    return all(
        any(variant in text for variant in _restriction_variants(r))
        for r in restrictions
    )


def _group_restrictions(preferences: Sequence[Preference]) -> list[str]:
    return list(dict.fromkeys(r for p in preferences for r in p.dietary_restrictions))


def _fractions(business: Business, preferences: Sequence[Preference]) -> dict[str, float]:
    return {
        "cuisine": _cuisine_fraction(business, preferences),
        "location": _location_fraction(business, preferences),
        "price": _price_fraction(business, preferences),
        "dietary": 1.0 if satisfies_dietary(business, _group_restrictions(preferences)) else 0.0,
    }


def _total(fractions: dict[str, float]) -> int:
    total = sum(WEIGHTS[k] * fractions[k] for k in WEIGHTS)
    return min(100, max(0, _round_half_up(total)))


def _details(fractions: dict[str, float]) -> MatchDetails:
    return MatchDetails(
        cuisine_match=_round_half_up(fractions["cuisine"] * 100),
        location_match=_round_half_up(fractions["location"] * 100),
        price_match=_round_half_up(fractions["price"] * 100),
        dietary_match=_round_half_up(fractions["dietary"] * 100),
    )


def calculate_match_score(business: Business, preferences: Sequence[Preference]) -> int:
    return _total(_fractions(business, preferences))


def calculate_match_details(business: Business, preferences: Sequence[Preference]) -> MatchDetails:
    return _details(_fractions(business, preferences))


def score_candidate(business: Business, preferences: Sequence[Preference]) -> RankedResult:
    """Score one candidate; reasoning text is filled in later by the orchestrator."""
    fractions = _fractions(business, preferences)
    return RankedResult(
        candidate=business,
        match_score=_total(fractions),
        match_details=_details(fractions),
    )
