from __future__ import annotations

from typing import Sequence

from ..errors import NoPreferencesError
from .geo import centroid
from .models import GroupRequirements, Preference


def _union(groups: Sequence[Sequence[str]]) -> list[str]:
    # First-seen order, duplicates collapse.
    return list(dict.fromkeys(item for group in groups for item in group))


def aggregate_preferences(preferences: Sequence[Preference]) -> GroupRequirements:
    """Reduce every participant's preference into one group summary.

    Cuisines and dietary restrictions are unions, so a single participant's
    restriction applies to the whole group. Price tiers are the union of
    every accepted tier. ``max_distance`` is the most permissive tolerance and
    only normalizes the location score; it never excludes a candidate.
    """
    if not preferences:
        raise NoPreferencesError()

    return GroupRequirements(
        centroid=centroid([p.location for p in preferences]),
        cuisines=_union([p.cuisines for p in preferences]),
        dietary_restrictions=_union([p.dietary_restrictions for p in preferences]),
        price_range=sorted({tier for p in preferences for tier in p.price_range}),
        max_distance=max(p.max_distance for p in preferences),
        participant_count=len(preferences),
    )
