from __future__ import annotations

import json
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

PriceTier = Annotated[int, Field(ge=1, le=4)]


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    address: str = ""


class Preference(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant_id: str = ""
    cuisines: list[str] = Field(default_factory=list)
    location: Location
    dietary_restrictions: list[str] = Field(default_factory=list)
    price_range: list[PriceTier] = Field(
        default_factory=list,
        description="Accepted price tiers, 1 ($) through 4 ($$$$)",
    )
    max_distance: float = Field(..., gt=0, description="Miles")
    party_size: int | None = Field(default=None, ge=1)
    preferred_date: str | None = None
    preferred_time: str | None = None


class GroupRequirements(BaseModel):
    centroid: Location
    cuisines: list[str]
    dietary_restrictions: list[str]
    price_range: list[int]
    max_distance: float
    participant_count: int


# ── Candidate records ────────────────────────────────────────────────────


class Category(BaseModel):
    model_config = ConfigDict(extra="allow")

    alias: str | None = None
    title: str | None = None


class Coordinates(BaseModel):
    model_config = ConfigDict(extra="allow")

    latitude: float | None = None
    longitude: float | None = None


class Business(BaseModel):
    """A restaurant returned by the search provider.

    Only the fields the scorer reads are declared; every other key the
    provider sends is kept as an extra field so the full record survives
    serialization back to clients.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str = ""
    categories: list[Category] = Field(default_factory=list)
    coordinates: Coordinates | None = None
    price: str | None = None
    rating: float | None = None

    def searchable_text(self) -> str:
        return json.dumps(self.model_dump(mode="json"), default=str, ensure_ascii=False).lower()


class MatchDetails(BaseModel):
    cuisine_match: int = Field(..., ge=0, le=100)
    location_match: int = Field(..., ge=0, le=100)
    price_match: int = Field(..., ge=0, le=100)
    dietary_match: int = Field(..., ge=0, le=100)


class RankedResult(BaseModel):
    candidate: Business
    match_score: int = Field(..., ge=0, le=100)
    match_details: MatchDetails
    reasoning_text: str = ""


class ConsensusOutcome(BaseModel):
    results: list[RankedResult]
    chat_id: str
