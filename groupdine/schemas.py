from __future__ import annotations

from pydantic import BaseModel, Field

from .consensus.models import Preference, RankedResult


class CreateSessionRequest(BaseModel):
    host_name: str = Field(..., min_length=1)


class JoinSessionRequest(BaseModel):
    name: str = Field(..., min_length=1)


class SubmitPreferencesRequest(BaseModel):
    participant_id: str = Field(..., min_length=1)
    preferences: Preference


class SubmitPreferencesResponse(BaseModel):
    success: bool
    all_ready: bool


class ConsensusResponse(BaseModel):
    results: list[RankedResult]


class MoreRestaurantsRequest(BaseModel):
    chat_id: str | None = None


class RefineRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=1000)
    chat_id: str | None = None


class ReservationRequest(BaseModel):
    restaurant_name: str = Field(..., min_length=1)
    party_size: int = Field(..., ge=1)
    date: str = Field(..., min_length=1)
    time: str = Field(..., min_length=1)
    chat_id: str | None = None


class ReservationResponse(BaseModel):
    text: str
    chat_id: str
