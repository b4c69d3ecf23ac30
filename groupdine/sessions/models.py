from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..consensus.models import Preference, RankedResult


class SessionStatus(str, Enum):
    waiting = "waiting"
    collecting = "collecting"
    analyzing = "analyzing"
    completed = "completed"


class Participant(BaseModel):
    id: str
    name: str
    joined_at: datetime
    has_submitted: bool = False
    preferences: Preference | None = None


class Session(BaseModel):
    id: str
    host_name: str
    host_participant_id: str
    created_at: datetime
    expires_at: datetime
    status: SessionStatus = SessionStatus.collecting
    participants: list[Participant] = Field(default_factory=list)
    consensus_results: list[RankedResult] | None = None
    chat_id: str | None = None

    def find_participant(self, participant_id: str) -> Participant | None:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def submitted_preferences(self) -> list[Preference]:
        return [p.preferences for p in self.participants if p.preferences is not None]
