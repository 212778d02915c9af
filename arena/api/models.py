from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field

from arena.core.events import BattleEvent


class RoomCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    # Defaults to ARENA_MIN_PARTICIPANTS when omitted.
    min_participants: int | None = Field(None, ge=2, le=1000)
    # Optional fixed seed, mostly for replaying a battle while debugging.
    seed: int | None = Field(None, ge=1)


class JoinRequest(BaseModel):
    participant_id: str = Field(..., min_length=1, max_length=128)
    username: str = Field(..., min_length=1, max_length=64)
    display_name: str | None = Field(None, max_length=64)


class Participant(BaseModel):
    participant_id: str
    username: str

    # Human-friendly name for narration; falls back to username.
    display_name: str | None = None

    is_alive: bool = True
    eliminated_at_round: int | None = None
    # None with eliminated_at_round set means the arena did it.
    eliminated_by: str | None = None
    revived_count: int = Field(0, ge=0)

    joined_at: datetime

    @property
    def label(self) -> str:
        return self.display_name or self.username or self.participant_id


class RoomStatus(StrEnum):
    WAITING = "WAITING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


class RoomState(BaseModel):
    room_id: UUID
    name: str
    created_at: datetime
    last_updated_at: datetime

    # For reproducibility/debugging.
    seed: int

    min_participants: int = 2
    participants: list[Participant] = Field(default_factory=list)

    status: RoomStatus = RoomStatus.WAITING
    current_round: int = 0

    started_at: datetime | None = None
    ended_at: datetime | None = None

    # When finished.
    winner_id: str | None = None

    @property
    def alive_count(self) -> int:
        return sum(1 for p in self.participants if p.is_alive)


class RoomListResponse(BaseModel):
    rooms: list[RoomState]


class EventListResponse(BaseModel):
    room_id: UUID
    events: list[BattleEvent]


class StartResponse(BaseModel):
    room: RoomState
    scheduled: bool
