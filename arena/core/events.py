from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class BattleEventType(StrEnum):
    ROUND_START = "ROUND_START"
    ELIMINATION = "ELIMINATION"
    REVIVE = "REVIVE"
    ROUND_END = "ROUND_END"
    WINNER = "WINNER"


class BattleEvent(BaseModel):
    """One append-only entry in a room's battle log.

    `involved_participant_ids` layout by type:
    - ELIMINATION: [attacker_id, victim_id] or [victim_id] when the arena did it
    - REVIVE / WINNER: [participant_id]
    - ROUND_START / ROUND_END: []
    """

    event_id: UUID = Field(default_factory=uuid4)
    room_id: UUID
    round: int = Field(..., ge=1)
    type: BattleEventType
    message: str
    involved_participant_ids: list[str] = Field(default_factory=list)
    created_at: datetime

    @staticmethod
    def now(
        *,
        room_id: UUID,
        round: int,
        type: BattleEventType,
        message: str,
        involved_participant_ids: list[str] | None = None,
    ) -> "BattleEvent":
        return BattleEvent(
            room_id=room_id,
            round=round,
            type=type,
            message=message,
            involved_participant_ids=list(involved_participant_ids or []),
            created_at=datetime.now(timezone.utc),
        )

    @property
    def victim_id(self) -> str | None:
        if self.type != BattleEventType.ELIMINATION or not self.involved_participant_ids:
            return None
        return self.involved_participant_ids[-1]

    @property
    def attacker_id(self) -> str | None:
        if self.type != BattleEventType.ELIMINATION or len(self.involved_participant_ids) < 2:
            return None
        return self.involved_participant_ids[0]
