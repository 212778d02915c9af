from __future__ import annotations

from dataclasses import dataclass
from typing import cast
from uuid import UUID

import redis

from arena.core.events import BattleEvent


@dataclass(frozen=True, slots=True)
class EventLog:
    room_id: UUID

    @property
    def key(self) -> str:
        return f"battle:{self.room_id}:events"


@dataclass(frozen=True, slots=True)
class LoggedEvent:
    stream_id: str
    event: BattleEvent


def _fields_for(event: BattleEvent) -> dict[str, str]:
    # Flat fields for cheap filtering with redis-cli; `event` carries the full document.
    return {
        "type": event.type.value,
        "round": str(event.round),
        "event_id": str(event.event_id),
        "event": event.model_dump_json(),
    }


def _decode(entries: list[tuple[str, dict[str, str]]]) -> list[LoggedEvent]:
    return [LoggedEvent(stream_id=sid, event=BattleEvent.model_validate_json(f["event"])) for sid, f in entries]


def append_event(*, r: redis.Redis, event: BattleEvent) -> str:
    """Append an event to its room's battle log stream."""

    stream_id = r.xadd(EventLog(room_id=event.room_id).key, _fields_for(event))
    return cast(str, stream_id)


def list_events(*, r: redis.Redis, room_id: UUID) -> list[BattleEvent]:
    """All events for a room in creation order (backfill after reconnect)."""

    entries = r.xrange(EventLog(room_id=room_id).key)
    return [e.event for e in _decode(cast(list, entries))]


def read_events_after(
    *,
    r: redis.Redis,
    room_id: UUID,
    last_id: str = "0",
    block_ms: int | None = None,
    count: int = 100,
) -> list[LoggedEvent]:
    """Tail the log: entries strictly after `last_id`, optionally blocking for new ones."""

    key = EventLog(room_id=room_id).key
    resp = r.xread({key: last_id}, count=count, block=block_ms)
    if not resp:
        return []

    out: list[LoggedEvent] = []
    for _stream, messages in cast(list, resp):
        out.extend(_decode(messages))
    return out
