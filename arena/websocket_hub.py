from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from uuid import UUID

from fastapi import WebSocket

from arena.core.events import BattleEvent

logger = logging.getLogger(__name__)


class RoomWebSocketHub:
    """In-process WebSocket pub/sub keyed by room_id.

    Contract:
      - assign connection to a room via `connect(room_id, websocket)`.
      - push battle events with `broadcast_event(event)` (used as the scheduler's `on_event`).

    Clients backfill from the event log on connect, so a missed push is recoverable.
    If we later run multiple API replicas, fan-out should move to tailing the Redis stream.
    """

    def __init__(self) -> None:
        self._by_room: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, room_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._by_room[room_id].add(websocket)

    async def disconnect(self, room_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            conns = self._by_room.get(room_id)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._by_room.pop(room_id, None)

    async def broadcast(self, room_id: str, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._by_room.get(room_id, set()))

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            logger.debug("Dropping %d dead sockets for room %s", len(dead), room_id)
            async with self._lock:
                for ws in dead:
                    self._by_room.get(room_id, set()).discard(ws)

    async def broadcast_event(self, event: BattleEvent) -> None:
        await self.broadcast(str(event.room_id), {"type": "battle_event", "event": event.model_dump(mode="json")})

    async def broadcast_room_updated(self, room_id: UUID, status: str) -> None:
        await self.broadcast(str(room_id), {"type": "room_updated", "room_id": str(room_id), "status": status})


hub = RoomWebSocketHub()
