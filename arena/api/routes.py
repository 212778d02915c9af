from __future__ import annotations

from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from arena.api.deps import get_redis, get_scheduler
from arena.api.models import (
    EventListResponse,
    JoinRequest,
    RoomCreateRequest,
    RoomListResponse,
    RoomState,
    RoomStatus,
    StartResponse,
)
from arena.config import settings_from_env
from arena.infra.redis_client import redis_available
from arena.room_store import (
    RoomNotFoundError,
    cancel_room,
    create_room,
    get_room,
    join_room,
    list_rooms,
    start_battle,
)
from arena.scheduler import RoundScheduler
from arena.streams import list_events
from arena.websocket_hub import hub

router = APIRouter()


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, RoomNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.websocket("/ws/rooms/{room_id}")
async def room_events_ws(websocket: WebSocket, room_id: UUID, r: redis.Redis = Depends(get_redis)) -> None:
    rid = str(room_id)
    await hub.connect(rid, websocket)

    try:
        # Backfill so reconnecting clients see everything that happened while they were away.
        for event in list_events(r=r, room_id=room_id):
            await websocket.send_json({"type": "battle_event", "event": event.model_dump(mode="json")})

        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(rid, websocket)
    except Exception:
        await hub.disconnect(rid, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck(r: redis.Redis = Depends(get_redis)) -> dict[str, str]:
    return {"status": "ok", "redis": "ok" if redis_available(r) else "unavailable"}


@router.post("/rooms", response_model=RoomState, status_code=status.HTTP_201_CREATED)
async def create_room_route(payload: RoomCreateRequest, r: redis.Redis = Depends(get_redis)) -> RoomState:
    try:
        min_participants = payload.min_participants or settings_from_env().min_participants
        return create_room(r=r, name=payload.name, min_participants=min_participants, seed=payload.seed)
    except ValueError as e:
        raise _http_error(e) from e


@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms_route(r: redis.Redis = Depends(get_redis)) -> RoomListResponse:
    return RoomListResponse(rooms=list_rooms(r=r))


@router.get("/rooms/{room_id}", response_model=RoomState)
async def get_room_route(room_id: UUID, r: redis.Redis = Depends(get_redis)) -> RoomState:
    state = get_room(r=r, room_id=room_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return state


@router.post("/rooms/{room_id}/participants", response_model=RoomState)
async def join_room_route(room_id: UUID, payload: JoinRequest, r: redis.Redis = Depends(get_redis)) -> RoomState:
    try:
        state = join_room(
            r=r,
            room_id=room_id,
            participant_id=payload.participant_id,
            username=payload.username,
            display_name=payload.display_name,
        )
    except ValueError as e:
        raise _http_error(e) from e

    await hub.broadcast_room_updated(room_id, state.status.value)
    return state


@router.post("/rooms/{room_id}/start", response_model=StartResponse)
async def start_room_route(
    room_id: UUID,
    r: redis.Redis = Depends(get_redis),
    scheduler: RoundScheduler = Depends(get_scheduler),
) -> StartResponse:
    try:
        state, started = start_battle(r=r, room_id=room_id)
    except ValueError as e:
        raise _http_error(e) from e

    # Duplicate starts are harmless: the scheduler ignores rooms it is already driving.
    scheduled = scheduler.start(room_id)
    if started:
        await hub.broadcast_room_updated(room_id, state.status.value)
    return StartResponse(room=state, scheduled=scheduled)


@router.post("/rooms/{room_id}/cancel", response_model=RoomState)
async def cancel_room_route(
    room_id: UUID,
    r: redis.Redis = Depends(get_redis),
    scheduler: RoundScheduler = Depends(get_scheduler),
) -> RoomState:
    try:
        state = cancel_room(r=r, room_id=room_id)
    except ValueError as e:
        raise _http_error(e) from e

    await scheduler.stop(room_id)
    await hub.broadcast_room_updated(room_id, RoomStatus.CANCELLED.value)
    return state


@router.get("/rooms/{room_id}/events", response_model=EventListResponse)
async def list_events_route(room_id: UUID, r: redis.Redis = Depends(get_redis)) -> EventListResponse:
    if get_room(r=r, room_id=room_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return EventListResponse(room_id=room_id, events=list_events(r=r, room_id=room_id))
