from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID, uuid4

import redis

from arena.api.models import Participant, RoomState, RoomStatus
from arena.core.sampling import new_seed
from arena.fsm import RoomFSM, RoomTransitionError

logger = logging.getLogger(__name__)

ROOMS_SET_KEY = "arena:rooms"
ROOM_KEY_PREFIX = "arena:room:"  # + {uuid}


class RoomNotFoundError(ValueError):
    pass


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _room_key(room_id: UUID) -> str:
    return f"{ROOM_KEY_PREFIX}{room_id}"


def get_room(*, r: redis.Redis, room_id: UUID) -> RoomState | None:
    raw = r.get(_room_key(room_id))
    if not raw:
        return None
    return RoomState.model_validate_json(raw)


def require_room(*, r: redis.Redis, room_id: UUID) -> RoomState:
    state = get_room(r=r, room_id=room_id)
    if state is None:
        raise RoomNotFoundError("Room not found")
    return state


def require_participant(*, state: RoomState, participant_id: str) -> int:
    for idx, p in enumerate(state.participants):
        if p.participant_id == participant_id:
            return idx
    raise ValueError("Participant not found")


def _update_room(
    *,
    r: redis.Redis,
    room_id: UUID,
    mutate: Callable[[RoomState], bool],
) -> tuple[RoomState, bool]:
    """Optimistic read-modify-write of a room document.

    `mutate` returns False when there is nothing to write (idempotent repeat). Retries on
    concurrent modification so a cancel from another process is never overwritten.
    """

    key = _room_key(room_id)
    with r.pipeline() as pipe:
        while True:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                if not raw:
                    pipe.unwatch()
                    raise RoomNotFoundError("Room not found")
                state = RoomState.model_validate_json(raw)
                if not mutate(state):
                    pipe.unwatch()
                    return state, False
                state.last_updated_at = _now()
                pipe.multi()
                pipe.set(key, state.model_dump_json())
                pipe.execute()
                return state, True
            except redis.WatchError:
                logger.debug("Room %s changed during update; retrying", room_id)
                continue


def create_room(
    *,
    r: redis.Redis,
    name: str,
    min_participants: int = 2,
    seed: int | None = None,
) -> RoomState:
    if min_participants < 2:
        raise ValueError("At least 2 participants are required for a battle")

    now = _now()
    state = RoomState(
        room_id=uuid4(),
        name=name,
        created_at=now,
        last_updated_at=now,
        seed=seed if seed is not None else new_seed(),
        min_participants=min_participants,
    )

    r.set(_room_key(state.room_id), state.model_dump_json())
    r.sadd(ROOMS_SET_KEY, str(state.room_id))
    return state


def list_rooms(*, r: redis.Redis, statuses: set[RoomStatus] | None = None) -> list[RoomState]:
    ids = sorted(r.smembers(ROOMS_SET_KEY))
    out: list[RoomState] = []
    for sid in ids:
        try:
            rid = UUID(sid)
        except ValueError:
            continue
        state = get_room(r=r, room_id=rid)
        if state is None:
            continue
        if statuses is not None and state.status not in statuses:
            continue
        out.append(state)
    out.sort(key=lambda s: s.created_at, reverse=True)
    return out


def get_participants(*, r: redis.Redis, room_id: UUID) -> list[Participant]:
    return require_room(r=r, room_id=room_id).participants


def join_room(
    *,
    r: redis.Redis,
    room_id: UUID,
    participant_id: str,
    username: str,
    display_name: str | None = None,
) -> RoomState:
    def _join(state: RoomState) -> bool:
        if state.status != RoomStatus.WAITING:
            raise ValueError("Room is not accepting participants")
        if any(p.participant_id == participant_id for p in state.participants):
            raise ValueError("Participant already joined")
        state.participants.append(
            Participant(
                participant_id=participant_id,
                username=username,
                display_name=display_name,
                joined_at=_now(),
            )
        )
        return True

    state, _ = _update_room(r=r, room_id=room_id, mutate=_join)
    return state


def start_battle(*, r: redis.Redis, room_id: UUID) -> tuple[RoomState, bool]:
    """WAITING -> ACTIVE. Starting an already active room is a no-op.

    Returns (state, started) where `started` is True only for the call that made the transition.
    """

    def _start(state: RoomState) -> bool:
        if state.status == RoomStatus.ACTIVE:
            return False
        if len(state.participants) < state.min_participants:
            raise ValueError(f"At least {state.min_participants} participants required to start")
        fsm = RoomFSM(state)
        fsm.fire("begin_battle")
        fsm.sync_status_to_model()
        state.started_at = _now()
        return True

    return _update_room(r=r, room_id=room_id, mutate=_start)


def cancel_room(*, r: redis.Redis, room_id: UUID) -> RoomState:
    def _cancel(state: RoomState) -> bool:
        if state.status == RoomStatus.CANCELLED:
            return False
        fsm = RoomFSM(state)
        fsm.fire("cancel_room")
        fsm.sync_status_to_model()
        state.ended_at = _now()
        return True

    state, _ = _update_room(r=r, room_id=room_id, mutate=_cancel)
    return state


def set_current_round(*, r: redis.Redis, room_id: UUID, round: int) -> RoomState:
    def _set(state: RoomState) -> bool:
        if state.current_round >= round:
            return False
        state.current_round = round
        return True

    state, _ = _update_room(r=r, room_id=room_id, mutate=_set)
    return state


def mark_eliminated(
    *,
    r: redis.Redis,
    room_id: UUID,
    participant_id: str,
    attacker_id: str | None = None,
    round: int | None = None,
) -> bool:
    """Record an elimination. Returns False if the participant was already out."""

    def _eliminate(state: RoomState) -> bool:
        p = state.participants[require_participant(state=state, participant_id=participant_id)]
        if not p.is_alive:
            return False
        if attacker_id is not None:
            require_participant(state=state, participant_id=attacker_id)
        p.is_alive = False
        p.eliminated_by = attacker_id
        p.eliminated_at_round = round
        return True

    _, changed = _update_room(r=r, room_id=room_id, mutate=_eliminate)
    return changed


def mark_revived(*, r: redis.Redis, room_id: UUID, participant_id: str) -> bool:
    """Bring an eliminated participant back. Returns False if they were already alive."""

    def _revive(state: RoomState) -> bool:
        p = state.participants[require_participant(state=state, participant_id=participant_id)]
        if p.is_alive:
            return False
        p.is_alive = True
        p.eliminated_by = None
        p.eliminated_at_round = None
        p.revived_count += 1
        return True

    _, changed = _update_room(r=r, room_id=room_id, mutate=_revive)
    return changed


def set_winner(*, r: redis.Redis, room_id: UUID, participant_id: str) -> bool:
    """ACTIVE -> FINISHED with a winner. Repeating the same call is a no-op."""

    def _finish(state: RoomState) -> bool:
        require_participant(state=state, participant_id=participant_id)
        if state.status == RoomStatus.FINISHED:
            if state.winner_id == participant_id:
                return False
            raise RoomTransitionError("Room already finished with a different winner")
        fsm = RoomFSM(state)
        fsm.fire("finish_battle")
        fsm.sync_status_to_model()
        state.winner_id = participant_id
        state.ended_at = _now()
        return True

    _, changed = _update_room(r=r, room_id=room_id, mutate=_finish)
    return changed
