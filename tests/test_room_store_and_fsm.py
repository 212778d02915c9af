from __future__ import annotations

import pytest

from arena.api.models import RoomStatus
from arena.fsm import RoomTransitionError
from arena.room_store import (
    RoomNotFoundError,
    cancel_room,
    create_room,
    get_participants,
    join_room,
    list_rooms,
    mark_eliminated,
    mark_revived,
    require_room,
    set_winner,
    start_battle,
)


def test_room_lifecycle_waiting_active_finished(r, make_room) -> None:  # type: ignore[no-untyped-def]
    room = make_room(3, start=False)
    assert room.status == RoomStatus.WAITING
    assert room.started_at is None

    state, started = start_battle(r=r, room_id=room.room_id)
    assert started is True
    assert state.status == RoomStatus.ACTIVE
    assert state.started_at is not None

    # Starting again is a no-op.
    state, started = start_battle(r=r, room_id=room.room_id)
    assert started is False
    assert state.status == RoomStatus.ACTIVE

    assert mark_eliminated(r=r, room_id=room.room_id, participant_id="p0", attacker_id="p1", round=1) is True
    assert mark_eliminated(r=r, room_id=room.room_id, participant_id="p2", round=1) is True
    assert set_winner(r=r, room_id=room.room_id, participant_id="p1") is True
    # Same winner twice is idempotent.
    assert set_winner(r=r, room_id=room.room_id, participant_id="p1") is False

    final = require_room(r=r, room_id=room.room_id)
    assert final.status == RoomStatus.FINISHED
    assert final.winner_id == "p1"
    assert final.ended_at is not None

    p0 = next(p for p in final.participants if p.participant_id == "p0")
    assert p0.is_alive is False
    assert p0.eliminated_by == "p1"
    assert p0.eliminated_at_round == 1

    with pytest.raises(RoomTransitionError):
        set_winner(r=r, room_id=room.room_id, participant_id="p0")
    with pytest.raises(RoomTransitionError):
        cancel_room(r=r, room_id=room.room_id)


def test_start_requires_min_participants(r) -> None:  # type: ignore[no-untyped-def]
    room = create_room(r=r, name="Lonely")
    join_room(r=r, room_id=room.room_id, participant_id="solo", username="solo")
    with pytest.raises(ValueError):
        start_battle(r=r, room_id=room.room_id)


def test_join_rules(r, make_room) -> None:  # type: ignore[no-untyped-def]
    room = make_room(2, start=False)
    with pytest.raises(ValueError):
        join_room(r=r, room_id=room.room_id, participant_id="p0", username="again")

    start_battle(r=r, room_id=room.room_id)
    with pytest.raises(ValueError):
        join_room(r=r, room_id=room.room_id, participant_id="late", username="late")


def test_cancel_from_waiting_and_active(r, make_room) -> None:  # type: ignore[no-untyped-def]
    waiting = make_room(2, start=False)
    assert cancel_room(r=r, room_id=waiting.room_id).status == RoomStatus.CANCELLED

    active = make_room(2, start=True)
    cancelled = cancel_room(r=r, room_id=active.room_id)
    assert cancelled.status == RoomStatus.CANCELLED
    # Cancelling twice is a no-op.
    assert cancel_room(r=r, room_id=active.room_id).status == RoomStatus.CANCELLED

    with pytest.raises(RoomTransitionError):
        start_battle(r=r, room_id=active.room_id)


def test_get_participants_reflects_store_mutations(r, make_room) -> None:  # type: ignore[no-untyped-def]
    room = make_room(3)
    mark_eliminated(r=r, room_id=room.room_id, participant_id="p1", attacker_id="p2", round=1)

    roster = get_participants(r=r, room_id=room.room_id)
    assert [p.participant_id for p in roster] == ["p0", "p1", "p2"]
    assert [p.is_alive for p in roster] == [True, False, True]
    assert roster[1].eliminated_by == "p2"


def test_revive_bookkeeping_and_idempotency(r, make_room) -> None:  # type: ignore[no-untyped-def]
    room = make_room(4)
    assert mark_revived(r=r, room_id=room.room_id, participant_id="p0") is False

    mark_eliminated(r=r, room_id=room.room_id, participant_id="p0", attacker_id="p1", round=2)
    assert mark_eliminated(r=r, room_id=room.room_id, participant_id="p0", round=3) is False

    assert mark_revived(r=r, room_id=room.room_id, participant_id="p0") is True
    p0 = next(p for p in require_room(r=r, room_id=room.room_id).participants if p.participant_id == "p0")
    assert p0.is_alive is True
    assert p0.revived_count == 1
    assert p0.eliminated_by is None
    assert p0.eliminated_at_round is None


def test_unknown_room_and_participant(r, make_room) -> None:  # type: ignore[no-untyped-def]
    from uuid import uuid4

    with pytest.raises(RoomNotFoundError):
        start_battle(r=r, room_id=uuid4())

    room = make_room(2)
    with pytest.raises(ValueError):
        mark_eliminated(r=r, room_id=room.room_id, participant_id="ghost")


def test_list_rooms_filters_by_status(r, make_room) -> None:  # type: ignore[no-untyped-def]
    make_room(2, start=False)
    make_room(2, start=True)

    assert len(list_rooms(r=r)) == 2
    active = list_rooms(r=r, statuses={RoomStatus.ACTIVE})
    assert len(active) == 1
    assert active[0].status == RoomStatus.ACTIVE
