from __future__ import annotations

from uuid import uuid4

import pytest

from arena.core.events import BattleEvent, BattleEventType
from arena.lock import RoomBusyError, room_lock
from arena.streams import append_event, list_events, read_events_after


def test_room_lock_is_exclusive_and_released(r) -> None:  # type: ignore[no-untyped-def]
    with room_lock(r=r, room_id="room-1"):
        with pytest.raises(RoomBusyError):
            with room_lock(r=r, room_id="room-1"):
                pass
        # Other rooms are independent.
        with room_lock(r=r, room_id="room-2"):
            pass

    with room_lock(r=r, room_id="room-1"):
        pass


def test_room_lock_never_releases_someone_elses_lease(r) -> None:  # type: ignore[no-untyped-def]
    with room_lock(r=r, room_id="room-1"):
        # Simulate our lease expiring and another worker taking over.
        r.set("lock:room:room-1", "other-worker")

    assert r.get("lock:room:room-1") == "other-worker"


def test_event_log_preserves_order_and_round_trip(r) -> None:  # type: ignore[no-untyped-def]
    room_id = uuid4()
    start = BattleEvent.now(room_id=room_id, round=1, type=BattleEventType.ROUND_START, message="go")
    elim = BattleEvent.now(
        room_id=room_id,
        round=1,
        type=BattleEventType.ELIMINATION,
        message="boom",
        involved_participant_ids=["a", "b"],
    )
    end = BattleEvent.now(room_id=room_id, round=1, type=BattleEventType.ROUND_END, message="done")

    ids = [append_event(r=r, event=e) for e in (start, elim, end)]
    assert len(set(ids)) == 3

    events = list_events(r=r, room_id=room_id)
    assert [e.event_id for e in events] == [start.event_id, elim.event_id, end.event_id]
    assert events[1].attacker_id == "a"
    assert events[1].victim_id == "b"
    assert list_events(r=r, room_id=uuid4()) == []


def test_read_events_after_tails_the_log(r) -> None:  # type: ignore[no-untyped-def]
    room_id = uuid4()
    first_id = append_event(
        r=r, event=BattleEvent.now(room_id=room_id, round=1, type=BattleEventType.ROUND_START, message="go")
    )
    append_event(r=r, event=BattleEvent.now(room_id=room_id, round=1, type=BattleEventType.ROUND_END, message="end"))

    tail = read_events_after(r=r, room_id=room_id, last_id=first_id)
    assert [t.event.type for t in tail] == [BattleEventType.ROUND_END]

    assert read_events_after(r=r, room_id=room_id, last_id=tail[-1].stream_id) == []


def test_refresh_extends_only_our_own_lease(r) -> None:  # type: ignore[no-untyped-def]
    with room_lock(r=r, room_id="room-1", ttl_ms=1_000) as lease:
        r.pexpire(lease.key, 50)
        lease.refresh()
        assert r.pttl(lease.key) > 500

        r.set(lease.key, "other-worker")
        with pytest.raises(RoomBusyError):
            lease.refresh()

    assert r.get("lock:room:room-1") == "other-worker"
