from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from arena.api.models import RoomState, RoomStatus


class RoomTransitionError(ValueError):
    pass


class RoomFSM(StateMachine):
    """FSM wrapper around RoomState.status.

    - waiting -> active (battle starts) -> finished (one survivor)
    - waiting | active -> cancelled (room management only)

    The store applies side effects (timestamps, winner); the FSM only guards transitions.
    """

    waiting = State(RoomStatus.WAITING.value, value=RoomStatus.WAITING.value, initial=True)
    active = State(RoomStatus.ACTIVE.value, value=RoomStatus.ACTIVE.value)
    finished = State(RoomStatus.FINISHED.value, value=RoomStatus.FINISHED.value, final=True)
    cancelled = State(RoomStatus.CANCELLED.value, value=RoomStatus.CANCELLED.value, final=True)

    begin_battle = waiting.to(active)
    finish_battle = active.to(finished)
    cancel_room = waiting.to(cancelled) | active.to(cancelled)

    def __init__(self, room: RoomState):
        self.room = room
        super().__init__(start_value=room.status.value)

    def fire(self, event: str) -> None:
        """Run a transition by name, raising a ValueError subclass if it isn't allowed."""

        try:
            self.send(event)
        except TransitionNotAllowed as e:
            raise RoomTransitionError(f"Cannot {event} a room in status {self.room.status.value}") from e

    def sync_status_to_model(self) -> None:
        self.room.status = RoomStatus(str(self.current_state.value))
