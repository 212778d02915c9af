from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import redis


class RoomBusyError(ValueError):
    pass


def _lock_key(room_id: str) -> str:
    return f"lock:room:{room_id}"


@dataclass(frozen=True, slots=True)
class RoomLease:
    r: redis.Redis
    key: str
    token: str
    ttl_ms: int

    def refresh(self) -> None:
        """Push the expiry out by another `ttl_ms`. Raises RoomBusyError if the lease was lost."""

        with self.r.pipeline() as pipe:
            try:
                pipe.watch(self.key)
                if pipe.get(self.key) != self.token:
                    pipe.unwatch()
                    raise RoomBusyError("Room lease lost")
                pipe.multi()
                pipe.pexpire(self.key, self.ttl_ms)
                pipe.execute()
            except redis.WatchError as e:
                raise RoomBusyError("Room lease lost") from e

    def release(self) -> None:
        with self.r.pipeline() as pipe:
            try:
                pipe.watch(self.key)
                if pipe.get(self.key) == self.token:
                    pipe.multi()
                    pipe.delete(self.key)
                    pipe.execute()
                else:
                    pipe.unwatch()
            except redis.WatchError:
                # Someone else took the key between GET and DEL; it's theirs now.
                pass


@contextmanager
def room_lock(*, r: redis.Redis, room_id: str, ttl_ms: int = 30_000) -> Iterator[RoomLease]:
    """Per-room lease held while a round runs.

    Guards against a second process driving the same room. The holder calls `refresh()`
    as the round progresses; the token is unique per holder so a lease that expired and
    was re-acquired elsewhere is never extended or released by us.
    """

    key = _lock_key(room_id)
    lease = RoomLease(r=r, key=key, token=uuid.uuid4().hex, ttl_ms=ttl_ms)
    if not r.set(key, lease.token, nx=True, px=ttl_ms):
        raise RoomBusyError("Room is busy")
    try:
        yield lease
    finally:
        lease.release()
