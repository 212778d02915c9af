from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import UUID

import redis

from arena.agents.narrator import Narrator
from arena.api.models import Participant, RoomStatus
from arena.config import BattleSettings
from arena.core.pacing import MAX_ROUND_DELAY_MS, MIN_ROUND_DELAY_MS, ROUND_DELAY_STEP_MS, round_delay_ms
from arena.core.sampling import SamplingSource, source_for_round
from arena.lock import RoomBusyError, room_lock
from arena.narration import DEFAULT_NARRATIVE_TIMEOUT_S
from arena.room_store import get_room
from arena.round_executor import OnEvent, RoundOutcome, execute_round

logger = logging.getLogger(__name__)

SamplerFactory = Callable[[int, int], SamplingSource]


def _default_sampler(seed: int, round: int) -> SamplingSource:
    return source_for_round(seed=seed, round=round)


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    # Grace period before round 1 so late subscribers can attach.
    initial_delay_s: float = 5.0
    min_delay_ms: int = MIN_ROUND_DELAY_MS
    max_delay_ms: int = MAX_ROUND_DELAY_MS
    step_ms: int = ROUND_DELAY_STEP_MS
    narrative_timeout_s: float = DEFAULT_NARRATIVE_TIMEOUT_S
    lock_ttl_ms: int = 30_000

    @staticmethod
    def from_settings(settings: BattleSettings) -> "SchedulerConfig":
        return SchedulerConfig(
            initial_delay_s=settings.initial_delay_s,
            narrative_timeout_s=settings.narrative_timeout_s,
            lock_ttl_ms=settings.lock_ttl_ms,
        )


@dataclass(slots=True)
class RoomLoop:
    """Mutable per-room loop state, owned by the scheduler and read fresh on every iteration."""

    room_id: UUID
    status: RoomStatus = RoomStatus.ACTIVE
    current_round: int = 0
    # Roster handed from one round to the next; None until the first round ran.
    participants: list[Participant] | None = None
    next_round_at: float | None = None
    last_outcome: RoundOutcome | None = None
    stop_requested: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class RoundScheduler:
    """Drives one timer loop per active room.

    Single-flight: at most one loop per room in this process (duplicate `start` calls are
    no-ops), rounds within a room run strictly one after another, and each round holds a
    Redis lease so a second process can't drive the same room concurrently.
    """

    def __init__(
        self,
        *,
        r: redis.Redis,
        narrator: Narrator | None = None,
        config: SchedulerConfig | None = None,
        on_event: OnEvent | None = None,
        sampler_factory: SamplerFactory | None = None,
    ) -> None:
        self._r = r
        self._narrator = narrator
        self._config = config or SchedulerConfig()
        self._on_event = on_event
        self._sampler_factory = sampler_factory or _default_sampler
        self._loops: dict[UUID, RoomLoop] = {}

    def loop_for(self, room_id: UUID) -> RoomLoop | None:
        return self._loops.get(room_id)

    def is_running(self, room_id: UUID) -> bool:
        loop = self._loops.get(room_id)
        return loop is not None and loop.running

    def start(self, room_id: UUID) -> bool:
        """Arm the loop for an ACTIVE room. Returns False if one is already running."""

        if self.is_running(room_id):
            logger.debug("[%s] start ignored; loop already running", room_id)
            return False

        loop = RoomLoop(room_id=room_id)
        self._loops[room_id] = loop
        loop.task = asyncio.create_task(self._run(loop), name=f"arena-room-{room_id}")
        logger.info("[%s] round loop armed (first round in %.1fs)", room_id, self._config.initial_delay_s)
        return True

    async def stop(self, room_id: UUID, *, wait: bool = False) -> None:
        """Stop re-arming. A round already executing finishes and keeps its events."""

        loop = self._loops.get(room_id)
        if loop is None:
            return
        loop.stop_requested.set()
        if wait and loop.task is not None:
            await asyncio.gather(loop.task, return_exceptions=True)

    async def shutdown(self) -> None:
        for room_id in list(self._loops):
            await self.stop(room_id, wait=True)

    async def _wait(self, loop: RoomLoop, delay_s: float) -> bool:
        """Sleep until the next round. Returns True if a stop was requested meanwhile."""

        loop.next_round_at = time.time() + max(delay_s, 0.0)
        try:
            if delay_s <= 0:
                await asyncio.sleep(0)
                return loop.stop_requested.is_set()
            try:
                await asyncio.wait_for(loop.stop_requested.wait(), timeout=delay_s)
                return True
            except asyncio.TimeoutError:
                return loop.stop_requested.is_set()
        finally:
            loop.next_round_at = None

    def _next_delay_s(self, outcome: RoundOutcome) -> float:
        cfg = self._config
        ms = round_delay_ms(
            outcome.survivor_count,
            min_delay_ms=cfg.min_delay_ms,
            max_delay_ms=cfg.max_delay_ms,
            step_ms=cfg.step_ms,
        )
        return ms / 1000

    async def _run_one(self, loop: RoomLoop) -> RoundOutcome | None:
        """Execute the next round if the room is still ACTIVE. None means: stop the loop."""

        room = get_room(r=self._r, room_id=loop.room_id)
        if room is None:
            logger.warning("[%s] room disappeared; stopping loop", loop.room_id)
            loop.status = RoomStatus.CANCELLED
            return None
        loop.status = room.status
        if room.status != RoomStatus.ACTIVE:
            logger.info("[%s] room is %s; stopping loop", loop.room_id, room.status.value)
            return None

        participants = loop.participants if loop.participants is not None else room.participants
        round_no = max(loop.current_round, room.current_round) + 1

        with room_lock(r=self._r, room_id=str(loop.room_id), ttl_ms=self._config.lock_ttl_ms) as lease:
            outcome = await execute_round(
                r=self._r,
                room_id=loop.room_id,
                round=round_no,
                participants=participants,
                sampler=self._sampler_factory(room.seed, round_no),
                narrator=self._narrator,
                narrative_timeout_s=self._config.narrative_timeout_s,
                on_event=self._on_event,
                keepalive=lease.refresh,
            )

        loop.current_round = round_no
        loop.participants = outcome.participants
        loop.last_outcome = outcome
        return outcome

    async def _run(self, loop: RoomLoop) -> None:
        room_id = loop.room_id
        try:
            if await self._wait(loop, self._config.initial_delay_s):
                return

            while True:
                try:
                    outcome = await self._run_one(loop)
                except RoomBusyError:
                    logger.warning("[%s] room lease is held by another worker or was lost; stopping loop", room_id)
                    return
                if outcome is None:
                    return

                if outcome.inconsistent:
                    logger.error("[%s] halting loop at round %d: roster has no survivors", room_id, outcome.round)
                    return
                if outcome.is_complete:
                    loop.status = RoomStatus.FINISHED
                    winner = outcome.winner.participant_id if outcome.winner else None
                    logger.info("[%s] battle finished at round %d; winner=%s", room_id, outcome.round, winner)
                    return

                delay_s = self._next_delay_s(outcome)
                logger.info(
                    "[%s] round %d done: %d survivors, next round in %.0fs",
                    room_id,
                    outcome.round,
                    outcome.survivor_count,
                    delay_s,
                )
                if await self._wait(loop, delay_s):
                    logger.info("[%s] stop requested; not re-arming", room_id)
                    return
        except Exception:
            logger.exception("[%s] round loop crashed", room_id)
        finally:
            if self._loops.get(room_id) is loop:
                self._loops.pop(room_id, None)
