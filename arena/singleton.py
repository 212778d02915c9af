from __future__ import annotations

import redis

from arena.agents.factory import create_default_narrator
from arena.agents.narrator import Narrator
from arena.config import settings_from_env
from arena.scheduler import RoundScheduler, SchedulerConfig
from arena.websocket_hub import hub


_SCHEDULER: RoundScheduler | None = None


def init_scheduler(
    *,
    r: redis.Redis,
    config: SchedulerConfig | None = None,
    narrator: Narrator | None = None,
    use_env_narrator: bool = True,
) -> RoundScheduler:
    """Create the process-wide scheduler once.

    Safe to call multiple times; subsequent calls return the already created instance.
    Without an explicit narrator one is built from env (None when no LLM is configured)
    unless `use_env_narrator` is False.
    """

    global _SCHEDULER
    if _SCHEDULER is None:
        settings = settings_from_env()
        if narrator is None and use_env_narrator:
            narrator = create_default_narrator(enabled=settings.narrator_enabled)
        _SCHEDULER = RoundScheduler(
            r=r,
            narrator=narrator,
            config=config or SchedulerConfig.from_settings(settings),
            on_event=hub.broadcast_event,
        )
    return _SCHEDULER


def reset_scheduler_for_tests() -> None:
    """Drop the cached scheduler so tests can build one around their own Redis."""

    global _SCHEDULER
    _SCHEDULER = None


def get_scheduler() -> RoundScheduler:
    if _SCHEDULER is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() at startup.")
    return _SCHEDULER
