from __future__ import annotations

import os
from dataclasses import dataclass


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().casefold() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class BattleSettings:
    # Grace period before round 1 so late subscribers can attach.
    initial_delay_s: float = 5.0
    # Upper bound on a single narrative generation call.
    narrative_timeout_s: float = 4.0
    narrator_enabled: bool = False
    min_participants: int = 2
    # Per-round Redis lease, refreshed before every store write; must outlive one narration call.
    lock_ttl_ms: int = 30_000


def settings_from_env() -> BattleSettings:
    """Read battle settings from ARENA_* environment variables.

    The narrator defaults to enabled only when an LLM endpoint is configured.
    """

    llm_configured = bool(os.environ.get("OPENAI_API_KEY") or os.environ.get("OPENAI_BASE_URL"))
    return BattleSettings(
        initial_delay_s=env_float("ARENA_INITIAL_DELAY_S", 5.0),
        narrative_timeout_s=env_float("ARENA_NARRATIVE_TIMEOUT_S", 4.0),
        narrator_enabled=env_bool("ARENA_NARRATOR_ENABLED", llm_configured),
        min_participants=env_int("ARENA_MIN_PARTICIPANTS", 2),
        lock_ttl_ms=env_int("ARENA_LOCK_TTL_MS", 30_000),
    )
