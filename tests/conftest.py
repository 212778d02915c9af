from __future__ import annotations

import os
from collections.abc import Generator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

import fakeredis
import pytest

T = TypeVar("T")


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    In CI, we *don't* auto-load `.env` by default, so integration tests that require
    a live LLM endpoint stay skipped unless explicitly opted-in.
    """

    # Opt-in locally with: ARENA_LOAD_DOTENV_FOR_TESTS=1
    if os.environ.get("CI") and os.environ.get("ARENA_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)

    # If using a local OpenAI-compatible endpoint, some clients require a key string.
    if os.environ.get("OPENAI_BASE_URL") and not os.environ.get("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = "ollama"


@dataclass
class ScriptedSource:
    """Deterministic sampling source.

    `rolls` feed `random()` and `picks` are indexes fed to `choice()`. Once exhausted,
    rolls default to `default_roll` (0.99 = nothing probabilistic fires) and picks to 0.
    """

    rolls: list[float] = field(default_factory=list)
    picks: list[int] = field(default_factory=list)
    default_roll: float = 0.99

    def random(self) -> float:
        return self.rolls.pop(0) if self.rolls else self.default_roll

    def choice(self, seq: Sequence[T]) -> T:
        idx = self.picks.pop(0) if self.picks else 0
        return seq[idx % len(seq)]


@pytest.fixture()
def scripted() -> type[ScriptedSource]:
    return ScriptedSource


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def make_room(r: fakeredis.FakeRedis):
    """Create a room with `n` joined participants, optionally already ACTIVE."""

    from arena.room_store import create_room, join_room, require_room, start_battle

    def _make(n: int, *, start: bool = True, seed: int = 1234):
        state = create_room(r=r, name="Neon Grave", seed=seed)
        for i in range(n):
            join_room(r=r, room_id=state.room_id, participant_id=f"p{i}", username=f"user{i}")
        if start:
            start_battle(r=r, room_id=state.room_id)
        return require_room(r=r, room_id=state.room_id)

    return _make


@pytest.fixture()
def client_and_redis() -> Generator[tuple, None, None]:
    """FastAPI TestClient wired to fakeredis and a zero-delay scheduler without an LLM."""

    from fastapi.testclient import TestClient

    from arena.api.deps import get_redis
    from arena.main import app
    from arena.scheduler import SchedulerConfig
    from arena.singleton import init_scheduler, reset_scheduler_for_tests

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    reset_scheduler_for_tests()
    init_scheduler(
        r=r,
        config=SchedulerConfig(initial_delay_s=0, min_delay_ms=0, max_delay_ms=0, step_ms=0),
        use_env_narrator=False,
    )

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
    reset_scheduler_for_tests()
