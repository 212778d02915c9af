from __future__ import annotations

import os
from typing import cast

from arena.agents.ag2_backend import Ag2ChatAgent
from arena.agents.autogen_config import DEFAULT_NARRATOR_MODEL
from arena.agents.base import Agent
from arena.agents.narrator import AgentNarrator, Narrator


def create_default_agent(*, name: str) -> Agent:
    """Create the default LLM-backed agent.

    Currently uses AG2/autogen and reads model configuration from env.
    """

    model = os.environ.get("OPENAI_MODEL", DEFAULT_NARRATOR_MODEL)
    return cast(Agent, Ag2ChatAgent(name=name, model=model))


def create_default_narrator(*, enabled: bool) -> Narrator | None:
    """LLM narrator when enabled; None makes every event use the template pool."""

    if not enabled:
        return None
    return AgentNarrator(agent=create_default_agent(name="arena-announcer"))
