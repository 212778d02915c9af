from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from autogen import LLMConfig

from arena.config import env_float, env_int

DEFAULT_NARRATOR_MODEL = "gpt-4o-mini"


@dataclass(frozen=True, slots=True)
class NarratorLLMSettings:
    model: str
    base_url: str | None
    api_key: str | None
    # Announcer lines should vary between events, hence the high default.
    temperature: float = 0.9
    max_tokens: int = 120


def narrator_llm_settings_from_env(*, default_model: str = DEFAULT_NARRATOR_MODEL) -> NarratorLLMSettings:
    return NarratorLLMSettings(
        model=os.environ.get("OPENAI_MODEL", default_model),
        # Ollama: http://127.0.0.1:11434/v1
        base_url=os.environ.get("OPENAI_BASE_URL"),
        api_key=os.environ.get("OPENAI_API_KEY"),
        temperature=env_float("ARENA_NARRATOR_TEMPERATURE", 0.9),
        max_tokens=env_int("ARENA_NARRATOR_MAX_TOKENS", 120),
    )


def llm_config_from_env(*, default_model: str = DEFAULT_NARRATOR_MODEL) -> LLMConfig:
    s = narrator_llm_settings_from_env(default_model=default_model)

    # Local OpenAI-compatible servers ignore the key, the client still wants one.
    api_key = s.api_key or ("ollama" if s.base_url else None)
    if not api_key:
        raise RuntimeError("Narrator needs OPENAI_API_KEY or OPENAI_BASE_URL")

    entry: dict[str, Any] = {
        "model": s.model,
        "api_key": api_key,
        "temperature": s.temperature,
        "max_tokens": s.max_tokens,
    }
    if s.base_url:
        entry["base_url"] = s.base_url

    return LLMConfig(config_list=[entry])
