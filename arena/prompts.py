from __future__ import annotations

from functools import lru_cache
from pathlib import Path

# arena/prompts.py -> arena/ -> project root
PROMPTS_DIR = Path(__file__).resolve().parents[1] / "prompts"


class PromptLoadError(RuntimeError):
    pass


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Read `prompts/<name>`, normalized to end with exactly one newline.

    Cached: narrators ask for the same handful of files on every event.
    """

    path = PROMPTS_DIR / name
    try:
        return path.read_text(encoding="utf-8").strip() + "\n"
    except FileNotFoundError as e:
        raise PromptLoadError(f"Prompt not found: {path}") from e
