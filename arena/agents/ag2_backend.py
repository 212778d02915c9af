from __future__ import annotations

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from autogen import ConversableAgent

from arena.agents.autogen_config import llm_config_from_env
from arena.agents.base import AgentAction

# AG2 calls block a worker thread until the endpoint answers. At most MAX_CONCURRENT_CALLS run
# at once; further calls fail fast and the caller falls back to templates.
MAX_CONCURRENT_CALLS = 4
_EXECUTOR = ThreadPoolExecutor(max_workers=MAX_CONCURRENT_CALLS, thread_name_prefix="ag2-chat")
_SLOTS = threading.BoundedSemaphore(MAX_CONCURRENT_CALLS)


class AgentBusyError(RuntimeError):
    pass


def _extract_last_content(messages: object) -> str:
    """Extract the last message content from AG2 chat history."""

    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


@dataclass(slots=True)
class Ag2ChatAgent:
    """AG2 agent wrapper using the documented `autogen` API.

    AG2's `run()` is blocking, so the chat runs in a worker thread. Callers bound it with a
    timeout; an abandoned call finishes in the background and its result is discarded.

    Environment variables supported:
    - OPENAI_MODEL
    - OPENAI_API_KEY (optional if OPENAI_BASE_URL is set)
    - OPENAI_BASE_URL (for OpenAI-compatible servers like Ollama, e.g. http://127.0.0.1:11434/v1)
    """

    name: str
    model: str

    def _run_blocking(self, *, prompt: str, system_prompt: str) -> str:
        llm_config = llm_config_from_env(default_model=self.model)

        agent = ConversableAgent(
            name=self.name,
            system_message=system_prompt,
            llm_config=llm_config,
            human_input_mode="NEVER",
        )

        result = agent.run(message=prompt, max_turns=1)
        result.process()

        text = _extract_last_content(list(result.messages))
        if not text:
            # Fallback: attempt to use summary if provided.
            summary = result.summary
            if isinstance(summary, str):
                text = summary.strip()
        return text

    async def propose_action(self, *, prompt: str, system_prompt: str) -> AgentAction:
        if not _SLOTS.acquire(blocking=False):
            raise AgentBusyError(f"All {MAX_CONCURRENT_CALLS} AG2 workers are busy")

        def _call() -> str:
            # Released when the thread finishes, even if the awaiting side already gave up.
            try:
                return self._run_blocking(prompt=prompt, system_prompt=system_prompt)
            finally:
                _SLOTS.release()

        text = await asyncio.get_running_loop().run_in_executor(_EXECUTOR, _call)
        return AgentAction(kind="chat", content=text, metadata={"model": self.model})
