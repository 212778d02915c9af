from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal

from arena.agents.narrator import NarrativeContext, Narrator, parse_narrative
from arena.core.sampling import SamplingSource
from arena.narratives import pick_template, render_template

logger = logging.getLogger(__name__)

DEFAULT_NARRATIVE_TIMEOUT_S = 4.0


@dataclass(frozen=True, slots=True)
class ResolvedNarrative:
    message: str
    source: Literal["provider", "fallback"]


def fallback_message(*, ctx: NarrativeContext, sampler: SamplingSource) -> str:
    template = pick_template(kind=ctx.kind, stage=ctx.stage, sampler=sampler)
    return render_template(template, victim=ctx.subject, attacker=ctx.attacker)


async def resolve_narrative(
    *,
    ctx: NarrativeContext,
    sampler: SamplingSource,
    narrator: Narrator | None = None,
    timeout_s: float = DEFAULT_NARRATIVE_TIMEOUT_S,
) -> ResolvedNarrative:
    """Narrate one intent, never failing and never waiting longer than `timeout_s`.

    Provider output may still contain `{victim}`/`{attacker}` placeholders; they are
    substituted the same way as for templates.
    """

    if narrator is not None:
        try:
            text = await asyncio.wait_for(narrator.generate(ctx), timeout=timeout_s)
            message = render_template(parse_narrative(text), victim=ctx.subject, attacker=ctx.attacker)
            return ResolvedNarrative(message=message, source="provider")
        except asyncio.TimeoutError:
            logger.warning("Narrative provider timed out after %.1fs for %s", timeout_s, ctx.kind.value)
        except Exception as e:
            logger.warning("Narrative provider failed for %s: %s", ctx.kind.value, e)

    return ResolvedNarrative(message=fallback_message(ctx=ctx, sampler=sampler), source="fallback")
