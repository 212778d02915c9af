from __future__ import annotations

MIN_ROUND_DELAY_MS = 60_000
MAX_ROUND_DELAY_MS = 180_000
ROUND_DELAY_STEP_MS = 5_000


def round_delay_ms(
    alive_count: int,
    *,
    min_delay_ms: int = MIN_ROUND_DELAY_MS,
    max_delay_ms: int = MAX_ROUND_DELAY_MS,
    step_ms: int = ROUND_DELAY_STEP_MS,
) -> int:
    """Delay before the next round. More survivors means faster rounds, bounded both ways."""

    reduction = min(max(alive_count, 0) * step_ms, max_delay_ms - min_delay_ms)
    return max(min_delay_ms, min(max_delay_ms, max_delay_ms - reduction))
