from __future__ import annotations

from enum import StrEnum


class Stage(StrEnum):
    OPENING = "OPENING"
    MID_BATTLE = "MID_BATTLE"
    FINAL_SHOWDOWN = "FINAL_SHOWDOWN"


# Alive/total ratio thresholds. Above OPENING_RATIO is the opening, at or below
# SHOWDOWN_RATIO is the final showdown, anything in between is mid-battle.
OPENING_RATIO = 0.7
SHOWDOWN_RATIO = 0.3


def classify_stage(alive_count: int, total_count: int) -> Stage:
    """Map the surviving share of the roster to a battle stage."""

    if total_count < 1:
        raise ValueError("total_count must be >= 1")

    ratio = alive_count / total_count
    if ratio > OPENING_RATIO:
        return Stage.OPENING
    if ratio > SHOWDOWN_RATIO:
        return Stage.MID_BATTLE
    return Stage.FINAL_SHOWDOWN
