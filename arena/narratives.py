from __future__ import annotations

from arena.core.events import BattleEventType
from arena.core.sampling import SamplingSource
from arena.core.stage import Stage

# Stand-in attacker for eliminations nobody gets credit for.
ARENA_NAME = "THE ARENA"

PLACEHOLDERS = ("{victim}", "{attacker}", "{winner}")

_OPENING = (
    "The arena crackles with electric anticipation as {victim} steps into a hidden voltage trap!",
    "{attacker} makes the first move, catching {victim} completely off guard with a devastating ambush!",
    "The chaos begins! {victim} is overwhelmed by the arena's initial surge of energy!",
    "{attacker} wastes no time, eliminating {victim} with ruthless efficiency!",
    "A trap springs! {victim} never saw it coming as the floor gives way beneath them!",
)

_MID_BATTLE = (
    "{attacker} and {victim} clash in an epic duel, but only one walks away!",
    "The arena shifts violently! {victim} loses their footing and falls to {attacker}'s strike!",
    "{victim} thought they were safe in the shadows, but {attacker} had other plans!",
    "A massive explosion rocks the arena! When the smoke clears, {victim} is no more!",
    "{attacker} executes a perfect ambush, sending {victim} into the void!",
    "The walls close in! {victim} is crushed while {attacker} barely escapes!",
    "{victim}'s luck finally runs out as {attacker} delivers the finishing blow!",
)

_SHOWDOWN = (
    "In a heart-stopping moment, {attacker} lands the critical hit on {victim}!",
    "The final warriors clash! {victim} gives everything but falls to {attacker}'s superior skill!",
    "With the arena crumbling around them, {attacker} makes a desperate lunge and takes down {victim}!",
    "One final strike! {attacker} emerges victorious as {victim} collapses!",
    "The crowd roars as {attacker} defeats {victim} in an unforgettable showdown!",
)

_REVIVAL = (
    "IMPOSSIBLE! {victim} rises from the ashes like a phoenix!",
    "A glitch in the matrix! {victim} has been restored to the arena!",
    "The arena grants mercy! {victim} gets a second chance at glory!",
    "Against all odds, {victim} claws their way back from elimination!",
    "A miracle resurrection! {victim} is back in the fight!",
)

_VICTORY = (
    "CHAMPION CROWNED! {winner} has survived the arena and claims the prize!",
    "The dust settles and only {winner} stands. The prize is theirs!",
    "Last one standing! {winner} conquers the arena and takes the crown!",
)

TEMPLATES: dict[tuple[BattleEventType, Stage], tuple[str, ...]] = {
    (BattleEventType.ELIMINATION, Stage.OPENING): _OPENING,
    (BattleEventType.ELIMINATION, Stage.MID_BATTLE): _MID_BATTLE,
    (BattleEventType.ELIMINATION, Stage.FINAL_SHOWDOWN): _SHOWDOWN,
    **{(BattleEventType.REVIVE, stage): _REVIVAL for stage in Stage},
    **{(BattleEventType.WINNER, stage): _VICTORY for stage in Stage},
}


def pick_template(*, kind: BattleEventType, stage: Stage, sampler: SamplingSource) -> str:
    pool = TEMPLATES.get((kind, stage))
    if not pool:
        raise KeyError(f"No narrative templates for {kind.value}/{stage.value}")
    return sampler.choice(pool)


def render_template(template: str, *, victim: str, attacker: str | None = None) -> str:
    """Substitute every placeholder. `{winner}` is the subject of a WINNER line, same as `{victim}`."""

    return (
        template.replace("{victim}", victim)
        .replace("{winner}", victim)
        .replace("{attacker}", attacker or ARENA_NAME)
    )


def has_placeholders(text: str) -> bool:
    return any(p in text for p in PLACEHOLDERS)
