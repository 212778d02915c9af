from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

T = TypeVar("T")


class SamplingSource(Protocol):
    """Source of every probabilistic choice the engine makes.

    Tests supply scripted implementations so rounds are fully deterministic.
    """

    def random(self) -> float:  # pragma: no cover
        ...

    def choice(self, seq: Sequence[T]) -> T:  # pragma: no cover
        ...


@dataclass(slots=True)
class RandomSource:
    """`random.Random`-backed source. Pass a seed for reproducible battles."""

    seed: int | None = None
    _rng: random.Random = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._rng = random.Random(self.seed)

    def random(self) -> float:
        return self._rng.random()

    def choice(self, seq: Sequence[T]) -> T:
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return self._rng.choice(seq)


def new_seed() -> int:
    # Same range the room store uses when it mints seeds.
    return random.SystemRandom().randint(1, 2**31 - 1)


def source_for_round(*, seed: int, round: int) -> RandomSource:
    """Derive a per-round source so a restarted loop replays the same draws for a given round."""

    return RandomSource(seed=seed * 1_000_003 + round)
