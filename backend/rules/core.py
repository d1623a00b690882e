from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass, field
from typing import Sequence, TypeVar

T = TypeVar("T")

DRAW_LOG_LIMIT = 200


@dataclass
class RandomSource:
    seed: int | None = None
    draw_log: deque[dict] = field(default_factory=lambda: deque(maxlen=DRAW_LOG_LIMIT))
    draw_count: int = field(default=0, init=False)
    rng: random.Random = field(init=False)

    def __post_init__(self) -> None:
        self.rng = random.Random(self.seed)

    def reseed(self, seed: int | None) -> None:
        self.seed = seed
        self.rng = random.Random(seed)
        self.draw_log.clear()
        self.draw_count = 0

    def draws_since(self, count: int) -> list[dict]:
        """Logged draws made after the source had made ``count`` draws."""
        made = self.draw_count - count
        if made <= 0:
            return []
        return list(self.draw_log)[-made:]


def _log_draw(
    source: RandomSource,
    *,
    kind: str,
    result,
    label: str | None,
    **details,
) -> None:
    entry = {"kind": kind, "result": result, "label": label}
    entry.update(details)
    source.draw_log.append(entry)
    source.draw_count += 1


def chance(source: RandomSource, probability: float, *, label: str | None = None) -> bool:
    draw = source.rng.random()
    result = draw < probability
    _log_draw(source, kind="chance", result=result, label=label, draw=draw, probability=probability)
    return result


def uniform(source: RandomSource, low: float, high: float, *, label: str | None = None) -> float:
    result = source.rng.random() * (high - low) + low
    _log_draw(source, kind="uniform", result=result, label=label, low=low, high=high)
    return result


def pick(source: RandomSource, options: Sequence[T], *, label: str | None = None) -> T:
    if not options:
        raise ValueError("Cannot pick from an empty sequence.")
    result = options[int(source.rng.random() * len(options))]
    _log_draw(source, kind="pick", result=result, label=label, options=list(options))
    return result


def weighted_pick(
    source: RandomSource,
    weighted: Sequence[tuple[T, float]],
    *,
    label: str | None = None,
) -> T:
    if not weighted:
        raise ValueError("Cannot pick from an empty sequence.")
    draw = source.rng.random()
    cumulative = 0.0
    result = weighted[0][0]
    for option, weight in weighted:
        cumulative += weight
        if draw < cumulative:
            result = option
            break
    _log_draw(source, kind="weighted_pick", result=result, label=label, draw=draw)
    return result
