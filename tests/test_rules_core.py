import pytest

from rules.core import DRAW_LOG_LIMIT, RandomSource, chance, pick, uniform, weighted_pick


def test_deterministic_draws_with_seed() -> None:
    first = RandomSource(seed=1234)
    second = RandomSource(seed=1234)

    assert chance(first, 0.5) == chance(second, 0.5)
    assert uniform(first, 0.8, 1.2) == uniform(second, 0.8, 1.2)
    assert pick(first, ["a", "b", "c"]) == pick(second, ["a", "b", "c"])


def test_draw_logging() -> None:
    source = RandomSource(seed=42)

    flag = chance(source, 0.7, label="weather_persists")
    value = uniform(source, 0.5, 1.0, label="quest_progress")

    assert len(source.draw_log) == 2
    first, second = source.draw_log

    assert first["kind"] == "chance"
    assert first["result"] is flag
    assert first["label"] == "weather_persists"
    assert first["probability"] == 0.7

    assert second["kind"] == "uniform"
    assert second["result"] == value
    assert 0.5 <= value < 1.0


def test_chance_extremes() -> None:
    source = RandomSource(seed=7)
    assert all(chance(source, 1.0) for _ in range(20))
    assert not any(chance(source, 0.0) for _ in range(20))


def test_weighted_pick_single_weight_wins() -> None:
    source = RandomSource(seed=3)
    options = [("monster_spawn", 0.0), ("quest_event", 1.0), ("economic_event", 0.0)]
    assert weighted_pick(source, options) == "quest_event"


def test_pick_rejects_empty() -> None:
    with pytest.raises(ValueError):
        pick(RandomSource(seed=1), [])


def test_reseed_restarts_sequence() -> None:
    source = RandomSource(seed=99)
    first = [uniform(source, 0, 1) for _ in range(3)]
    source.reseed(99)
    assert not source.draw_log
    assert source.draw_count == 0
    assert [uniform(source, 0, 1) for _ in range(3)] == first


def test_draw_log_keeps_latest_draws() -> None:
    source = RandomSource(seed=5)
    for index in range(DRAW_LOG_LIMIT + 30):
        chance(source, 0.5, label=f"draw_{index}")

    assert len(source.draw_log) == DRAW_LOG_LIMIT
    assert source.draw_count == DRAW_LOG_LIMIT + 30
    assert source.draw_log[-1]["label"] == f"draw_{DRAW_LOG_LIMIT + 29}"

    start = source.draw_count
    uniform(source, 0, 1, label="after")
    assert [draw["label"] for draw in source.draws_since(start)] == ["after"]
    assert source.draws_since(source.draw_count) == []
