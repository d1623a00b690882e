import pytest

from rules.core import RandomSource
from rules.simulation import (
    SIMULATION_HISTORY_LIMIT,
    EnvironmentSimulator,
    SimulationResult,
    is_daytime,
)
from state.game_state import GameState


class FixedSource(RandomSource):
    """Random source whose underlying generator replays fixed draws."""

    def __init__(self, draws: list[float]) -> None:
        super().__init__(seed=0)
        self.rng = _Replay(draws)


class _Replay:
    def __init__(self, draws: list[float]) -> None:
        self._draws = list(draws)

    def random(self) -> float:
        return self._draws.pop(0)


def test_time_passage_advances_time_exactly() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    state = GameState(time=500)
    for duration in (0, 1, 59, 60, 1440, 10080):
        assert simulator.simulate_time_passage(state, duration).new_time == 500 + duration


def test_is_daytime_boundaries() -> None:
    for time in range(0, 2 * 1440, 7):
        hour = (time % 1440) / 60
        assert is_daytime(time) == (6 <= hour < 18)
    assert is_daytime(360)
    assert not is_daytime(359)
    assert not is_daytime(1080)


def test_day_to_night_transition_closes_shops() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    result = simulator.simulate_time_passage(GameState(time=1070), 20)

    assert result.new_time == 1090
    assert result.effects["day_night_transition"] is True
    assert result.effects["shops_closed"] is True
    assert result.effects["guards_patrolling"] is True


def test_aging_uses_whole_days() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    result = simulator.simulate_time_passage(GameState(age=25, time=100), 3028)

    assert result.new_age == 27
    assert result.effects["age_increased"] is True


def test_short_passage_does_not_age() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    result = simulator.simulate_time_passage(GameState(age=25), 30)
    assert result.new_age is None
    assert "new_age" not in result.as_dict()


def test_natural_healing_capped_by_missing_health() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    assert simulator.simulate_time_passage(GameState(health=97), 600).health_change == 3
    assert simulator.simulate_time_passage(GameState(health=50), 600).health_change == 10


def test_low_usage_skill_decays_ten_percent_per_week() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    state = GameState()
    state.set_skill("Strength", 20, usage="low")
    state.set_skill("Magic", 20, usage="medium")
    state.set_skill("Dexterity", 20, usage="high")

    result = simulator.simulate_skill_decay(state, 10080)

    assert result.skill_changes["Strength"] == -2
    assert result.skill_changes["Magic"] == -1
    assert result.skill_changes["Dexterity"] == 0
    assert set(result.skill_changes) == {"Strength", "Magic", "Dexterity", "Intelligence", "Charisma"}


def test_reputation_decays_outside_town() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    result = simulator.simulate_reputation_effects(GameState(reputation=80, location="wilderness"), 10080)
    assert result.reputation_change == -4


def test_reputation_recovers_in_town() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    result = simulator.simulate_reputation_effects(GameState(reputation=80, location="town"), 10080)
    # -4 decay, +7 recovery for seven days
    assert result.reputation_change == 3
    assert result.effects["reputation_recovery"] is True


def test_health_effects_in_exposed_storm() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    state = GameState(location="wilderness", weather="storm")
    result = simulator.simulate_health_effects(state, 120)
    # hunger -1, fatigue 0, weather -4
    assert result.health_change == -5


def test_health_effects_heal_in_town() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    result = simulator.simulate_health_effects(GameState(location="town", health=90), 240)
    # hunger -2, fatigue 0, healing +4
    assert result.health_change == 2


def test_npc_behavior_town_night_and_reputation() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))

    night = simulator.simulate_npc_behavior(GameState(location="town", time=1200, reputation=50))
    assert night.effects["guards_patrolling"] is True
    assert night.safety_level == "high"
    assert night.effects["merchants_available"] is False

    feared = simulator.simulate_npc_behavior(GameState(location="town", time=600, reputation=80))
    assert feared.effects["guards_hostile"] is True
    assert feared.safety_level == "low"
    assert feared.shop_prices == "discounted"

    liked = simulator.simulate_npc_behavior(GameState(location="town", time=600, reputation=20))
    assert liked.effects["guards_friendly"] is True
    assert liked.safety_level == "high"
    assert liked.shop_prices == "normal"

    away = simulator.simulate_npc_behavior(GameState(location="dungeon", time=600))
    assert away.safety_level == "medium"
    assert away.effects["merchants_available"] is False


def test_weather_persists_on_low_draw() -> None:
    simulator = EnvironmentSimulator(FixedSource([0.1]))
    result = simulator.simulate_weather(GameState(weather="cloudy", location="town"))
    assert result.new_weather == "cloudy"
    assert result.health_change == 0


def test_storm_in_wilderness_is_dangerous() -> None:
    # 0.9 breaks persistence, 0.8 picks index 3 (storm)
    simulator = EnvironmentSimulator(FixedSource([0.9, 0.8]))
    result = simulator.simulate_weather(GameState(weather="sunny", location="wilderness"))

    assert result.new_weather == "storm"
    assert result.effects["movement_penalty"] is True
    assert result.effects["clothing_wet"] is True
    assert result.effects["dangerous"] is True
    assert result.health_change == -5


def test_rain_in_wilderness_wets_clothing() -> None:
    simulator = EnvironmentSimulator(FixedSource([0.9, 0.6]))
    result = simulator.simulate_weather(GameState(weather="sunny", location="wilderness"))

    assert result.new_weather == "rain"
    assert result.effects["clothing_wet"] is True
    assert "dangerous" not in result.effects
    assert result.health_change == -2


def test_storm_in_town_is_harmless() -> None:
    simulator = EnvironmentSimulator(FixedSource([0.9, 0.8]))
    result = simulator.simulate_weather(GameState(weather="sunny", location="town"))
    assert result.new_weather == "storm"
    assert result.health_change == 0


def test_world_event_monster_pool() -> None:
    # 0.1 selects monster_spawn, 0.5 picks the middle dungeon monster
    simulator = EnvironmentSimulator(FixedSource([0.1, 0.5]))
    result = simulator.simulate_world_events(GameState(location="dungeon"))
    assert result.event_type == "monster_spawn"
    assert result.monster_type == "skeleton"


def test_world_event_unknown_location_uses_default_monster() -> None:
    simulator = EnvironmentSimulator(FixedSource([0.2, 0.9]))
    result = simulator.simulate_world_events(GameState(location="swamp"))
    assert result.monster_type == "creature"


def test_world_event_quest_progress_range() -> None:
    simulator = EnvironmentSimulator(FixedSource([0.5, 0.0]))
    result = simulator.simulate_world_events(GameState())
    assert result.event_type == "quest_event"
    assert result.quest_progress == {"quest": "dragon_slayer", "progress": 0.5, "stage": "final_battle"}


def test_economy_applies_demand() -> None:
    simulator = EnvironmentSimulator(FixedSource([0.5, 0.5, 0.5, 0.9]))
    result = simulator.simulate_economy(GameState(location="dungeon", time=600))

    assert result.price_modifiers["sword"] == pytest.approx(0.8)
    assert result.price_modifiers["potion"] == pytest.approx(0.8)
    assert result.market_event is None


def test_economy_market_event() -> None:
    simulator = EnvironmentSimulator(FixedSource([0.5, 0.5, 0.5, 0.05, 0.0]))
    result = simulator.simulate_economy(GameState(location="town", time=600))

    assert result.effects["market_event"] is True
    assert result.market_event == "sale"
    assert result.price_modifiers["gold"] == pytest.approx(1.2)


def test_simulation_is_reproducible_with_seed() -> None:
    state = GameState(location="wilderness")
    first = EnvironmentSimulator(RandomSource(seed=2024))
    second = EnvironmentSimulator(RandomSource(seed=2024))
    for _ in range(5):
        assert first.simulate_weather(state) == second.simulate_weather(state)
        assert first.simulate_world_events(state) == second.simulate_world_events(state)


def test_simulations_do_not_mutate_state() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=5))
    state = GameState(time=100, health=40, location="wilderness", weather="rain")
    before = state.clone()
    simulator.simulate_time_passage(state, 3000)
    simulator.simulate_health_effects(state, 3000)
    simulator.simulate_weather(state)
    assert state == before


def test_validate_simulation_bounds() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    assert simulator.validate_simulation(SimulationResult(kind="x", new_time=0, health_change=0))
    assert not simulator.validate_simulation(SimulationResult(kind="x", new_time=-1))
    assert not simulator.validate_simulation(SimulationResult(kind="x", health_change=5))
    assert not simulator.validate_simulation(SimulationResult(kind="x", health_change=-101))
    assert not simulator.validate_simulation(SimulationResult(kind="x", reputation_change=51))
    assert not simulator.validate_simulation(SimulationResult(kind="x", mana_change=-51))


def test_validate_simulation_fails_closed() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    assert simulator.validate_simulation(SimulationResult(kind="x", new_time="soon")) is False


def test_history_is_bounded() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    state = GameState()
    for _ in range(SIMULATION_HISTORY_LIMIT + 10):
        simulator.simulate_time_passage(state, 1)
    assert len(simulator.history) == SIMULATION_HISTORY_LIMIT


def test_simulation_report_lists_every_category() -> None:
    simulator = EnvironmentSimulator(RandomSource(seed=1))
    report = simulator.simulation_report(GameState())
    assert report["total_effects"] == 7
    assert report["simulation_complexity"] == "high"
    assert "weather_effects" in report["effect_categories"]
    assert report["time_effects"]["new_time"] == 0


def test_simulation_report_leaves_source_and_history_alone() -> None:
    reported = EnvironmentSimulator(RandomSource(seed=11))
    untouched = EnvironmentSimulator(RandomSource(seed=11))
    state = GameState(location="wilderness")

    reported.simulation_report(state)

    assert len(reported.history) == 0
    assert reported.random_source.draw_count == 0
    assert reported.simulate_world_events(state) == untouched.simulate_world_events(state)
