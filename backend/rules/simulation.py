from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any

from rules.core import RandomSource, chance, pick, uniform, weighted_pick
from state.game_state import CORE_SKILLS, GameState

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 1440
MINUTES_PER_WEEK = 10080
SIMULATION_HISTORY_LIMIT = 50

SAFE_LOCATION = "town"
DANGEROUS_LOCATION = "dungeon"
SHELTERED_LOCATIONS: set[str] = {"town", "dungeon", "castle"}

WEATHER_STATES: tuple[str, ...] = ("sunny", "cloudy", "rain", "storm")
ADVERSE_WEATHER: set[str] = {"rain", "storm"}
WEATHER_PERSISTENCE = 0.7

WORLD_EVENT_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("monster_spawn", 0.3),
    ("quest_event", 0.4),
    ("economic_event", 0.3),
)
MONSTER_POOLS: dict[str, tuple[str, ...]] = {
    "dungeon": ("goblin", "skeleton", "spider"),
    "wilderness": ("wolf", "bear", "bandit"),
    "town": ("thief", "pickpocket"),
}
DEFAULT_MONSTERS: tuple[str, ...] = ("creature",)

PRICE_BANDS: dict[str, tuple[float, float]] = {
    "sword": (0.8, 1.2),
    "potion": (0.9, 1.1),
    "gold": (0.95, 1.05),
}
MARKET_EVENT_CHANCE = 0.1
MARKET_EVENTS: tuple[str, ...] = ("sale", "shortage", "surplus", "new_item")

SKILL_DECAY_FACTORS: dict[str, float] = {"low": 0.10, "medium": 0.05, "high": 0.0}
REPUTATION_DECAY_FACTOR = 0.05


@dataclass(frozen=True)
class SimulationResult:
    kind: str
    effects: dict[str, bool] = field(default_factory=dict)
    new_time: int | None = None
    new_age: int | None = None
    health_change: int | None = None
    mana_change: int | None = None
    reputation_change: int | None = None
    new_weather: str | None = None
    safety_level: str | None = None
    shop_prices: str | None = None
    event_type: str | None = None
    monster_type: str | None = None
    quest_progress: dict | None = None
    price_modifiers: dict[str, float] | None = None
    market_event: str | None = None
    skill_changes: dict[str, int] | None = None

    def as_dict(self) -> dict:
        data: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is not None:
                data[item.name] = value
        return data


def is_daytime(time: int) -> bool:
    hour = (time % MINUTES_PER_DAY) / MINUTES_PER_HOUR
    return 6 <= hour < 18


def is_nighttime(time: int) -> bool:
    return not is_daytime(time)


def is_exposed(location: str | None) -> bool:
    return (location or SAFE_LOCATION) not in SHELTERED_LOCATIONS


class EnvironmentSimulator:
    """Deterministic and seeded-random projections of world changes.

    Every ``simulate_*`` method reads the state and returns a
    ``SimulationResult``; none of them writes to the state. Applying a
    result is the caller's decision.
    """

    def __init__(self, random_source: RandomSource | None = None) -> None:
        self.random_source = random_source or RandomSource()
        self.history: deque[dict] = deque(maxlen=SIMULATION_HISTORY_LIMIT)

    def simulate_time_passage(self, state: GameState, duration: int) -> SimulationResult:
        current_time = state.time or 0
        new_time = current_time + duration
        effects = {"time_advanced": True}

        was_day = is_daytime(current_time)
        now_day = is_daytime(new_time)
        if was_day != now_day:
            effects["day_night_transition"] = True
            effects["shops_closed"] = not now_day
            effects["guards_patrolling"] = not now_day

        new_age = None
        days = duration // MINUTES_PER_DAY
        if days > 0:
            effects["age_increased"] = True
            new_age = (state.age or 0) + days

        health_change = 0
        healing = duration // MINUTES_PER_HOUR
        if healing > 0:
            effects["natural_healing"] = True
            health_change = min(healing, 100 - _health(state))

        result = SimulationResult(
            kind="time_passage",
            effects=effects,
            new_time=new_time,
            new_age=new_age,
            health_change=health_change,
            mana_change=0,
            reputation_change=0,
        )
        return self._record(result)

    def simulate_weather(self, state: GameState) -> SimulationResult:
        current = state.weather or WEATHER_STATES[0]
        if chance(self.random_source, WEATHER_PERSISTENCE, label="weather_persists"):
            new_weather = current
        else:
            new_weather = pick(self.random_source, WEATHER_STATES, label="weather")

        effects = {"weather_changed": True}
        health_change = 0
        if is_exposed(state.location) and new_weather in ADVERSE_WEATHER:
            effects["movement_penalty"] = True
            effects["clothing_wet"] = True
            health_change = -2
            if new_weather == "storm":
                effects["dangerous"] = True
                health_change = -5

        result = SimulationResult(
            kind="weather_change",
            effects=effects,
            new_weather=new_weather,
            health_change=health_change,
        )
        return self._record(result)

    def simulate_npc_behavior(self, state: GameState) -> SimulationResult:
        time = state.time or 0
        location = state.location or SAFE_LOCATION
        reputation = _reputation(state)
        effects = {"npc_behavior_changed": True}
        safety_level = "medium"

        if location == SAFE_LOCATION:
            if is_nighttime(time):
                effects["guards_patrolling"] = True
                safety_level = "high"
            else:
                effects["guards_patrolling"] = False

            if reputation > 70:
                effects["guards_hostile"] = True
                safety_level = "low"
            elif reputation < 30:
                effects["guards_friendly"] = True
                safety_level = "high"

        shop_prices = None
        if location == SAFE_LOCATION and is_daytime(time):
            effects["merchants_available"] = True
            shop_prices = "discounted" if reputation > 60 else "normal"
        else:
            effects["merchants_available"] = False

        result = SimulationResult(
            kind="npc_behavior",
            effects=effects,
            safety_level=safety_level,
            shop_prices=shop_prices,
        )
        return self._record(result)

    def simulate_world_events(self, state: GameState) -> SimulationResult:
        location = state.location or SAFE_LOCATION
        event_type = weighted_pick(self.random_source, WORLD_EVENT_WEIGHTS, label="world_event")
        effects = {"world_event": True}
        monster_type = None
        quest_progress = None
        price_modifiers = None

        if event_type == "monster_spawn":
            effects["monster_spawn"] = True
            pool = MONSTER_POOLS.get(location, DEFAULT_MONSTERS)
            monster_type = pick(self.random_source, pool, label="monster_type")
        elif event_type == "quest_event":
            effects["quest_event"] = True
            quest_progress = {
                "quest": "dragon_slayer",
                "progress": uniform(self.random_source, 0.5, 1.0, label="quest_progress"),
                "stage": "final_battle",
            }
        elif event_type == "economic_event":
            effects["economic_event"] = True
            price_modifiers = self._price_modifiers()

        result = SimulationResult(
            kind="world_event",
            effects=effects,
            event_type=event_type,
            monster_type=monster_type,
            quest_progress=quest_progress,
            price_modifiers=price_modifiers,
        )
        return self._record(result)

    def simulate_economy(self, state: GameState) -> SimulationResult:
        location = state.location or SAFE_LOCATION
        demand = self.demand(location, state.time or 0)
        price_modifiers = {
            item: modifier * demand for item, modifier in self._price_modifiers().items()
        }

        effects = {"economic_changes": True}
        market_event = None
        if chance(self.random_source, MARKET_EVENT_CHANCE, label="market_event"):
            effects["market_event"] = True
            market_event = pick(self.random_source, MARKET_EVENTS, label="market_event_type")

        result = SimulationResult(
            kind="economic_change",
            effects=effects,
            price_modifiers=price_modifiers,
            market_event=market_event,
        )
        return self._record(result)

    def simulate_skill_decay(self, state: GameState, duration: int) -> SimulationResult:
        decay_rate = duration / MINUTES_PER_WEEK
        effects = {"skill_decay": True}
        skill_changes: dict[str, int] = {}

        for name in CORE_SKILLS:
            level = state.skill_level(name) or 0
            factor = SKILL_DECAY_FACTORS.get(state.skill_usage(name), SKILL_DECAY_FACTORS["low"])
            decay = int(level * decay_rate * factor)
            if decay > 0:
                skill_changes[name] = -decay
            else:
                effects["skill_maintained"] = True
                skill_changes[name] = 0

        result = SimulationResult(kind="skill_decay", effects=effects, skill_changes=skill_changes)
        return self._record(result)

    def simulate_health_effects(self, state: GameState, duration: int) -> SimulationResult:
        effects: dict[str, bool] = {}
        health_change = 0
        health = _health(state)

        if duration > 0:
            effects["hunger_increased"] = True
            health_change -= int(duration / MINUTES_PER_HOUR * 0.5)
            effects["fatigue_increased"] = True
            health_change -= int(duration / 120 * 0.3)

        if state.location == SAFE_LOCATION:
            effects["natural_healing"] = True
            health_change += min(duration // MINUTES_PER_HOUR, 100 - health)

        if is_exposed(state.location) and state.weather in ADVERSE_WEATHER:
            effects["weather_damage"] = True
            health_change -= duration // 30

        result = SimulationResult(kind="health_effects", effects=effects, health_change=health_change)
        return self._record(result)

    def simulate_reputation_effects(self, state: GameState, duration: int) -> SimulationResult:
        effects: dict[str, bool] = {}
        reputation = _reputation(state)
        reputation_change = 0

        decay = int(reputation * (duration / MINUTES_PER_WEEK) * REPUTATION_DECAY_FACTOR)
        if decay > 0:
            effects["reputation_decay"] = True
            reputation_change = -decay

        if state.location == SAFE_LOCATION:
            effects["reputation_recovery"] = True
            reputation_change += min(duration // MINUTES_PER_DAY, 100 - reputation)

        result = SimulationResult(
            kind="reputation_effects",
            effects=effects,
            reputation_change=reputation_change,
        )
        return self._record(result)

    def simulation_report(self, state: GameState) -> dict:
        """Run every simulation at zero duration on a scratch simulator.

        The scratch copy has its own random source, so a report never
        consumes this simulator's draws or adds to its history.
        """
        preview = EnvironmentSimulator(RandomSource(seed=self.random_source.seed))
        report = {
            "time_effects": preview.simulate_time_passage(state, 0).as_dict(),
            "weather_effects": preview.simulate_weather(state).as_dict(),
            "npc_effects": preview.simulate_npc_behavior(state).as_dict(),
            "world_events": preview.simulate_world_events(state).as_dict(),
            "economic_changes": preview.simulate_economy(state).as_dict(),
            "health_effects": preview.simulate_health_effects(state, 0).as_dict(),
            "reputation_effects": preview.simulate_reputation_effects(state, 0).as_dict(),
        }
        categories = list(report)
        return {
            **report,
            "total_effects": len(categories),
            "effect_categories": categories,
            "simulation_complexity": _complexity(len(categories)),
        }

    def validate_simulation(self, result: SimulationResult) -> bool:
        try:
            if result.new_time is not None and result.new_time < 0:
                return False
            if result.health_change is not None and not 0 <= 100 + result.health_change <= 100:
                return False
            if result.mana_change is not None and not 0 <= 50 + result.mana_change <= 100:
                return False
            if (
                result.reputation_change is not None
                and not 0 <= 50 + result.reputation_change <= 100
            ):
                return False
        except Exception:
            logger.exception("Simulation result could not be validated: %r", result)
            return False
        return True

    def demand(self, location: str, time: int) -> float:
        if location == SAFE_LOCATION and is_daytime(time):
            return 1.2
        if location == DANGEROUS_LOCATION:
            return 0.8
        return 1.0

    def _price_modifiers(self) -> dict[str, float]:
        return {
            item: uniform(self.random_source, low, high, label=f"price_{item}")
            for item, (low, high) in PRICE_BANDS.items()
        }

    def _record(self, result: SimulationResult) -> SimulationResult:
        self.history.append(
            {
                "kind": result.kind,
                "result": result,
                "timestamp": datetime.now(timezone.utc),
            }
        )
        logger.debug("Simulated %s: %s", result.kind, result.effects)
        return result


def _health(state: GameState) -> int:
    return 100 if state.health is None else state.health


def _reputation(state: GameState) -> int:
    return 50 if state.reputation is None else state.reputation


def _complexity(count: int) -> str:
    if count > 5:
        return "high"
    if count > 3:
        return "medium"
    return "low"
