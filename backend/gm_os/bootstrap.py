from __future__ import annotations

import logging
import os

from gm_os.classifier import TransitionClassifier
from gm_os.manager import HybridStateManager, SimulationHook
from gm_os.transitions import validate_transition_registry
from llm.client import NarrativeGenerator, OllamaNarrativeClient, ScriptedNarrativeGenerator
from rules.core import RandomSource
from rules.registry import RuleRegistry
from rules.simulation import EnvironmentSimulator
from rules.validation import ConsistencyValidator
from state.diff import StateDiffer
from state.game_state import GameState

logger = logging.getLogger(__name__)

NARRATIVE_BACKENDS = {"scripted", "ollama"}


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def apply_new_time(state: GameState, value: int) -> None:
    state.time = max(0, value)


def apply_new_age(state: GameState, value: int) -> None:
    state.age = max(0, value)


def apply_health_change(state: GameState, value: int) -> None:
    state.health = _clamp(state.health + value)


def apply_mana_change(state: GameState, value: int) -> None:
    state.mana = _clamp(state.mana + value)


def apply_reputation_change(state: GameState, value: int) -> None:
    state.reputation = _clamp(state.reputation + value)


def apply_new_weather(state: GameState, value: str) -> None:
    state.weather = value


def apply_skill_changes(state: GameState, value: dict[str, int]) -> None:
    for name, delta in value.items():
        if delta:
            state.set_skill(name, _clamp(state.skill_level(name) + delta))


SIMULATION_APPLY_HOOKS: dict[str, SimulationHook] = {
    "new_time": apply_new_time,
    "new_age": apply_new_age,
    "health_change": apply_health_change,
    "mana_change": apply_mana_change,
    "reputation_change": apply_reputation_change,
    "new_weather": apply_new_weather,
    "skill_changes": apply_skill_changes,
}


def build_narrative_generator(backend: str | None = None) -> NarrativeGenerator:
    backend = (backend or os.getenv("NARRATIVE_BACKEND") or "scripted").strip().lower()
    if backend not in NARRATIVE_BACKENDS:
        raise ValueError(f"Unknown narrative backend: {backend}")
    if backend == "ollama":
        return OllamaNarrativeClient()
    return ScriptedNarrativeGenerator()


def build_manager(
    *,
    state: GameState | None = None,
    narrative: NarrativeGenerator | None = None,
    seed: int | None = None,
    apply_simulation: bool = False,
    dev_mode: bool = False,
) -> HybridStateManager:
    errors = validate_transition_registry()
    if errors:
        raise RuntimeError(f"Transition registry is inconsistent: {errors}")

    random_source = RandomSource(seed=seed)
    return HybridStateManager(
        state or GameState(),
        classifier=TransitionClassifier(),
        registry=RuleRegistry(),
        simulator=EnvironmentSimulator(random_source),
        validator=ConsistencyValidator(),
        differ=StateDiffer(),
        narrative=narrative or ScriptedNarrativeGenerator(),
        random_source=random_source,
        apply_hooks=SIMULATION_APPLY_HOOKS if apply_simulation else None,
        dev_mode=dev_mode,
    )


def build_manager_from_env(state: GameState | None = None) -> HybridStateManager:
    seed_value = os.getenv("SIMULATION_SEED")
    seed = int(seed_value) if seed_value else None
    manager = build_manager(
        state=state,
        narrative=build_narrative_generator(),
        seed=seed,
        apply_simulation=_env_flag("APPLY_SIMULATION"),
        dev_mode=_env_flag("DEV_MODE"),
    )
    logger.info(
        "Built manager (narrative=%s, seed=%s, apply_simulation=%s)",
        type(manager.narrative).__name__,
        seed,
        bool(manager.apply_hooks),
    )
    return manager
