from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gm_os.schemas import ENVIRONMENT_ACTION_KINDS, HYBRID_ACTION_KINDS, PLAYER_ACTION_KINDS


class TransitionKind(str, Enum):
    ACTION_DRIVEN = "action-driven"
    ENVIRONMENT_DRIVEN = "environment-driven"
    HYBRID = "hybrid"
    UNKNOWN = "unknown"
    ERROR = "error"


@dataclass(frozen=True)
class TransitionEntry:
    description: str
    requires_narrative: bool
    requires_simulation: bool
    confidence: float
    action_kinds: frozenset[str]
    examples: list[str]
    validation: str


TRANSITION_REGISTRY: dict[TransitionKind, TransitionEntry] = {
    TransitionKind.ACTION_DRIVEN: TransitionEntry(
        description="Player-driven action requiring narrative interpretation",
        requires_narrative=True,
        requires_simulation=False,
        confidence=0.9,
        action_kinds=PLAYER_ACTION_KINDS,
        examples=["combat", "dialogue", "spellcasting", "item_usage", "exploration_choice"],
        validation="Must have a player choice and a narrative outcome",
    ),
    TransitionKind.ENVIRONMENT_DRIVEN: TransitionEntry(
        description="World-driven change requiring deterministic simulation",
        requires_narrative=False,
        requires_simulation=True,
        confidence=0.9,
        action_kinds=ENVIRONMENT_ACTION_KINDS,
        examples=["time_passage", "weather_change", "shop_hours", "guard_patrols", "monster_spawns"],
        validation="Must be automatic and deterministic",
    ),
    TransitionKind.HYBRID: TransitionEntry(
        description="Action requiring both narrative and mechanical processing",
        requires_narrative=True,
        requires_simulation=True,
        confidence=0.8,
        action_kinds=HYBRID_ACTION_KINDS,
        examples=["skill_check", "quest_completion", "reputation_change", "level_up", "item_crafting"],
        validation="Must have a player choice or a required skill and a mechanical outcome",
    ),
    TransitionKind.UNKNOWN: TransitionEntry(
        description="Unrecognised action; no processing path",
        requires_narrative=False,
        requires_simulation=False,
        confidence=0.0,
        action_kinds=frozenset(),
        examples=[],
        validation="Rejected",
    ),
}

# Deterministic routine that handles each kind.
SIMULATION_ROUTINES: dict[str, str] = {
    "time_passage": "simulate_time_passage",
    "day_night_cycle": "simulate_time_passage",
    "weather_change": "simulate_weather",
    "npc_behavior": "simulate_npc_behavior",
    "shop_hours": "simulate_npc_behavior",
    "guard_patrols": "simulate_npc_behavior",
    "world_events": "simulate_world_events",
    "monster_spawns": "simulate_world_events",
    "economic_changes": "simulate_economy",
    "economic_fluctuation": "simulate_economy",
    "skill_decay": "simulate_skill_decay",
    "health_effects": "simulate_health_effects",
    "reputation_effects": "simulate_reputation_effects",
    "skill_check": "roll_skill_check",
    "combat": "resolve_combat",
    "level_up": "process_level_up",
}
DEFAULT_ROUTINE = "process_action"


def validate_transition_registry() -> list[str]:
    errors: list[str] = []
    seen: dict[str, TransitionKind] = {}
    for kind in TransitionKind:
        if kind is TransitionKind.ERROR:
            continue
        if kind not in TRANSITION_REGISTRY:
            errors.append(f"{kind.value} has no registry entry")
    for kind, entry in TRANSITION_REGISTRY.items():
        if not 0 <= entry.confidence <= 1:
            errors.append(f"{kind.value} has invalid confidence {entry.confidence}")
        if not isinstance(entry.examples, list):
            errors.append(f"{kind.value} examples must be list")
        for example in entry.examples:
            if example not in entry.action_kinds:
                errors.append(f"{kind.value} example {example} is not one of its action kinds")
        for action_kind in entry.action_kinds:
            if action_kind in seen:
                errors.append(
                    f"{action_kind} belongs to both {seen[action_kind].value} and {kind.value}"
                )
            seen[action_kind] = kind
    for action_kind, routine in SIMULATION_ROUTINES.items():
        if action_kind not in seen:
            errors.append(f"routine {routine} is bound to unregistered kind {action_kind}")
    return errors
