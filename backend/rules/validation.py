from __future__ import annotations

import logging
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from state.game_state import CORE_SKILLS, GameState

logger = logging.getLogger(__name__)

TRANSITION_TOLERANCE = 0.01
SPELL_MANA_FLOOR = 10

# Narrative phrase -> item the player must be carrying.
ITEM_PHRASES: dict[str, str] = {
    "swing your sword": "sword",
    "draw your bow": "bow",
    "drink a potion": "potion",
}
SPELL_PHRASES: tuple[str, ...] = ("cast a spell",)

REPORT_DOMAINS: tuple[str, ...] = (
    "inventory",
    "location",
    "skills",
    "time",
    "reputation",
    "resources",
)


@dataclass(frozen=True)
class ValidationReport:
    overall: bool
    inventory: bool
    location: bool
    skills: bool
    time: bool
    reputation: bool
    resources: bool
    issues: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "overall": self.overall,
            "inventory": self.inventory,
            "location": self.location,
            "skills": self.skills,
            "time": self.time,
            "reputation": self.reputation,
            "resources": self.resources,
            "issues": list(self.issues),
        }


class ConsistencyValidator:
    """Checks live state, proposed actions and narrative output against fixed bounds.

    Checks return booleans. Failures are recorded as ``(category, type)``
    counters and never raise.
    """

    def __init__(self) -> None:
        self.total_validations = 0
        self.passed_validations = 0
        self.failed_validations = 0
        self.error_types: defaultdict[str, Counter] = defaultdict(Counter)
        self.last_errors: deque[tuple[str, str, str]] = deque(maxlen=20)

    def record_error(self, category: str, error_type: str, detail: Any = "") -> None:
        self.failed_validations += 1
        self.error_types[category][error_type] += 1
        self.last_errors.append((category, error_type, str(detail)))
        logger.debug("Validation error %s/%s %s", category, error_type, detail)

    def validate_inventory(self, state: GameState) -> bool:
        for item, quantity in state.inventory.items():
            if quantity < 0:
                self.record_error("inventory", "negative_quantity", item)
                return False
        return True

    def validate_location(self, state: GameState) -> bool:
        if not state.location:
            self.record_error("location", "empty_location")
            return False
        return True

    def validate_skills(self, state: GameState) -> bool:
        for name in (*CORE_SKILLS, *state.skills):
            level = state.skill_level(name) or 0
            if not 0 <= level <= 100:
                self.record_error("skills", "invalid_level", name)
                return False
        return True

    def validate_time(self, state: GameState) -> bool:
        if (state.time or 0) < 0:
            self.record_error("time", "negative_time")
            return False
        return True

    def validate_reputation(self, state: GameState) -> bool:
        reputation = 50 if state.reputation is None else state.reputation
        if not 0 <= reputation <= 100:
            self.record_error("reputation", "invalid_range", reputation)
            return False
        return True

    def validate_resources(self, state: GameState) -> bool:
        health = 100 if state.health is None else state.health
        if not 0 <= health <= 100:
            self.record_error("resources", "invalid_health", health)
            return False
        if not 0 <= (state.mana or 0) <= 100:
            self.record_error("resources", "invalid_mana", state.mana)
            return False
        if (state.coins or 0) < 0:
            self.record_error("resources", "negative_coins", state.coins)
            return False
        return True

    def validate_action_against_state(self, action: Any, state: GameState) -> bool:
        self.total_validations += 1
        try:
            accepted = self._check_action(action, state)
        except Exception as exc:
            logger.exception("Action validation raised for %r", action)
            self.record_error("action", "validation_error", exc)
            return False
        if accepted:
            self.passed_validations += 1
        return accepted

    def validate_state_transition(self, previous: Any, current: Any, action: Any) -> bool:
        try:
            for attribute, expected_field, error_type in (
                ("health", "health_change", "health_mismatch"),
                ("mana", "mana_change", "mana_mismatch"),
                ("coins", "coin_change", "coin_mismatch"),
            ):
                delta = getattr(action, expected_field, None)
                if delta is None:
                    continue
                expected = getattr(previous, attribute) + delta
                if abs(expected - getattr(current, attribute)) > TRANSITION_TOLERANCE:
                    self.record_error("transition", error_type)
                    return False
        except Exception as exc:
            logger.exception("State transition validation raised")
            self.record_error("transition", "validation_error", exc)
            return False
        return True

    def validate_narrative_output(self, output: Mapping[str, Any], state: GameState) -> bool:
        try:
            narrative = output.get("narrative")
            if isinstance(narrative, str):
                text = narrative.lower()
                for phrase, item in ITEM_PHRASES.items():
                    if phrase in text and state.item_count(item) <= 0:
                        self.record_error("narrative_output", "impossible_action", f"{item}_usage")
                        return False
                if any(phrase in text for phrase in SPELL_PHRASES) and (
                    (state.mana or 0) < SPELL_MANA_FLOOR
                ):
                    self.record_error("narrative_output", "impossible_action", "spellcasting")
                    return False

            state_changes = output.get("state_changes") or {}
            for name in ("health", "mana"):
                value = state_changes.get(name)
                if value is not None and not 0 <= value <= 100:
                    self.record_error("narrative_output", f"invalid_{name}", value)
                    return False

            time_context = output.get("time_context")
            if time_context is not None and time_context < (state.time or 0):
                self.record_error("narrative_output", "time_inconsistency", time_context)
                return False
        except Exception as exc:
            logger.exception("Narrative output validation raised")
            self.record_error("narrative_output", "validation_error", exc)
            return False
        return True

    def report(self, state: GameState) -> ValidationReport:
        checks = {
            "inventory": self.validate_inventory,
            "location": self.validate_location,
            "skills": self.validate_skills,
            "time": self.validate_time,
            "reputation": self.validate_reputation,
            "resources": self.validate_resources,
        }
        results = {domain: check(state) for domain, check in checks.items()}
        issues = [domain for domain in REPORT_DOMAINS if not results[domain]]
        return ValidationReport(overall=not issues, issues=issues, **results)

    def consistency_metrics(self, actions: Iterable[Mapping[str, Any]]) -> dict:
        flags = [bool(action.get("valid")) for action in actions]
        valid = sum(flags)
        return {
            "total_actions": len(flags),
            "valid_actions": valid,
            "invalid_actions": len(flags) - valid,
            "consistency_rate": valid / len(flags) if flags else 0,
        }

    def metrics(self) -> dict:
        return {
            "total_validations": self.total_validations,
            "passed_validations": self.passed_validations,
            "failed_validations": self.failed_validations,
            "error_types": {category: dict(counts) for category, counts in self.error_types.items()},
        }

    def reset(self) -> None:
        self.total_validations = 0
        self.passed_validations = 0
        self.failed_validations = 0
        self.error_types.clear()
        self.last_errors.clear()

    def _check_action(self, action: Any, state: GameState) -> bool:
        name = getattr(action, "name", None) or getattr(action, "kind", None)

        item = getattr(action, "item", None)
        if name in {"use_item", "item_usage"} and item:
            required = getattr(action, "quantity", None) or 1
            if state.item_count(item) < required:
                self.record_error("action", "insufficient_item", item)
                return False

        skill = getattr(action, "skill_required", None)
        minimum = getattr(action, "minimum_level", None)
        if skill and minimum:
            if (state.skill_level(skill) or 0) < minimum:
                self.record_error("action", "insufficient_skill", skill)
                return False

        mana_cost = getattr(action, "mana_cost", None)
        if name in {"cast_spell", "spellcasting"} and mana_cost:
            if (state.mana or 0) < mana_cost:
                self.record_error("action", "insufficient_mana", mana_cost)
                return False

        time_required = getattr(action, "time_required", None)
        if time_required and (state.time or 0) < time_required:
            self.record_error("action", "insufficient_time", time_required)
            return False

        reputation_required = getattr(action, "reputation_required", None)
        if reputation_required:
            reputation = 50 if state.reputation is None else state.reputation
            if reputation < reputation_required:
                self.record_error("action", "insufficient_reputation", reputation_required)
                return False

        return True
