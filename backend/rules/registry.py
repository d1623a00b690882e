from __future__ import annotations

import copy
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, JsonValue

logger = logging.getLogger(__name__)


class RuleError(ValueError):
    pass


@dataclass(frozen=True)
class ActionRule:
    skill_required: str | None = None
    minimum_level: int = 0
    requires_weapon: bool = False
    weapon_skills: dict[str, str] = field(default_factory=dict)
    requires_mana: bool = False
    spell_costs: dict[str, int] = field(default_factory=dict)
    spell_requirements: dict[str, dict] = field(default_factory=dict)
    success_threshold: float | None = None
    critical_hit_chance: float | None = None
    critical_multiplier: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return copy.deepcopy(dataclasses.asdict(self))


COMBAT_RULES: dict[str, Any] = {
    "requires_weapon": True,
    "skill_required": "Strength",
    "minimum_level": 5,
    "damage_calculation": "skill_level + weapon_damage + random_factor",
    "success_threshold": 0.6,
    "weapon_types": ["sword", "bow", "staff", "dagger", "axe", "mace"],
    "weapon_skills": {
        "sword": "Strength",
        "bow": "Dexterity",
        "staff": "Magic",
        "dagger": "Dexterity",
        "axe": "Strength",
        "mace": "Strength",
    },
    "critical_hit_chance": 0.1,
    "critical_multiplier": 2.0,
}

MAGIC_RULES: dict[str, Any] = {
    "requires_mana": True,
    "skill_required": "Magic",
    "minimum_level": 10,
    "spell_types": ["healing", "damage", "utility", "buff", "debuff"],
    "spell_costs": {"healing": 10, "damage": 15, "utility": 5, "buff": 8, "debuff": 12},
    "spell_requirements": {
        "healing": {"skill": "Magic", "level": 5},
        "damage": {"skill": "Magic", "level": 8},
        "utility": {"skill": "Magic", "level": 3},
        "buff": {"skill": "Magic", "level": 6},
        "debuff": {"skill": "Magic", "level": 10},
    },
}

TIME_RULES: dict[str, Any] = {
    "shops_close_at_night": True,
    "guards_patrol_at_night": True,
    "fast_travel_requires_day": True,
    "night_time": "18:00-06:00",
    "shop_hours": {"open": "08:00", "close": "18:00", "closed_days": ["sunday"]},
    "guard_patrols": {"night": True, "day": False, "frequency": "every 2 hours"},
    "time_effects": {
        "fatigue": "increases_over_time",
        "hunger": "increases_over_time",
        "healing": "natural_regeneration",
    },
}

REPUTATION_RULES: dict[str, Any] = {
    "high_evil_affects_npc": True,
    "guards_attack_above": 70,
    "shops_refuse_service_above": 90,
    "reputation_ranges": {
        "heroic": {"min": 80, "max": 100},
        "good": {"min": 60, "max": 79},
        "neutral": {"min": 40, "max": 59},
        "evil": {"min": 0, "max": 39},
    },
    "npc_behavior": {
        "guards": {"attack_threshold": 70, "friendly_threshold": 30},
        "merchants": {"refuse_service_threshold": 90, "price_modifier_threshold": 60},
        "citizens": {"hostile_threshold": 80, "friendly_threshold": 20},
    },
}

LOCATION_RULES: dict[str, Any] = {
    "dungeon": {
        "requires_light": True,
        "danger_level": "high",
        "monster_spawn_rate": 0.3,
        "loot_rate": 0.2,
        "experience_multiplier": 1.5,
    },
    "town": {
        "safe": True,
        "has_shops": True,
        "has_inn": True,
        "has_guards": True,
        "danger_level": "none",
        "monster_spawn_rate": 0.0,
        "experience_multiplier": 1.0,
    },
    "wilderness": {
        "danger_level": "medium",
        "monster_spawn_rate": 0.1,
        "weather_effects": True,
        "experience_multiplier": 1.2,
    },
    "castle": {
        "requires_permission": True,
        "danger_level": "low",
        "monster_spawn_rate": 0.0,
        "has_nobles": True,
        "experience_multiplier": 1.1,
    },
}

SKILL_RULES: dict[str, Any] = {
    "Strength": {"combat": 5, "climbing": 10, "lifting": 15, "intimidation": 8},
    "Magic": {"spellcasting": 3, "enchantment": 8, "divination": 12, "healing": 6},
    "Dexterity": {"stealth": 5, "acrobatics": 8, "lockpicking": 10, "archery": 6},
    "Intelligence": {"research": 5, "crafting": 8, "strategy": 10, "memory": 6},
    "Charisma": {"persuasion": 5, "leadership": 10, "intimidation": 8, "performance": 6},
    "synergies": {
        "Strength + Dexterity": "combat",
        "Magic + Intelligence": "spellcasting",
        "Dexterity + Intelligence": "crafting",
        "Charisma + Intelligence": "diplomacy",
    },
}

_COMBAT_BASE = ActionRule(
    skill_required=COMBAT_RULES["skill_required"],
    minimum_level=COMBAT_RULES["minimum_level"],
    requires_weapon=True,
    weapon_skills=dict(COMBAT_RULES["weapon_skills"]),
    success_threshold=COMBAT_RULES["success_threshold"],
    critical_hit_chance=COMBAT_RULES["critical_hit_chance"],
    critical_multiplier=COMBAT_RULES["critical_multiplier"],
    details={"damage_calculation": COMBAT_RULES["damage_calculation"]},
)

_MAGIC_BASE = ActionRule(
    skill_required=MAGIC_RULES["skill_required"],
    minimum_level=MAGIC_RULES["minimum_level"],
    requires_mana=True,
    spell_costs=dict(MAGIC_RULES["spell_costs"]),
    spell_requirements=copy.deepcopy(MAGIC_RULES["spell_requirements"]),
)

_DETERMINISTIC = ActionRule(details={"deterministic": True})
_SKILL_CHECK = ActionRule(details={"outcome": "determined_by_code"})
_OPEN = ActionRule()

BUILTIN_ACTION_RULES: dict[str, dict[str, ActionRule]] = {
    "combat": {
        "combat": _COMBAT_BASE,
        "attack": _COMBAT_BASE,
        "defend": dataclasses.replace(
            _COMBAT_BASE, details={"damage_calculation": "reduced_damage"}
        ),
        "special_attack": dataclasses.replace(
            _COMBAT_BASE,
            details={**_COMBAT_BASE.details, "special_requirement": "rage_mode"},
        ),
    },
    "magic": {
        "spellcasting": _MAGIC_BASE,
        "cast_spell": _MAGIC_BASE,
        "enchant_item": dataclasses.replace(_MAGIC_BASE, details={"requires_materials": True}),
        "dispel_magic": dataclasses.replace(_MAGIC_BASE, minimum_level=15),
    },
    "dialogue": {
        "dialogue": _OPEN,
        "npc_interaction": _OPEN,
        "bargain": ActionRule(
            skill_required="Charisma",
            minimum_level=3,
            success_threshold=0.7,
            details={"reputation_modifier": True},
        ),
        "intimidate": ActionRule(
            skill_required="Charisma",
            minimum_level=5,
            success_threshold=0.6,
            details={"strength_bonus": True},
        ),
        "persuade": ActionRule(
            skill_required="Charisma",
            minimum_level=4,
            success_threshold=0.8,
            details={"intelligence_bonus": True},
        ),
    },
    "exploration": {
        "item_usage": _OPEN,
        "exploration_choice": _OPEN,
        "quest_choice": _OPEN,
    },
    "environment": {
        name: _DETERMINISTIC
        for name in (
            "time_passage",
            "weather_change",
            "npc_behavior",
            "world_events",
            "economic_changes",
            "shop_hours",
            "guard_patrols",
            "monster_spawns",
            "season_change",
            "day_night_cycle",
            "economic_fluctuation",
            "skill_decay",
            "health_effects",
            "reputation_effects",
        )
    },
    "skill": {
        name: _SKILL_CHECK
        for name in (
            "skill_check",
            "quest_completion",
            "reputation_change",
            "level_up",
            "item_crafting",
            "trading",
            "negotiation",
        )
    },
}

DOMAIN_BY_KIND: dict[str, str] = {
    "combat": "combat",
    "spellcasting": "magic",
    "dialogue": "dialogue",
    "npc_interaction": "dialogue",
    **{name: "exploration" for name in BUILTIN_ACTION_RULES["exploration"]},
    **{name: "environment" for name in BUILTIN_ACTION_RULES["environment"]},
    **{name: "skill" for name in BUILTIN_ACTION_RULES["skill"]},
}

LLM_SYSTEM_PROMPT = (
    "You are the narrator for a text-based adventure game. "
    "Follow these rules to stay consistent: "
    "1. Always check your narrative against the current game state. "
    "2. Make descriptions match the game mechanics. "
    "3. Use the provided rules to decide what is possible. "
    "4. Keep the story consistent across interactions. "
    "5. Tell the story; never change game mechanics. "
    "You create the story, the game engine handles the mechanics."
)

LLM_EXAMPLES: dict[str, str] = {
    "combat": "Player attacks dragon with sword - describe the combat outcome",
    "magic": "Player casts healing spell - describe the magical effects",
    "dialogue": "Player bargains with merchant - describe the negotiation",
}


class CustomRule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    domain: str = Field(min_length=1)
    name: str = Field(min_length=1)
    skill_required: str | None = None
    minimum_level: int = Field(default=0, ge=0, le=100)
    requires_weapon: bool = False
    weapon_skills: dict[str, str] = Field(default_factory=dict)
    requires_mana: bool = False
    spell_costs: dict[str, int] = Field(default_factory=dict)
    success_threshold: float | None = Field(default=None, ge=0, le=1)
    details: dict[str, JsonValue] = Field(default_factory=dict)


class RuleRegistry:
    """Immutable built-in rule tables plus an appendable custom table.

    Custom rules shadow built-in rules registered under the same domain and
    name; a later custom rule replaces an earlier one.
    """

    def __init__(self) -> None:
        self._custom: dict[str, dict[str, ActionRule]] = {}
        self.validation_metrics = {"total": 0, "passed": 0, "failed": 0}

    def combat_rules(self) -> dict:
        return copy.deepcopy(COMBAT_RULES)

    def magic_rules(self) -> dict:
        return copy.deepcopy(MAGIC_RULES)

    def time_rules(self) -> dict:
        return copy.deepcopy(TIME_RULES)

    def reputation_rules(self) -> dict:
        return copy.deepcopy(REPUTATION_RULES)

    def location_rules(self) -> dict:
        return copy.deepcopy(LOCATION_RULES)

    def skill_rules(self) -> dict:
        return copy.deepcopy(SKILL_RULES)

    def rule_for_action(self, domain: str | None, name: str | None) -> ActionRule | None:
        if not domain or not name:
            return None
        custom = self._custom.get(domain, {}).get(name)
        if custom is not None:
            return custom
        return BUILTIN_ACTION_RULES.get(domain, {}).get(name)

    def validate_action(self, action: Any, skill_levels: Mapping[str, int] | None = None) -> bool:
        self.validation_metrics["total"] += 1
        try:
            accepted = self._check_action(action, skill_levels or {})
        except Exception:
            logger.exception("Rule validation failed for action %r", action)
            accepted = False
        self.validation_metrics["passed" if accepted else "failed"] += 1
        return accepted

    def add_custom_rule(self, rule: CustomRule | Mapping[str, Any]) -> ActionRule:
        if not isinstance(rule, CustomRule):
            try:
                rule = CustomRule.model_validate(rule)
            except ValueError as exc:
                raise RuleError(f"Invalid custom rule: {exc}") from exc

        base = BUILTIN_ACTION_RULES.get(rule.domain, {}).get(rule.name)
        fields = rule.model_dump(exclude={"domain", "name"}, exclude_unset=True)
        if base is not None:
            if "details" in fields:
                fields["details"] = {**base.details, **fields["details"]}
            action_rule = dataclasses.replace(base, **fields)
        else:
            action_rule = ActionRule(**fields)

        self._custom.setdefault(rule.domain, {})[rule.name] = action_rule
        logger.info("Registered custom rule %s.%s", rule.domain, rule.name)
        return action_rule

    def custom_rules(self) -> dict[str, dict[str, dict]]:
        return {
            domain: {name: rule.as_dict() for name, rule in rules.items()}
            for domain, rules in self._custom.items()
        }

    def action_rules(self) -> dict[str, dict[str, dict]]:
        table = {
            domain: {name: rule.as_dict() for name, rule in rules.items()}
            for domain, rules in BUILTIN_ACTION_RULES.items()
        }
        for domain, rules in self.custom_rules().items():
            table.setdefault(domain, {}).update(rules)
        return table

    def rules_for_narrative(self) -> dict:
        return {
            "system_prompt": LLM_SYSTEM_PROMPT,
            "rules": {
                "combat": self.combat_rules(),
                "magic": self.magic_rules(),
                "time": self.time_rules(),
                "reputation": self.reputation_rules(),
                "location": self.location_rules(),
                "skills": self.skill_rules(),
                "actions": self.action_rules(),
            },
            "examples": dict(LLM_EXAMPLES),
        }

    def rule_metrics(self) -> dict:
        builtin_domains = ("combat", "magic", "dialogue", "time", "reputation", "location", "skills")
        custom_total = sum(len(rules) for rules in self._custom.values())
        total = self.validation_metrics["total"]
        return {
            "total_rules": sum(len(rules) for rules in BUILTIN_ACTION_RULES.values()) + custom_total,
            "rule_categories": len(builtin_domains),
            "custom_rules": custom_total,
            "coverage": {domain: 100 for domain in builtin_domains},
            "validations": dict(self.validation_metrics),
            "validation_rate": self.validation_metrics["passed"] / total if total else 0,
        }

    def reset_metrics(self) -> None:
        self.validation_metrics = {"total": 0, "passed": 0, "failed": 0}

    def _check_action(self, action: Any, skill_levels: Mapping[str, int]) -> bool:
        domain = resolve_domain(action)
        name = getattr(action, "name", None) or getattr(action, "kind", None)
        rule = self.rule_for_action(domain, name)
        if rule is None:
            logger.debug("No rule for %s.%s", domain, name)
            return False

        skill_required = rule.skill_required
        minimum_level = rule.minimum_level

        if domain == "combat" and rule.requires_weapon:
            weapon = getattr(action, "weapon", None)
            if not weapon or (rule.weapon_skills and weapon not in rule.weapon_skills):
                return False
            skill_required = rule.weapon_skills.get(weapon, skill_required)

        spell = getattr(action, "spell", None)
        if domain == "magic" and spell in rule.spell_requirements:
            requirement = rule.spell_requirements[spell]
            skill_required = requirement.get("skill", skill_required)
            minimum_level = requirement.get("level", minimum_level)

        if skill_required and minimum_level:
            stated = getattr(action, "skill_levels", None) or {}
            level = stated.get(skill_required, skill_levels.get(skill_required, 0))
            if level < minimum_level:
                return False

        mana = getattr(action, "mana", None)
        if domain == "magic" and rule.requires_mana and mana is not None:
            if mana < rule.spell_costs.get(spell, 0):
                return False

        return True


def resolve_domain(action: Any) -> str | None:
    domain = getattr(action, "domain", None)
    if domain:
        return domain
    kind = getattr(action, "kind", None)
    return DOMAIN_BY_KIND.get(kind, kind)
