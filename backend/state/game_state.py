from __future__ import annotations

import copy
from dataclasses import dataclass, field

CORE_SKILLS: tuple[str, ...] = ("Strength", "Magic", "Dexterity", "Intelligence", "Charisma")
SKILL_USAGE_LEVELS: set[str] = {"low", "medium", "high"}


@dataclass
class SkillRecord:
    level: int = 0
    experience: float = 0
    max_level: int = 0
    usage: str = "low"


@dataclass(frozen=True)
class StateSnapshot:
    health: int
    mana: int
    coins: int
    location: str
    time: int
    reputation: int
    age: int
    skills: dict[str, int] = field(default_factory=dict)
    inventory: dict[str, int] = field(default_factory=dict)
    conditions: dict[str, bool] = field(default_factory=dict)

    def skill_level(self, name: str) -> int:
        return self.skills.get(name, 0)

    def item_count(self, name: str) -> int:
        return self.inventory.get(name, 0)

    def as_dict(self) -> dict:
        return {
            "health": self.health,
            "mana": self.mana,
            "coins": self.coins,
            "location": self.location,
            "time": self.time,
            "reputation": self.reputation,
            "age": self.age,
            "skills": dict(self.skills),
            "inventory": dict(self.inventory),
            "conditions": dict(self.conditions),
        }


@dataclass
class GameState:
    """Live character and world state owned by the game loop.

    The pipeline reads a fixed projection of it (``snapshot``) and writes only
    coins and the current skill's experience.
    """

    player_name: str = "Unknown"
    age: int = 0
    health: int = 100
    mana: int = 0
    coins: int = 0
    level: int = 1
    reputation: int = 50
    evil: int = 0
    location: str = "town"
    time: int = 0
    weather: str = "sunny"
    paused: bool = False
    rebirths: int = 0
    current_job: str | None = None
    current_skill: str | None = None
    skills: dict[str, SkillRecord] = field(default_factory=dict)
    inventory: dict[str, int] = field(default_factory=dict)
    conditions: dict[str, bool] = field(default_factory=dict)

    def skill_level(self, name: str) -> int:
        record = self.skills.get(name)
        return record.level if record else 0

    def skill_experience(self, name: str) -> float:
        record = self.skills.get(name)
        return record.experience if record else 0

    def skill_usage(self, name: str) -> str:
        record = self.skills.get(name)
        return record.usage if record else "low"

    def skill_levels(self) -> dict[str, int]:
        return {name: record.level for name, record in self.skills.items()}

    def set_skill(
        self,
        name: str,
        level: int,
        *,
        experience: float | None = None,
        usage: str | None = None,
    ) -> SkillRecord:
        record = self.skills.setdefault(name, SkillRecord())
        record.level = level
        record.max_level = max(record.max_level, level)
        if experience is not None:
            record.experience = experience
        if usage is not None:
            if usage not in SKILL_USAGE_LEVELS:
                raise ValueError(f"Unknown skill usage: {usage}")
            record.usage = usage
        return record

    def add_skill_experience(self, name: str, amount: float) -> None:
        record = self.skills.setdefault(name, SkillRecord())
        record.experience += amount

    def item_count(self, name: str) -> int:
        return self.inventory.get(name, 0)

    def add_item(self, name: str, quantity: int = 1) -> None:
        self.inventory[name] = self.inventory.get(name, 0) + quantity

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            health=self.health,
            mana=self.mana,
            coins=self.coins,
            location=self.location,
            time=self.time,
            reputation=self.reputation,
            age=self.age,
            skills=self.skill_levels(),
            inventory=dict(self.inventory),
            conditions=dict(self.conditions),
        )

    def clone(self) -> GameState:
        return copy.deepcopy(self)
