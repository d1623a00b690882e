from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from state.game_state import GameState

SAFE_LOCATIONS: set[str] = {"town"}
DANGEROUS_LOCATIONS: set[str] = {"dungeon"}

DEFAULTS: dict[str, Any] = {
    "name": "Unknown",
    "age": 0,
    "health": 100,
    "mana": 0,
    "coins": 0,
    "level": 1,
    "reputation": 50,
    "location": "unknown",
    "time": 0,
    "weather": "sunny",
}

NARRATIVE_INSTRUCTIONS = (
    "You are the narrator for a text-based adventure game. "
    "The current state is given as structured JSON; read it to understand the situation. "
    "Write immersive descriptions, NPC dialogue and consequences that agree with that state. "
    "Never invent, change or contradict mechanics: health, mana, coins, skills, inventory, "
    "location and time are owned by the game engine. "
    "Create story and dialogue only."
)

Quantity = Annotated[int, Field(ge=0)]


class EncodedPlayer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = DEFAULTS["name"]
    age: int = Field(default=DEFAULTS["age"], ge=0, le=1000)
    health: int = Field(default=DEFAULTS["health"], ge=0, le=100)
    mana: int = Field(default=DEFAULTS["mana"], ge=0, le=100)
    coins: int = Field(default=DEFAULTS["coins"], ge=0)
    level: int = Field(default=DEFAULTS["level"], ge=1, le=100)
    reputation: int = Field(default=DEFAULTS["reputation"], ge=0, le=100)


class EncodedSkill(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: int = Field(default=0, ge=0, le=100)
    experience: float = Field(default=0, ge=0)


class EncodedWorld(BaseModel):
    model_config = ConfigDict(extra="forbid")

    location: str = Field(default=DEFAULTS["location"], min_length=1)
    conditions: dict[str, bool] = Field(default_factory=dict)
    time: int = Field(default=DEFAULTS["time"], ge=0)
    weather: str = DEFAULTS["weather"]


class EncodedState(BaseModel):
    model_config = ConfigDict(extra="forbid")

    player: EncodedPlayer
    skills: dict[str, EncodedSkill]
    inventory: dict[str, Quantity]
    world: EncodedWorld
    level: int = Field(default=DEFAULTS["level"], ge=1, le=100)
    reputation: int = Field(default=DEFAULTS["reputation"], ge=0, le=100)


def _value(value: Any, key: str) -> Any:
    return DEFAULTS[key] if value is None else value


def encode(state: GameState) -> dict:
    level = _value(state.level, "level")
    reputation = _value(state.reputation, "reputation")
    return {
        "player": {
            "name": state.player_name or DEFAULTS["name"],
            "age": _value(state.age, "age"),
            "health": _value(state.health, "health"),
            "mana": _value(state.mana, "mana"),
            "coins": _value(state.coins, "coins"),
            "level": level,
            "reputation": reputation,
        },
        "skills": {
            name: {"level": record.level, "experience": record.experience}
            for name, record in state.skills.items()
        },
        "inventory": dict(state.inventory),
        "world": {
            "location": state.location or DEFAULTS["location"],
            "conditions": dict(state.conditions),
            "time": _value(state.time, "time"),
            "weather": state.weather or DEFAULTS["weather"],
        },
        "level": level,
        "reputation": reputation,
    }


def decode(record: dict | None) -> GameState:
    record = record or {}
    player = record.get("player") if isinstance(record.get("player"), dict) else {}
    world = record.get("world") if isinstance(record.get("world"), dict) else {}

    state = GameState(
        player_name=_value(player.get("name"), "name"),
        age=_value(player.get("age"), "age"),
        health=_value(player.get("health"), "health"),
        mana=_value(player.get("mana"), "mana"),
        coins=_value(player.get("coins"), "coins"),
        level=_value(player.get("level"), "level"),
        reputation=_value(player.get("reputation"), "reputation"),
        location=_value(world.get("location"), "location"),
        time=_value(world.get("time"), "time"),
        weather=_value(world.get("weather"), "weather"),
    )

    skills = record.get("skills")
    if isinstance(skills, dict):
        for name, data in skills.items():
            if not isinstance(data, dict):
                continue
            state.set_skill(
                name,
                data.get("level") or 0,
                experience=data.get("experience") or 0,
            )

    inventory = record.get("inventory")
    if isinstance(inventory, dict):
        for name, quantity in inventory.items():
            state.add_item(name, quantity)

    conditions = world.get("conditions")
    if isinstance(conditions, dict):
        state.conditions = {name: bool(flag) for name, flag in conditions.items()}

    # Top-level copies win over the nested player block, matching encode().
    if record.get("level") is not None:
        state.level = record["level"]
    if record.get("reputation") is not None:
        state.reputation = record["reputation"]
    return state


def schema() -> dict:
    return EncodedState.model_json_schema()


def validate(record: Any) -> bool:
    try:
        EncodedState.model_validate(record)
    except ValidationError:
        return False
    return True


def derived_conditions(state: GameState) -> dict[str, bool]:
    time_of_day = (state.time or 0) % 1440
    reputation = _value(state.reputation, "reputation")
    return {
        "safe": state.location in SAFE_LOCATIONS,
        "dangerous": state.location in DANGEROUS_LOCATIONS,
        "dark": state.location in DANGEROUS_LOCATIONS,
        "daytime": 360 <= time_of_day < 1080,
        "nighttime": time_of_day >= 1080 or time_of_day < 360,
        "hostile": reputation < 30,
        "friendly": reputation > 70,
    }


def for_narrative_generator(state: GameState) -> dict:
    return {
        "current_state": encode(state),
        "derived_conditions": derived_conditions(state),
        "schema": schema(),
        "instructions": NARRATIVE_INSTRUCTIONS,
    }
