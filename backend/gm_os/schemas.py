from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Union, get_args

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    JsonValue,
    Tag,
    TypeAdapter,
    ValidationError,
)


class ActionError(ValueError):
    pass


PlayerActionKind = Literal[
    "combat",
    "dialogue",
    "spellcasting",
    "item_usage",
    "exploration_choice",
    "npc_interaction",
    "quest_choice",
]
EnvironmentActionKind = Literal[
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
]
HybridActionKind = Literal[
    "skill_check",
    "quest_completion",
    "reputation_change",
    "level_up",
    "item_crafting",
    "trading",
    "negotiation",
]

PLAYER_ACTION_KINDS: frozenset[str] = frozenset(get_args(PlayerActionKind))
ENVIRONMENT_ACTION_KINDS: frozenset[str] = frozenset(get_args(EnvironmentActionKind))
HYBRID_ACTION_KINDS: frozenset[str] = frozenset(get_args(HybridActionKind))

ChoiceName = Annotated[str, Field(min_length=1)]


class ActionBase(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    kind: str = Field(min_length=1)
    player_choice: bool | ChoiceName | None = None
    automatic: bool | None = None
    domain: str | None = None
    name: str | None = None
    target: str | None = None
    skill_required: str | None = None
    minimum_level: int | None = Field(default=None, ge=0)
    skill_levels: dict[str, int] | None = None
    weapon: str | None = None
    spell: str | None = None
    mana: int | None = Field(default=None, ge=0)
    mana_cost: int | None = Field(default=None, ge=0)
    item: str | None = None
    quantity: int | None = Field(default=None, ge=1)
    duration: int | None = Field(default=None, ge=0)
    time_required: int | None = Field(default=None, ge=0)
    reputation_required: int | None = Field(default=None, ge=0, le=100)
    health_change: float | int | None = None
    mana_change: float | int | None = None
    coin_change: float | int | None = None
    metadata: dict[str, JsonValue] | None = None

    def payload(self) -> dict[str, Any]:
        """Fields the caller actually set, without the narrative-only flags."""
        data = self.model_dump(exclude_none=True)
        data.pop("player_choice", None)
        return data


class PlayerAction(ActionBase):
    kind: PlayerActionKind


class EnvironmentAction(ActionBase):
    kind: EnvironmentActionKind


class HybridAction(ActionBase):
    kind: HybridActionKind


class UnknownAction(ActionBase):
    pass


def action_variant(kind: str | None) -> str:
    if kind in PLAYER_ACTION_KINDS:
        return "player"
    if kind in ENVIRONMENT_ACTION_KINDS:
        return "environment"
    if kind in HYBRID_ACTION_KINDS:
        return "hybrid"
    return "unknown"


def _discriminate(value: Any) -> str:
    if isinstance(value, Mapping):
        return action_variant(value.get("kind"))
    return action_variant(getattr(value, "kind", None))


Action = Annotated[
    Union[
        Annotated[PlayerAction, Tag("player")],
        Annotated[EnvironmentAction, Tag("environment")],
        Annotated[HybridAction, Tag("hybrid")],
        Annotated[UnknownAction, Tag("unknown")],
    ],
    Discriminator(_discriminate),
]


class ComplexAction(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    kind: Literal["complex"] = "complex"
    steps: list[Action] = Field(default_factory=list)
    player_choice: bool | ChoiceName | None = None
    metadata: dict[str, JsonValue] | None = None


ACTION_ADAPTER: TypeAdapter = TypeAdapter(Action)


def parse_action(data: Mapping[str, Any]) -> ActionBase | ComplexAction:
    if not isinstance(data, Mapping):
        raise ActionError("Action must be a mapping.")
    try:
        if "steps" in data or data.get("kind") == "complex":
            return ComplexAction.model_validate(dict(data))
        return ACTION_ADAPTER.validate_python(dict(data))
    except ValidationError as exc:
        raise ActionError(f"Invalid action: {exc}") from exc
