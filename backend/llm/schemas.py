from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, JsonValue


class NarrativeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    action: dict[str, JsonValue]
    encoded_state: dict[str, JsonValue]
    rules: dict[str, JsonValue]
    character_traits: dict[str, JsonValue]
    story_context: dict[str, JsonValue] = Field(default_factory=dict)
    constraints: dict[str, JsonValue] = Field(default_factory=dict)
    mechanical_result: dict[str, JsonValue] | None = None


class NarrativeResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    narrative: str
    choices: list[str] = Field(default_factory=list)
    state_changes: dict[str, JsonValue] = Field(default_factory=dict)
    confidence: float = Field(ge=0, le=1)
    time_context: int | None = Field(default=None, ge=0)
