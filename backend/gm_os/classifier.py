from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from gm_os.schemas import action_variant
from gm_os.transitions import (
    DEFAULT_ROUTINE,
    SIMULATION_ROUTINES,
    TRANSITION_REGISTRY,
    TransitionKind,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    kind: TransitionKind
    requires_narrative: bool
    requires_simulation: bool
    description: str
    confidence: float

    def as_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "requires_narrative": self.requires_narrative,
            "requires_simulation": self.requires_simulation,
            "description": self.description,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ComplexClassification(Classification):
    steps: list[Classification] = field(default_factory=list)

    def as_dict(self) -> dict:
        data = super().as_dict()
        data["steps"] = [step.as_dict() for step in self.steps]
        return data


ERROR_CLASSIFICATION = Classification(
    kind=TransitionKind.ERROR,
    requires_narrative=False,
    requires_simulation=False,
    description="Processing failed",
    confidence=0.0,
)


def _from_registry(kind: TransitionKind) -> Classification:
    entry = TRANSITION_REGISTRY[kind]
    return Classification(
        kind=kind,
        requires_narrative=entry.requires_narrative,
        requires_simulation=entry.requires_simulation,
        description=entry.description,
        confidence=entry.confidence,
    )


class TransitionClassifier:
    def __init__(self) -> None:
        self.counts: Counter[str] = Counter()

    def classify(self, action: Any, state: Any = None) -> Classification:
        kind = self._resolve_kind(action)
        self.counts[kind.value] += 1
        self.counts["total"] += 1
        if kind is TransitionKind.UNKNOWN:
            logger.info("Unclassified action kind %r", getattr(action, "kind", None))
        return _from_registry(kind)

    def classify_complex(self, steps: Iterable[Any]) -> ComplexClassification:
        classified = [self.classify(step) for step in steps]
        kinds = {step.kind for step in classified}
        if kinds == {TransitionKind.ACTION_DRIVEN}:
            kind = TransitionKind.ACTION_DRIVEN
        elif kinds == {TransitionKind.ENVIRONMENT_DRIVEN}:
            kind = TransitionKind.ENVIRONMENT_DRIVEN
        else:
            kind = TransitionKind.HYBRID

        entry = TRANSITION_REGISTRY[kind]
        return ComplexClassification(
            kind=kind,
            requires_narrative=any(step.requires_narrative for step in classified),
            requires_simulation=any(step.requires_simulation for step in classified),
            description=entry.description,
            confidence=min((step.confidence for step in classified), default=entry.confidence),
            steps=classified,
        )

    def requirements(self, action: Any) -> dict:
        kind = self._resolve_kind(action)
        entry = TRANSITION_REGISTRY[kind]
        requirements: dict[str, Any] = {"narrative": None, "simulation": None}
        if entry.requires_narrative:
            requirements["narrative"] = {
                "prompt_type": "narrative",
                "focus": "outcome",
                "constraints": narrative_constraints(action),
            }
        if entry.requires_simulation:
            action_kind = getattr(action, "kind", None)
            payload = action.payload() if hasattr(action, "payload") else {}
            requirements["simulation"] = {
                "routine": SIMULATION_ROUTINES.get(action_kind, DEFAULT_ROUTINE),
                "parameters": payload,
            }
        return requirements

    def examples(self) -> dict[str, list[str]]:
        return {
            kind.value: list(entry.examples)
            for kind, entry in TRANSITION_REGISTRY.items()
            if entry.examples
        }

    def reset(self) -> None:
        self.counts.clear()

    def metrics(self) -> dict[str, int]:
        metrics = {kind.value: 0 for kind in TRANSITION_REGISTRY}
        metrics.update(self.counts)
        metrics.setdefault("total", 0)
        return metrics

    def _resolve_kind(self, action: Any) -> TransitionKind:
        action_kind = getattr(action, "kind", None)
        variant = action_variant(action_kind)
        player_choice = bool(getattr(action, "player_choice", None))

        if variant == "player" and player_choice:
            return TransitionKind.ACTION_DRIVEN
        if variant == "environment" and getattr(action, "automatic", None):
            return TransitionKind.ENVIRONMENT_DRIVEN
        if variant == "hybrid" and (player_choice or getattr(action, "skill_required", None)):
            return TransitionKind.HYBRID
        return TransitionKind.UNKNOWN


def narrative_constraints(action: Any) -> dict[str, Any]:
    constraints: dict[str, Any] = {"narrative": True, "consistency": True, "game_state": True}
    kind = getattr(action, "kind", None)
    if kind == "combat":
        constraints["outcome"] = "determined_by_code"
        constraints["narrative"] = "describe_combat_result"
    elif kind == "dialogue":
        constraints["npc_personality"] = True
        constraints["context_awareness"] = True
    elif kind == "spellcasting":
        constraints["spell_effects"] = "determined_by_code"
        constraints["narrative"] = "describe_magical_effects"
    return constraints
