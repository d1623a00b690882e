from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from gm_os.classifier import (
    ERROR_CLASSIFICATION,
    Classification,
    TransitionClassifier,
)
from gm_os.schemas import ActionBase, ComplexAction, parse_action
from gm_os.traits import character_traits
from gm_os.transitions import TransitionKind
from llm.client import NarrativeGenerator, ScriptedNarrativeGenerator
from llm.schemas import NarrativeRequest, NarrativeResponse
from rules.core import RandomSource, chance
from rules.registry import RuleRegistry
from rules.simulation import EnvironmentSimulator, SimulationResult
from rules.validation import ConsistencyValidator, ValidationReport
from state import encoder
from state.diff import StateDiffer, StateDiffResult
from state.game_state import GameState, StateSnapshot

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20
DEFAULT_DURATION_MINUTES = 60

# Success probability and rewards for deterministic outcomes of hybrid actions.
OUTCOME_TABLE: dict[str, tuple[float, dict[str, int], dict[str, int]]] = {
    "skill_check": (0.7, {"experience": 10}, {}),
    "combat": (0.6, {"experience": 20, "coins": 50}, {"health": -10}),
}

SimulationHook = Callable[[GameState, Any], None]


class PipelineError(RuntimeError):
    pass


@dataclass
class PipelineMetrics:
    total_transitions: int = 0
    action_driven: int = 0
    environment_driven: int = 0
    hybrid: int = 0
    unknown: int = 0
    validation_errors: int = 0
    narrative_calls: int = 0

    def record_classification(self, kind: TransitionKind) -> None:
        self.total_transitions += 1
        if kind is TransitionKind.ACTION_DRIVEN:
            self.action_driven += 1
        elif kind is TransitionKind.ENVIRONMENT_DRIVEN:
            self.environment_driven += 1
        elif kind is TransitionKind.HYBRID:
            self.hybrid += 1
        else:
            self.unknown += 1

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class PipelineResult:
    success: bool
    classification: Classification
    result: dict = field(default_factory=dict)
    diff: StateDiffResult | None = None
    report: ValidationReport | None = None
    metrics: dict = field(default_factory=dict)
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "classification": self.classification.as_dict(),
            "result": self.result,
            "diff": self.diff.as_dict() if self.diff else None,
            "report": self.report.as_dict() if self.report else None,
            "metrics": self.metrics,
            "error": self.error,
        }


class HybridStateManager:
    """Single entry point that routes each action to simulation, narrative or both.

    Not safe for concurrent callers: snapshots, metrics and history are
    mutated in place. Callers must keep at most one ``process_action`` in
    flight.
    """

    def __init__(
        self,
        state: GameState,
        *,
        classifier: TransitionClassifier,
        registry: RuleRegistry,
        simulator: EnvironmentSimulator,
        validator: ConsistencyValidator,
        differ: StateDiffer,
        narrative: NarrativeGenerator | None = None,
        random_source: RandomSource | None = None,
        apply_hooks: Mapping[str, SimulationHook] | None = None,
        dev_mode: bool = False,
    ) -> None:
        self.state = state
        self.classifier = classifier
        self.registry = registry
        self.simulator = simulator
        self.validator = validator
        self.differ = differ
        self.narrative = narrative or ScriptedNarrativeGenerator()
        self.random_source = random_source or simulator.random_source
        self.apply_hooks: dict[str, SimulationHook] = dict(apply_hooks or {})
        self.dev_mode = dev_mode

        self.metrics = PipelineMetrics()
        self.history: deque[dict] = deque(maxlen=HISTORY_LIMIT)
        self.current_snapshot: StateSnapshot | None = state.snapshot()
        self.previous_snapshot: StateSnapshot | None = self.current_snapshot
        self._last_diff: StateDiffResult | None = None

    def process_action(
        self,
        action: ActionBase | ComplexAction | Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        context = context or {}
        draws_start = self.random_source.draw_count
        try:
            if isinstance(action, Mapping):
                action = parse_action(action)

            classification = self._classify(action)
            self.metrics.record_classification(classification.kind)

            if not self._validate_rules(action):
                self.metrics.validation_errors += 1
                logger.info("Action %s rejected by rule registry", action.kind)
                return PipelineResult(
                    success=False,
                    classification=classification,
                    result={"success": False, "error": "rule_violation"},
                    metrics=self.metrics_snapshot(),
                    error="rule_violation",
                )

            previous = self.state.snapshot()
            self.previous_snapshot = previous

            if classification.kind is TransitionKind.ACTION_DRIVEN:
                result = self._process_action_driven(action, context)
            elif classification.kind is TransitionKind.ENVIRONMENT_DRIVEN:
                result = self._process_environment_driven(action)
            elif classification.kind is TransitionKind.HYBRID:
                result = self._process_hybrid(action, context)
            else:
                result = {"success": False, "error": "unknown_classification"}

            current = self.state.snapshot()
            self.current_snapshot = current
            diff = self.differ.diff(previous, current)
            self._last_diff = diff

            if isinstance(action, ActionBase) and not self.validator.validate_state_transition(
                previous, current, action
            ):
                self.metrics.validation_errors += 1
                result["transition_valid"] = False

            report = self.validator.report(self.state)
            if not report.overall:
                self.metrics.validation_errors += 1
                result["validation_errors"] = list(report.issues)
                logger.warning("State failed validation after %s: %s", action.kind, report.issues)

            if self.dev_mode:
                result["draws"] = self.random_source.draws_since(draws_start)

            self._store_in_history(action, result, diff, classification)
            return PipelineResult(
                success=bool(result.get("success")),
                classification=classification,
                result=result,
                diff=diff,
                report=report,
                metrics=self.metrics_snapshot(),
                error=result.get("error"),
            )
        except Exception as exc:
            logger.exception("Error processing action")
            return PipelineResult(
                success=False,
                classification=ERROR_CLASSIFICATION,
                result={"success": False, "error": str(exc)},
                metrics=self.metrics_snapshot(),
                error=str(exc),
            )

    def determine_mechanical_outcome(self, action: ActionBase | ComplexAction) -> dict:
        success = True
        state_changes: dict[str, int] = {}
        entry = OUTCOME_TABLE.get(action.kind)
        if entry is not None:
            probability, rewards, penalties = entry
            success = chance(self.random_source, probability, label=f"{action.kind}_outcome")
            state_changes = dict(rewards if success else penalties)
        return {
            "success": success,
            "state_changes": state_changes,
            "experience": state_changes.get("experience", 0),
            "coins": state_changes.get("coins", 0),
            "health": state_changes.get("health", 0),
        }

    def apply_mechanical_changes(self, state_changes: Mapping[str, Any]) -> dict:
        """Write coins and current-skill experience; everything else is left alone."""
        applied: dict[str, Any] = {}
        for name, value in state_changes.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if name == "coins":
                self.state.coins += int(value)
                applied["coins"] = int(value)
            elif name == "experience" and self.state.current_skill:
                self.state.add_skill_experience(self.state.current_skill, value)
                applied["experience"] = value
        return applied

    def apply_simulation_results(self, simulation: SimulationResult) -> list[str]:
        applied: list[str] = []
        for field_name, hook in self.apply_hooks.items():
            value = getattr(simulation, field_name, None)
            if value is None:
                continue
            hook(self.state, value)
            applied.append(field_name)
        return applied

    def state_for_narrative(self) -> dict:
        return encoder.for_narrative_generator(self.state)

    def rules_for_narrative(self) -> dict:
        return self.registry.rules_for_narrative()

    def last_diff(self) -> StateDiffResult | None:
        return self._last_diff

    def validate_current_state(self) -> ValidationReport:
        return self.validator.report(self.state)

    def metrics_snapshot(self) -> dict:
        return {
            **self.metrics.as_dict(),
            "history_length": len(self.history),
            "classifier": self.classifier.metrics(),
        }

    def system_report(self) -> dict:
        last_diff = self._last_diff
        return {
            "metrics": self.metrics_snapshot(),
            "report": self.validate_current_state().as_dict(),
            "last_diff": last_diff.as_dict() if last_diff else None,
            "rule_metrics": self.registry.rule_metrics(),
            "simulation": self.simulator.simulation_report(self.state),
            "history": list(self.history)[-5:],
        }

    def teardown(self) -> None:
        self.history.clear()
        self.previous_snapshot = None
        self.current_snapshot = None
        self._last_diff = None
        self.metrics = PipelineMetrics()
        self.classifier.reset()
        self.registry.reset_metrics()
        self.validator.reset()
        self.simulator.history.clear()

    def _classify(self, action: ActionBase | ComplexAction) -> Classification:
        if isinstance(action, ComplexAction):
            return self.classifier.classify_complex(action.steps)
        return self.classifier.classify(action, self.state)

    def _validate_rules(self, action: ActionBase | ComplexAction) -> bool:
        skill_levels = self.state.skill_levels()
        if isinstance(action, ComplexAction):
            return all(self.registry.validate_action(step, skill_levels) for step in action.steps)
        return self.registry.validate_action(action, skill_levels)

    def _process_action_driven(self, action: ActionBase | ComplexAction, context: Mapping) -> dict:
        request = self._narrative_request(action, context)
        response = self._generate(request)
        applied = self.apply_mechanical_changes(response.state_changes)
        return {
            "success": True,
            "kind": TransitionKind.ACTION_DRIVEN.value,
            "narrative_response": response.model_dump(),
            "narrative": response.narrative,
            "narrative_consistent": self._narrative_consistent(response),
            "state_changes": applied,
        }

    def _process_environment_driven(self, action: ActionBase | ComplexAction) -> dict:
        if isinstance(action, ComplexAction):
            steps = [self._process_environment_driven(step) for step in action.steps]
            return {
                "success": all(step["success"] for step in steps),
                "kind": TransitionKind.ENVIRONMENT_DRIVEN.value,
                "steps": steps,
            }

        simulation = self._simulate(action)
        if simulation is None:
            return {
                "success": True,
                "kind": TransitionKind.ENVIRONMENT_DRIVEN.value,
                "simulation": {"effects": {}},
                "state_changes": {},
            }

        result = {
            "kind": TransitionKind.ENVIRONMENT_DRIVEN.value,
            "simulation": simulation.as_dict(),
            "state_changes": extract_state_changes(simulation),
        }
        # Baseline bounds check only; the apply hooks clamp against live values.
        simulation_valid = self.simulator.validate_simulation(simulation)
        if not simulation_valid:
            logger.info("%s simulation outside baseline bounds: %s", simulation.kind, simulation)
        result.update(
            success=True,
            simulation_valid=simulation_valid,
            applied=self.apply_simulation_results(simulation),
        )
        return result

    def _process_hybrid(self, action: ActionBase | ComplexAction, context: Mapping) -> dict:
        outcome = self.determine_mechanical_outcome(action)
        request = self._narrative_request(action, context, mechanical_result=outcome)
        response = self._generate(request)
        self.apply_mechanical_changes(outcome["state_changes"])
        return {
            "success": True,
            "kind": TransitionKind.HYBRID.value,
            "mechanical_result": outcome,
            "narrative_response": response.model_dump(),
            "narrative": response.narrative,
            "narrative_consistent": self._narrative_consistent(response),
            "state_changes": outcome["state_changes"],
        }

    def _simulate(self, action: ActionBase) -> SimulationResult | None:
        duration = action.duration if action.duration is not None else DEFAULT_DURATION_MINUTES
        kind = action.kind
        if kind in {"time_passage", "day_night_cycle"}:
            return self.simulator.simulate_time_passage(self.state, duration)
        if kind == "weather_change":
            return self.simulator.simulate_weather(self.state)
        if kind in {"npc_behavior", "guard_patrols", "shop_hours"}:
            return self.simulator.simulate_npc_behavior(self.state)
        if kind in {"world_events", "monster_spawns"}:
            return self.simulator.simulate_world_events(self.state)
        if kind in {"economic_changes", "economic_fluctuation"}:
            return self.simulator.simulate_economy(self.state)
        if kind == "skill_decay":
            return self.simulator.simulate_skill_decay(self.state, duration)
        if kind == "health_effects":
            return self.simulator.simulate_health_effects(self.state, duration)
        if kind == "reputation_effects":
            return self.simulator.simulate_reputation_effects(self.state, duration)
        return None

    def _narrative_request(
        self,
        action: ActionBase | ComplexAction,
        context: Mapping,
        *,
        mechanical_result: dict | None = None,
    ) -> NarrativeRequest:
        requirements = self.classifier.requirements(action)
        narrative_requirements = requirements.get("narrative") or {}
        return NarrativeRequest(
            action=action.model_dump(mode="json", exclude_none=True),
            encoded_state=encoder.for_narrative_generator(self.state),
            rules=self.registry.rules_for_narrative(),
            character_traits=character_traits(self.state),
            story_context=dict(context.get("story_context") or {}),
            constraints=dict(narrative_requirements.get("constraints") or {}),
            mechanical_result=mechanical_result,
        )

    def _generate(self, request: NarrativeRequest) -> NarrativeResponse:
        self.metrics.narrative_calls += 1
        response = self.narrative.generate(request)
        if not isinstance(response, NarrativeResponse):
            raise PipelineError(f"Narrative generator returned {type(response).__name__}.")
        return response

    def _narrative_consistent(self, response: NarrativeResponse) -> bool:
        return self.validator.validate_narrative_output(response.model_dump(), self.state)

    def _store_in_history(
        self,
        action: ActionBase | ComplexAction,
        result: dict,
        diff: StateDiffResult,
        classification: Classification,
    ) -> None:
        self.history.append(
            {
                "timestamp": datetime.now(timezone.utc),
                "action": action.model_dump(mode="json", exclude_none=True),
                "result": result,
                "diff": diff.as_dict(),
                "classification": classification.as_dict(),
                "metrics": self.metrics.as_dict(),
            }
        )


def extract_state_changes(simulation: SimulationResult) -> dict:
    changes: dict[str, Any] = {}
    if simulation.new_time is not None:
        changes["time"] = simulation.new_time
    if simulation.health_change is not None:
        changes["health"] = simulation.health_change
    if simulation.reputation_change is not None:
        changes["reputation"] = simulation.reputation_change
    return changes
