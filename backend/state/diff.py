from __future__ import annotations

import dataclasses
from collections import deque
from dataclasses import dataclass, field
from numbers import Number
from typing import Any, Iterable, Mapping

from state.game_state import CORE_SKILLS, StateSnapshot

SCALAR_PROPERTIES: tuple[str, ...] = ("health", "mana", "coins", "location", "time", "reputation")
BUCKETS: tuple[str, ...] = ("changes", "additions", "removals", "modifications")
NO_CHANGES_SUMMARY = "No significant changes"
DIFF_HISTORY_LIMIT = 10

DIFF_INSTRUCTIONS = (
    "You are the narrator for a text-based adventure game. "
    "This is what changed between two turns. Describe what changed and why, "
    "explain the consequences of the player's actions and keep the story consistent. "
    "Do not report changes that are not listed here."
)


@dataclass(frozen=True)
class StateDiffResult:
    changes: dict[str, Any] = field(default_factory=dict)
    additions: dict[str, Any] = field(default_factory=dict)
    removals: dict[str, Any] = field(default_factory=dict)
    modifications: dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.changes or self.additions or self.removals or self.modifications)

    def as_dict(self) -> dict:
        return {
            "changes": self.changes,
            "additions": self.additions,
            "removals": self.removals,
            "modifications": self.modifications,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StateDiffResult:
        return cls(**{bucket: dict(data.get(bucket) or {}) for bucket in BUCKETS})


class StateDiffer:
    """Computes and applies property-level differences between snapshots.

    ``diff`` only fills ``changes``, ``additions`` and ``removals``. The
    ``modifications`` bucket belongs to diffs built elsewhere (for example a
    narrative generator proposing deltas) and is honoured by ``apply``,
    ``merge`` and ``metrics``.
    """

    def __init__(self, *, skill_names: Iterable[str] = CORE_SKILLS) -> None:
        self.skill_names = tuple(skill_names)
        self.history: deque[StateDiffResult] = deque(maxlen=DIFF_HISTORY_LIMIT)

    def diff(self, previous: StateSnapshot, current: StateSnapshot) -> StateDiffResult:
        changes: dict[str, Any] = {}
        additions: dict[str, Any] = {}
        removals: dict[str, Any] = {}

        for name in SCALAR_PROPERTIES:
            before = getattr(previous, name)
            after = getattr(current, name)
            if before != after:
                changes[name] = _change(before, after)

        skill_changes = {}
        for name in self.skill_names:
            before = previous.skill_level(name)
            after = current.skill_level(name)
            if before != after:
                skill_changes[name] = _change(before, after)
        if skill_changes:
            changes["skills"] = skill_changes

        gained: dict[str, int] = {}
        lost: dict[str, int] = {}
        for item in sorted(set(previous.inventory) | set(current.inventory)):
            before = previous.item_count(item)
            after = current.item_count(item)
            if after > before:
                gained[item] = after - before
            elif after < before:
                lost[item] = before - after
        if gained:
            additions["inventory"] = gained
        if lost:
            removals["inventory"] = lost

        result = StateDiffResult(changes=changes, additions=additions, removals=removals)
        self.history.append(result)
        return result

    def apply(self, snapshot: StateSnapshot, diff: StateDiffResult) -> StateSnapshot:
        updates: dict[str, Any] = {}
        for name in SCALAR_PROPERTIES:
            change = diff.changes.get(name)
            if isinstance(change, Mapping) and "to" in change:
                updates[name] = change["to"]

        skills = dict(snapshot.skills)
        for source in (diff.changes.get("skills"), diff.modifications.get("skills")):
            if not isinstance(source, Mapping):
                continue
            for name, change in source.items():
                if isinstance(change, Mapping) and "to" in change:
                    skills[name] = change["to"]
                elif isinstance(change, Mapping) and "delta" in change:
                    skills[name] = skills.get(name, 0) + change["delta"]

        inventory = dict(snapshot.inventory)
        added = diff.additions.get("inventory")
        if isinstance(added, Mapping):
            for item, quantity in added.items():
                inventory[item] = inventory.get(item, 0) + quantity
        removed = diff.removals.get("inventory")
        if isinstance(removed, Mapping):
            for item, quantity in removed.items():
                inventory[item] = inventory.get(item, 0) - quantity
        modified = diff.modifications.get("inventory")
        if isinstance(modified, Mapping):
            for item, change in modified.items():
                delta = change.get("delta", 0) if isinstance(change, Mapping) else change
                inventory[item] = inventory.get(item, 0) + delta

        return dataclasses.replace(snapshot, skills=skills, inventory=inventory, **updates)

    def for_narrative_generator(self, diff: StateDiffResult) -> dict:
        return {
            "summary": summarize(diff),
            "changes": diff.changes,
            "additions": diff.additions,
            "removals": diff.removals,
            "modifications": diff.modifications,
            "instructions": DIFF_INSTRUCTIONS,
        }

    def validate(self, diff: StateDiffResult | Mapping[str, Any]) -> bool:
        if isinstance(diff, Mapping):
            if any(not isinstance(diff.get(bucket), Mapping) for bucket in BUCKETS):
                return False
            diff = StateDiffResult.from_dict(diff)

        for name, change in diff.changes.items():
            if name == "skills" and isinstance(change, Mapping):
                if not all(_valid_change(entry) for entry in change.values()):
                    return False
                continue
            if not _valid_change(change):
                return False
        return True

    def metrics(self, diff: StateDiffResult) -> dict:
        total_changes = len(diff.changes)
        additions = len(diff.additions)
        removals = len(diff.removals)
        modifications = len(diff.modifications)

        complexity = "low"
        if total_changes > 5 or additions > 3 or modifications > 3:
            complexity = "high"
        elif total_changes > 2 or additions > 1 or modifications > 1:
            complexity = "medium"

        return {
            "total_changes": total_changes,
            "additions": additions,
            "removals": removals,
            "modifications": modifications,
            "complexity": complexity,
        }

    def merge(self, diffs: Iterable[StateDiffResult]) -> StateDiffResult:
        merged: dict[str, dict] = {bucket: {} for bucket in BUCKETS}
        for diff in diffs:
            for bucket in BUCKETS:
                merged[bucket].update(getattr(diff, bucket))
        return StateDiffResult(**merged)


def summarize(diff: StateDiffResult) -> str:
    parts: list[str] = []

    health = diff.changes.get("health")
    if isinstance(health, Mapping):
        delta = health.get("delta") or 0
        if delta > 0:
            parts.append(f"Health increased by {delta}")
        elif delta < 0:
            parts.append(f"Health decreased by {abs(delta)}")

    location = diff.changes.get("location")
    if isinstance(location, Mapping):
        parts.append(f"Moved from {location.get('from')} to {location.get('to')}")

    skills = diff.changes.get("skills")
    if isinstance(skills, Mapping):
        for name, change in skills.items():
            delta = change.get("delta") or 0
            if delta > 0:
                parts.append(f"{name} skill increased by {delta}")
            elif delta < 0:
                parts.append(f"{name} skill decreased by {abs(delta)}")

    for item, quantity in (diff.additions.get("inventory") or {}).items():
        parts.append(f"Gained {quantity} {item}")
    for item, quantity in (diff.removals.get("inventory") or {}).items():
        parts.append(f"Lost {quantity} {item}")

    return ", ".join(parts) or NO_CHANGES_SUMMARY


def _change(before: Any, after: Any) -> dict:
    change = {"from": before, "to": after}
    if _is_number(before) and _is_number(after):
        change["delta"] = after - before
    return change


def _valid_change(change: Any) -> bool:
    if not isinstance(change, Mapping):
        return False
    if "from" not in change or "to" not in change:
        return False
    if "delta" in change and not _is_number(change["delta"]):
        return False
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)
