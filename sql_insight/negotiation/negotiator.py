"""
Level negotiation - picks the highest safe collection depth.

Pure and deterministic: capability probing happens before negotiation and
negotiation never touches the server.

Algorithm:
1. Evaluate every level from the requested one down to Level 0, running
   that level's full checklist (no short-circuit within a level).
2. Select the highest level L such that every level <= L passed.
3. If Level 0 itself fails, the result is UNAVAILABLE.
4. Each failed check contributes one "[Level N] reason" string, in
   evaluation order (highest level first, checklist order within a level).
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from ..protocol.levels import CollectionLevel
from .capability import CapabilitySnapshot
from .checklist import CapabilityChecklist, CollectionTask, checklist_for


@dataclass
class LevelEvaluation:
    """Outcome of one level's checklist."""
    level: CollectionLevel
    ok: bool
    reasons: List[str] = field(default_factory=list)


@dataclass
class NegotiationResult:
    """Selected level, per-level evaluations and enabled tasks."""
    engine: str
    requested_level: CollectionLevel
    selected_level: CollectionLevel
    evaluations: List[LevelEvaluation] = field(default_factory=list)
    tasks: List[CollectionTask] = field(default_factory=list)

    @property
    def downgrade_reasons(self) -> List[str]:
        """One string per failed check; empty when nothing was downgraded."""
        if self.selected_level >= self.requested_level:
            return []
        return [
            f"[{evaluation.level.label}] {reason}"
            for evaluation in self.evaluations
            if not evaluation.ok
            for reason in evaluation.reasons
        ]

    @property
    def downgraded(self) -> bool:
        return self.selected_level < self.requested_level

    def __iter__(self) -> Iterator:
        # Allows `selected, reasons = negotiate(...)`.
        yield self.selected_level
        yield self.downgrade_reasons


def evaluate_level(
    checklist: CapabilityChecklist,
    level: CollectionLevel,
    snapshot: CapabilitySnapshot,
) -> LevelEvaluation:
    """Run every check for `level`; all failures are reported."""
    reasons = [
        check.reason
        for check in checklist.checks_for(level)
        if not check.passes(snapshot)
    ]
    return LevelEvaluation(level=level, ok=not reasons, reasons=reasons)


def negotiate(
    engine: str,
    requested_level: CollectionLevel,
    snapshot: CapabilitySnapshot,
    checklist: Optional[CapabilityChecklist] = None,
) -> NegotiationResult:
    """
    Select the collection level for this cycle.

    Args:
        engine: "mysql" or "postgres"
        requested_level: Highest level the operator asked for
        snapshot: Capabilities probed for this cycle
        checklist: Override the engine's registered checklist

    Returns:
        NegotiationResult with selected_level <= requested_level
    """
    if requested_level is CollectionLevel.UNAVAILABLE:
        raise ValueError("requested level must be Level 0 or higher")

    checklist = checklist or checklist_for(engine)
    evaluations = [
        evaluate_level(checklist, level, snapshot)
        for level in CollectionLevel.descending_from(requested_level)
    ]

    selected = CollectionLevel.UNAVAILABLE
    for evaluation in reversed(evaluations):
        if not evaluation.ok:
            break
        selected = evaluation.level

    return NegotiationResult(
        engine=engine,
        requested_level=requested_level,
        selected_level=selected,
        evaluations=evaluations,
        tasks=checklist.tasks_for_level(selected),
    )
