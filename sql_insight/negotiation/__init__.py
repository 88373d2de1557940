"""
Negotiation module - turns probed capabilities into a safe collection level.

Components:
- CapabilitySnapshot: immutable per-cycle capability flags
- CapabilityChecklist: ordered per-level checks (MySQL, PostgreSQL)
- negotiate: pure decision function
"""

from .capability import CapabilitySnapshot
from .checklist import (
    CapabilityChecklist,
    MysqlChecklist,
    PostgresChecklist,
    CollectionTask,
    checklist_for,
)
from .negotiator import negotiate, NegotiationResult, LevelEvaluation

__all__ = [
    "CapabilitySnapshot",
    "CapabilityChecklist",
    "MysqlChecklist",
    "PostgresChecklist",
    "CollectionTask",
    "checklist_for",
    "negotiate",
    "NegotiationResult",
    "LevelEvaluation",
]
