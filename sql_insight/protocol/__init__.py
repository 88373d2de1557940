"""
Protocol definitions for sql_insight.

- CollectionLevel: ordered collection depth
- CollectionRecord: unified per-cycle envelope (with AttemptTrace, ScheduleWindow)
- Error taxonomy: CollectorError and its subclasses
"""

from .levels import CollectionLevel
from .record import (
    CONTRACT_VERSION,
    CollectionRecord,
    AttemptTrace,
    ScheduleWindow,
    RecordStatus,
)
from .errors import (
    CollectorError,
    CapabilityProbeError,
    CollectionError,
    CollectionTimeoutError,
    CollectionCancelledError,
    HotSwitchApplyError,
    HotSwitchRestoreError,
    LogParseError,
)

__all__ = [
    # Levels
    "CollectionLevel",
    # Record
    "CONTRACT_VERSION",
    "CollectionRecord",
    "AttemptTrace",
    "ScheduleWindow",
    "RecordStatus",
    # Errors
    "CollectorError",
    "CapabilityProbeError",
    "CollectionError",
    "CollectionTimeoutError",
    "CollectionCancelledError",
    "HotSwitchApplyError",
    "HotSwitchRestoreError",
    "LogParseError",
]
