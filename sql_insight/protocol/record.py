"""
CollectionRecord - the unified envelope emitted once per collection cycle.

Contains run/cycle identity, the negotiated level, the schedule snapshot,
the window bounding the attempt loop, every attempt's outcome, per-source
status, warnings and the engine/level-specific payload.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any
import json


CONTRACT_VERSION = "v1"


class RecordStatus(str, Enum):
    """Outcome of an attempt or a whole cycle."""
    OK = "ok"
    FAILED = "failed"


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def isoformat_z(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class AttemptTrace:
    """Outcome of one attempt inside a cycle."""
    index: int                             # 1-based
    status: str                            # "ok" | "failed"
    started_at: str = ""
    duration_ms: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == RecordStatus.OK.value


@dataclass
class ScheduleWindow:
    """Wall-clock bounds of the whole attempt loop."""
    start: str
    end: str
    duration_ms: int

    @classmethod
    def between(cls, start: datetime, end: datetime) -> "ScheduleWindow":
        duration_ms = max(0, int((end - start).total_seconds() * 1000))
        return cls(start=isoformat_z(start), end=isoformat_z(end), duration_ms=duration_ms)


@dataclass
class CollectionRecord:
    """
    Unified result envelope.

    `payload` is populated only when `status == "ok"`; `error` only when
    every attempt failed.
    """
    run_id: str
    cycle: int
    engine: str
    requested_level: str
    schedule: Dict[str, Any]
    window: ScheduleWindow
    selected_level: Optional[str] = None
    attempts: List[AttemptTrace] = field(default_factory=list)
    source_status: Dict[str, bool] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    status: str = RecordStatus.OK.value
    error: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    contract_version: str = CONTRACT_VERSION

    @property
    def ok(self) -> bool:
        return self.status == RecordStatus.OK.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with the envelope's field order."""
        return {
            "contract_version": self.contract_version,
            "run_id": self.run_id,
            "cycle": self.cycle,
            "engine": self.engine,
            "requested_level": self.requested_level,
            "selected_level": self.selected_level,
            "schedule": dict(self.schedule),
            "window": asdict(self.window),
            "attempts": [asdict(a) for a in self.attempts],
            "source_status": dict(self.source_status),
            "warnings": list(self.warnings),
            "status": self.status,
            "error": self.error,
            "payload": self.payload,
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return isoformat_z(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
