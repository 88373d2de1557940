"""
Error log alert extraction.

Scans bounded log content line by line against an engine-specific
LogPatternSet. Every matching line yields one Alert, in file order, with
no deduplication. A line is attributed to the first category (in
CATEGORIES order) whose patterns match.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Tuple, Any

from .reader import take_last_numbered_lines


DEADLOCK = "deadlock"
CRASH_RECOVERY = "crash_recovery"
PURGE_OR_VACUUM = "purge_or_vacuum"
REPLICATION = "replication"

CATEGORIES: Tuple[str, ...] = (DEADLOCK, CRASH_RECOVERY, PURGE_OR_VACUUM, REPLICATION)


@dataclass(frozen=True)
class LogPatternSet:
    """Lower-case substrings per alert category for one engine."""
    engine: str
    patterns: Dict[str, Tuple[str, ...]]

    def classify(self, line: str) -> str:
        """First matching category, or "" when the line is not an alert."""
        lower = line.lower()
        for category in CATEGORIES:
            if any(pattern in lower for pattern in self.patterns.get(category, ())):
                return category
        return ""


MYSQL_PATTERNS = LogPatternSet(
    engine="mysql",
    patterns={
        DEADLOCK: ("deadlock",),
        CRASH_RECOVERY: ("crash recovery", "starting crash recovery", "recovery completed"),
        PURGE_OR_VACUUM: ("purge",),
        REPLICATION: ("replication", "replica", "slave", "relay log", "binlog"),
    },
)

POSTGRES_PATTERNS = LogPatternSet(
    engine="postgres",
    patterns={
        DEADLOCK: ("deadlock detected",),
        CRASH_RECOVERY: (
            "not properly shut down",
            "automatic recovery in progress",
            "redo starts at",
            "was interrupted",
            "terminated by signal",
        ),
        PURGE_OR_VACUUM: ("vacuum", "wraparound"),
        REPLICATION: ("replication", "wal receiver", "walreceiver", "standby"),
    },
)

PATTERN_SETS: Dict[str, LogPatternSet] = {
    "mysql": MYSQL_PATTERNS,
    "postgres": POSTGRES_PATTERNS,
}


@dataclass
class Alert:
    """
    One alert-worthy log line.

    `position` is the 1-based line number within the scanned text: the
    tail returned by read_tail, which starts at the first complete line
    after its byte offset. Blank lines and lines dropped by the line cap
    are counted, so positions match the tail as read.
    """
    category: str
    line: str
    position: int


@dataclass
class AlertReport:
    """Extraction result for the payload."""
    alerts: List[Alert] = field(default_factory=list)
    sampled_lines: int = 0
    truncated: bool = False

    def counts(self) -> Dict[str, int]:
        """Alert count per category (all categories present)."""
        result = {category: 0 for category in CATEGORIES}
        for alert in self.alerts:
            result[alert.category] += 1
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sampled_lines": self.sampled_lines,
            "truncated": self.truncated,
            "alert_count": len(self.alerts),
            "alert_counts": self.counts(),
            "alerts": [asdict(alert) for alert in self.alerts],
        }


def extract(lines: List[str], patterns: LogPatternSet) -> List[Alert]:
    """Alerts for every matching line, preserving order."""
    return _extract_numbered(enumerate(lines, start=1), patterns)


def _extract_numbered(numbered, patterns: LogPatternSet) -> List[Alert]:
    alerts = []
    for position, line in numbered:
        category = patterns.classify(line)
        if category:
            alerts.append(Alert(category=category, line=line, position=position))
    return alerts


def extract_from_content(content: str, patterns: LogPatternSet, max_lines: int) -> AlertReport:
    """Cap `content` to its last `max_lines` non-empty lines and extract alerts."""
    numbered, truncated = take_last_numbered_lines(content, max_lines)
    return AlertReport(
        alerts=_extract_numbered(numbered, patterns),
        sampled_lines=len(numbered),
        truncated=truncated,
    )
