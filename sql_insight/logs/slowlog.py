"""
MySQL slow query log parser.

Entry layout:
    # Time: 2026-02-07T12:00:00.100000Z
    # User@Host: app[app] @ localhost []
    # Query_time: 1.200 Lock_time: 0.010 Rows_sent: 1 Rows_examined: 100
    SET timestamp=1770430000;
    SELECT * FROM orders WHERE id = 100;

Lines that cannot be parsed are skipped and counted, never fatal.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..protocol.errors import LogParseError


@dataclass
class SlowLogEntry:
    """One slow statement with its execution metrics."""
    raw_sql: str
    query_time: float = 0.0
    lock_time: float = 0.0
    rows_sent: int = 0
    rows_examined: int = 0
    timestamp: Optional[datetime] = None


@dataclass
class ParsedSlowLog:
    """Parser output."""
    entries: List[SlowLogEntry] = field(default_factory=list)
    skipped_lines: int = 0
    errors: List[str] = field(default_factory=list)


_METRIC = re.compile(r"(Query_time|Lock_time|Rows_sent|Rows_examined):\s*(\S+)")
_FLOAT_METRICS = {"Query_time": "query_time", "Lock_time": "lock_time"}
_INT_METRICS = {"Rows_sent": "rows_sent", "Rows_examined": "rows_examined"}

# Keep at most this many parse error messages in the report.
MAX_PARSE_ERRORS = 20


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    ISO-8601 timestamps with an explicit zone; anything else is None.

    MySQL 5.6 style "180101 12:00:00" and zone-less local times are left
    unset because their offset from the collector clock is unknown.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        return None
    return moment


def parse_metrics_line(line: str, line_no: int = 0) -> dict:
    """
    Parse a "# Query_time: ..." line.

    Raises:
        LogParseError: when a metric value is not numeric
    """
    metrics = {}
    for key, raw in _METRIC.findall(line):
        try:
            if key in _FLOAT_METRICS:
                metrics[_FLOAT_METRICS[key]] = float(raw)
            else:
                metrics[_INT_METRICS[key]] = int(raw)
        except ValueError:
            raise LogParseError(f"line {line_no}: invalid {key} value {raw!r}", line_no=line_no)
    if "query_time" not in metrics:
        raise LogParseError(f"line {line_no}: missing Query_time", line_no=line_no)
    return metrics


class _EntryBuilder:
    def __init__(self, timestamp: Optional[datetime]):
        self.timestamp = timestamp
        self.sql_lines: List[str] = []
        self.metrics: dict = {}

    def build(self) -> Optional[SlowLogEntry]:
        sql = "\n".join(self.sql_lines).strip()
        if not sql:
            return None
        return SlowLogEntry(raw_sql=sql, timestamp=self.timestamp, **self.metrics)


def parse_slow_log(content: str) -> ParsedSlowLog:
    """Parse slow log text into entries, counting unparseable lines."""
    result = ParsedSlowLog()
    current: Optional[_EntryBuilder] = None

    def finish(builder: Optional[_EntryBuilder]):
        if builder is None:
            return
        entry = builder.build()
        if entry is not None:
            result.entries.append(entry)

    for line_no, line in enumerate(content.splitlines(), start=1):
        stripped = line.strip()

        if line.startswith("# Time:"):
            finish(current)
            current = _EntryBuilder(parse_timestamp(line[len("# Time:"):]))
            continue

        if current is None:
            continue

        if "Query_time:" in line:
            try:
                current.metrics = parse_metrics_line(line, line_no)
            except LogParseError as e:
                result.skipped_lines += 1
                if len(result.errors) < MAX_PARSE_ERRORS:
                    result.errors.append(str(e))
            continue

        if not stripped or stripped.startswith("#") or stripped.startswith("SET timestamp="):
            continue

        # Server restart banners between entries.
        if stripped.startswith(("Tcp port:", "Time                 Id Command")) or \
                "started with:" in stripped:
            continue

        current.sql_lines.append(stripped)

    finish(current)
    return result
