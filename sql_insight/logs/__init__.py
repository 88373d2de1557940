"""
Logs module - bounded reading and analysis of server logs.

- reader: byte-bounded appended-segment and tail readers
- slowlog: MySQL slow query log parser
- fingerprint: SQL canonicalization for grouping
- digest: DigestAggregator (fingerprint buckets)
- alerts: error log alert extraction with per-engine LogPatternSet
"""

from .reader import LogSegment, read_appended_segment, read_tail, take_last_lines, take_last_numbered_lines
from .slowlog import SlowLogEntry, ParsedSlowLog, parse_slow_log
from .fingerprint import fingerprint
from .digest import DigestAggregator, DigestBucket, DigestWindow, DigestReport, aggregate
from .alerts import (
    Alert,
    AlertReport,
    LogPatternSet,
    MYSQL_PATTERNS,
    POSTGRES_PATTERNS,
    PATTERN_SETS,
    extract,
    extract_from_content,
)

__all__ = [
    "LogSegment",
    "read_appended_segment",
    "read_tail",
    "take_last_lines",
    "take_last_numbered_lines",
    "SlowLogEntry",
    "ParsedSlowLog",
    "parse_slow_log",
    "fingerprint",
    "DigestAggregator",
    "DigestBucket",
    "DigestWindow",
    "DigestReport",
    "aggregate",
    "Alert",
    "AlertReport",
    "LogPatternSet",
    "MYSQL_PATTERNS",
    "POSTGRES_PATTERNS",
    "PATTERN_SETS",
    "extract",
    "extract_from_content",
]
