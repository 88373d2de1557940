"""
DigestAggregator - groups slow statements by fingerprint.

Accumulates sums per bucket; averages are derived at output time
(sum / count, count >= 1 by construction). Output order is deterministic:
total latency desc, count desc, fingerprint asc.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Any

from ..protocol.record import isoformat_z
from .fingerprint import fingerprint
from .slowlog import SlowLogEntry


@dataclass
class DigestBucket:
    """Accumulated metrics for one fingerprint."""
    fingerprint: str
    sample_sql: str
    count: int = 0
    sum_latency: float = 0.0
    sum_lock_time: float = 0.0
    sum_rows_examined: int = 0
    sum_rows_sent: int = 0
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    def add(self, entry: SlowLogEntry):
        self.count += 1
        self.sum_latency += entry.query_time
        self.sum_lock_time += entry.lock_time
        self.sum_rows_examined += entry.rows_examined
        self.sum_rows_sent += entry.rows_sent
        if entry.timestamp is not None:
            if self.first_seen is None or entry.timestamp < self.first_seen:
                self.first_seen = entry.timestamp
            if self.last_seen is None or entry.timestamp > self.last_seen:
                self.last_seen = entry.timestamp

    @property
    def avg_latency(self) -> float:
        return self.sum_latency / self.count

    @property
    def avg_rows_examined(self) -> float:
        return self.sum_rows_examined / self.count

    @property
    def avg_rows_sent(self) -> float:
        return self.sum_rows_sent / self.count

    def sort_key(self) -> Tuple[float, int, str]:
        return (-self.sum_latency, -self.count, self.fingerprint)

    def to_dict(self) -> Dict[str, Any]:
        """Report form of the bucket."""
        return {
            "fingerprint": self.fingerprint,
            "sample_sql": self.sample_sql,
            "count": self.count,
            "total_query_time_secs": round(self.sum_latency, 6),
            "avg_query_time_secs": round(self.avg_latency, 6),
            "total_lock_time_secs": round(self.sum_lock_time, 6),
            "total_rows_sent": self.sum_rows_sent,
            "avg_rows_sent": round(self.avg_rows_sent, 3),
            "total_rows_examined": self.sum_rows_examined,
            "avg_rows_examined": round(self.avg_rows_examined, 3),
            "first_seen": _iso(self.first_seen),
            "last_seen": _iso(self.last_seen),
        }


@dataclass
class DigestWindow:
    """
    Capture window used to reject entries logged outside it.

    Entries without a timestamp are always kept; `tolerance` absorbs
    clock skew between the collector and the database host.
    """
    start: datetime
    end: datetime
    tolerance: timedelta = field(default_factory=lambda: timedelta(seconds=5))

    def contains(self, moment: Optional[datetime]) -> bool:
        if moment is None:
            return True
        return self.start - self.tolerance <= moment <= self.end + self.tolerance


@dataclass
class DigestReport:
    """Buckets plus bookkeeping for the payload."""
    buckets: List[DigestBucket] = field(default_factory=list)
    entries_seen: int = 0
    out_of_window: int = 0


class DigestAggregator:
    """
    Groups entries by fingerprint.

    Usage:
        aggregator = DigestAggregator()
        report = aggregator.aggregate(parsed.entries, window=window)
        for bucket in report.buckets:
            print(bucket.fingerprint, bucket.count, bucket.avg_latency)
    """

    def aggregate(
        self,
        entries: List[SlowLogEntry],
        window: Optional[DigestWindow] = None,
    ) -> DigestReport:
        grouped: Dict[str, DigestBucket] = {}
        report = DigestReport()

        for entry in entries:
            report.entries_seen += 1
            if window is not None and not window.contains(entry.timestamp):
                report.out_of_window += 1
                continue

            key = fingerprint(entry.raw_sql)
            bucket = grouped.get(key)
            if bucket is None:
                bucket = DigestBucket(fingerprint=key, sample_sql=entry.raw_sql)
                grouped[key] = bucket
            bucket.add(entry)

        report.buckets = sorted(grouped.values(), key=DigestBucket.sort_key)
        return report


def aggregate(
    entries: List[SlowLogEntry],
    window: Optional[DigestWindow] = None,
) -> List[DigestBucket]:
    """Convenience wrapper returning only the ordered buckets."""
    return DigestAggregator().aggregate(entries, window=window).buckets


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return isoformat_z(moment) if moment is not None else None
