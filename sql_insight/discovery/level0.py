"""
Level 0 collection skeleton shared by both engines.

Each engine names a set of read-only query jobs. Jobs run concurrently,
each on its own connection, next to the OS metric sampler. A failed job
becomes a warning and a false capability flag; only the initial connect
is allowed to fail the attempt.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any

from ..negotiation import capability as cap
from ..protocol.errors import CollectionCancelledError
from ..protocol.record import utc_now, isoformat_z
from .connection import ConnectionFactory
from .system import OsMetricCollector, OsSnapshot

logger = logging.getLogger(__name__)


@dataclass
class Level0Report:
    """Everything Level 0 learned about one engine."""
    engine: str
    collected_at: str = ""
    capability: Dict[str, bool] = field(default_factory=dict)
    snapshot: Dict[str, Any] = field(default_factory=dict)
    os: Optional[OsSnapshot] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collected_at": self.collected_at,
            "capability": dict(self.capability),
            self.engine: self.snapshot,
            "os": self.os.to_dict() if self.os else None,
            "warnings": list(self.warnings),
        }


@dataclass
class QueryJob:
    """One read-only sub-collector."""
    name: str                      # key in the snapshot
    run: Callable[[Any], Any]      # conn -> value
    failure: str                   # warning prefix when it raises


class Level0Collector(ABC):
    """
    Runs the engine's query jobs concurrently.

    Usage:
        collector = MysqlLevel0Collector(factory, table_limit=200, index_limit=500)
        report = collector.collect()
        if report.capability["status_access"]:
            ...
    """

    engine: str = ""

    def __init__(
        self,
        factory: ConnectionFactory,
        table_limit: int = 200,
        index_limit: int = 500,
        os_collector: Optional[OsMetricCollector] = None,
        max_workers: int = 4,
    ):
        self.factory = factory
        self.table_limit = table_limit
        self.index_limit = index_limit
        self.os_collector = os_collector or OsMetricCollector()
        self.max_workers = max_workers

    @abstractmethod
    def jobs(self) -> List[QueryJob]:
        """Read-only sub-collectors for this engine."""

    @abstractmethod
    def capability_flags(self, results: Dict[str, Any]) -> Dict[str, bool]:
        """Map successful job names to capability flags."""

    def collect(self, cancel: Optional[threading.Event] = None) -> Level0Report:
        """
        Raises:
            CapabilityProbeError: the database is unreachable
            CollectionCancelledError: `cancel` was set while collecting
        """
        report = Level0Report(engine=self.engine, collected_at=isoformat_z(utc_now()))

        # Fail fast on connectivity before fanning out.
        self.factory.connect().close()

        results: Dict[str, Any] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="level0") as pool:
            futures = {job.name: (job, pool.submit(self._run_job, job)) for job in self.jobs()}
            os_future = pool.submit(self.os_collector.collect)

            for name, (job, future) in futures.items():
                try:
                    results[name] = future.result()
                except Exception as e:
                    report.warnings.append(f"{job.failure}: {e}")
                    logger.warning("%s level0 %s: %s", self.engine, job.failure, e)

            try:
                report.os, os_warnings = os_future.result()
                report.warnings.extend(os_warnings)
            except Exception as e:
                report.warnings.append(f"os metrics failed: {e}")

        if cancel is not None and cancel.is_set():
            raise CollectionCancelledError("level0 collection cancelled")

        report.snapshot = self.build_snapshot(results)
        report.capability = self.capability_flags(results)
        report.capability[cap.OS_METRICS_ACCESS] = bool(report.os and report.os.has_any_metric())
        return report

    def build_snapshot(self, results: Dict[str, Any]) -> Dict[str, Any]:
        return {job.name: results.get(job.name) for job in self.jobs()}

    def _run_job(self, job: QueryJob):
        conn = self.factory.connect()
        try:
            return job.run(conn)
        finally:
            conn.close()
