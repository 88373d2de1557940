"""
Per-engine capability checklists.

Each checklist lists, for every collection level, the ordered checks that
must pass for that level to be selected, plus the tasks the level enables.
Reason strings are stable: downstream tooling matches on them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List

from ..protocol.levels import CollectionLevel
from . import capability as cap
from .capability import CapabilitySnapshot


@dataclass(frozen=True)
class Check:
    """A single named requirement with its failure reason."""
    name: str
    reason: str
    predicate: Callable[[CapabilitySnapshot], bool]

    def passes(self, snapshot: CapabilitySnapshot) -> bool:
        return bool(self.predicate(snapshot))


@dataclass(frozen=True)
class CollectionTask:
    """A collection task enabled at a given level."""
    level: CollectionLevel
    name: str
    source: str
    purpose: str


def require(name: str, reason: str) -> Check:
    """Check that passes when the named capability flag is set."""
    return Check(name=name, reason=reason, predicate=lambda snapshot: snapshot.has(name))


def not_implemented(name: str, reason: str) -> Check:
    """Check that always fails; marks a declared but unimplemented path."""
    return Check(name=name, reason=reason, predicate=lambda snapshot: False)


RESERVED_LEVEL_CHECKS: Dict[CollectionLevel, List[Check]] = {
    CollectionLevel.LEVEL2: [
        not_implemented("level2_sampling", "Level 2 collection is not implemented yet"),
    ],
    CollectionLevel.LEVEL3: [
        not_implemented("level3_tracing", "Level 3 collection is not implemented yet"),
    ],
}


class CapabilityChecklist(ABC):
    """Ordered per-level requirements for one engine."""

    engine: str = ""

    @abstractmethod
    def level0_checks(self) -> List[Check]:
        """Checks for read-only metadata collection."""

    @abstractmethod
    def level1_checks(self) -> List[Check]:
        """Checks for windowed log capture."""

    @abstractmethod
    def level0_tasks(self) -> List[CollectionTask]:
        """Tasks enabled at Level 0."""

    def level1_tasks(self) -> List[CollectionTask]:
        """Tasks enabled at Level 1."""
        return []

    def checks_for(self, level: CollectionLevel) -> List[Check]:
        """Ordered checks that must all pass for `level` itself."""
        if level is CollectionLevel.LEVEL0:
            return self.level0_checks()
        if level is CollectionLevel.LEVEL1:
            return self.level1_checks()
        return list(RESERVED_LEVEL_CHECKS.get(level, []))

    def tasks_for_level(self, level: CollectionLevel) -> List[CollectionTask]:
        """All tasks enabled when `level` is selected."""
        tasks: List[CollectionTask] = []
        if level >= CollectionLevel.LEVEL0:
            tasks.extend(self.level0_tasks())
        if level >= CollectionLevel.LEVEL1:
            tasks.extend(self.level1_tasks())
        return tasks


class MysqlChecklist(CapabilityChecklist):
    """MySQL: Level 0 metadata access, Level 1 slow/error log capture."""

    engine = "mysql"

    def level0_checks(self) -> List[Check]:
        return [
            require(cap.STATUS_ACCESS, "missing SHOW GLOBAL STATUS access"),
            require(cap.VARIABLES_ACCESS, "missing SHOW VARIABLES access"),
            require(cap.INFORMATION_SCHEMA_ACCESS, "missing INFORMATION_SCHEMA access"),
        ]

    def level1_checks(self) -> List[Check]:
        return [
            # An externally managed, readable slow log substitutes for the hot-switch.
            Check(
                name=cap.HOT_SWITCH_SLOW_LOG,
                reason="cannot hot-enable slow log",
                predicate=lambda s: s.has(cap.HOT_SWITCH_SLOW_LOG) or s.has(cap.EXTERNAL_SLOW_LOG),
            ),
            require(cap.READ_SLOW_LOG, "cannot collect slow log for digest aggregation"),
            require(cap.READ_ERROR_LOG, "cannot collect error log"),
        ]

    def level0_tasks(self) -> List[CollectionTask]:
        level = CollectionLevel.LEVEL0
        return [
            CollectionTask(level, "global_status", "SHOW GLOBAL STATUS",
                           "Capture throughput/latency/error counters"),
            CollectionTask(level, "global_variables", "SHOW VARIABLES",
                           "Capture runtime settings and limits"),
            CollectionTask(level, "schema_storage", "INFORMATION_SCHEMA.TABLES/STATISTICS",
                           "Collect table size and index layout"),
            CollectionTask(level, "replication_status", "SHOW REPLICA/SLAVE STATUS",
                           "Observe replication health and lag"),
            CollectionTask(level, "os_basic_metrics", "/proc + vmstat/iostat/sar",
                           "Capture CPU, memory, IO pressure"),
        ]

    def level1_tasks(self) -> List[CollectionTask]:
        level = CollectionLevel.LEVEL1
        return [
            CollectionTask(level, "slow_log_window", "slow_query_log",
                           "Collect slow SQL with threshold and time window"),
            CollectionTask(level, "slow_log_digest", "slow_query_log digest",
                           "Aggregate similar SQL fingerprints"),
            CollectionTask(level, "error_log_alerts", "error log",
                           "Detect deadlock/crash recovery/purge/replication alerts"),
        ]


class PostgresChecklist(CapabilityChecklist):
    """PostgreSQL: Level 0 only; Level 1 is declared but not implemented."""

    engine = "postgres"

    def level0_checks(self) -> List[Check]:
        return [
            require(cap.STATUS_ACCESS, "missing pg_stat_database access"),
            require(cap.SETTINGS_ACCESS, "missing pg_settings access"),
            require(cap.STORAGE_ACCESS, "missing relation/index metadata access"),
        ]

    def level1_checks(self) -> List[Check]:
        return [
            not_implemented("postgres_level1", "postgres Level 1 is not implemented yet"),
        ]

    def level0_tasks(self) -> List[CollectionTask]:
        level = CollectionLevel.LEVEL0
        return [
            CollectionTask(level, "database_stats", "pg_stat_database",
                           "Capture transaction/block/tuple counters"),
            CollectionTask(level, "settings", "pg_settings",
                           "Capture runtime settings and limits"),
            CollectionTask(level, "schema_storage", "pg_class/pg_indexes",
                           "Collect relation size and index layout"),
            CollectionTask(level, "replication_status", "pg_stat_replication/pg_stat_wal_receiver",
                           "Observe replication health"),
            CollectionTask(level, "os_basic_metrics", "/proc + vmstat/iostat/sar",
                           "Capture CPU, memory, IO pressure"),
        ]


CHECKLISTS: Dict[str, CapabilityChecklist] = {
    "mysql": MysqlChecklist(),
    "postgres": PostgresChecklist(),
}


def checklist_for(engine: str) -> CapabilityChecklist:
    """Checklist registered for `engine`."""
    try:
        return CHECKLISTS[engine]
    except KeyError:
        raise ValueError(f"unsupported engine: {engine!r}")
