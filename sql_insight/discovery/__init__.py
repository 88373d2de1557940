"""
Discovery module - read-only collaborators that talk to the database and host.

- connection: MySQL / PostgreSQL connection factories
- level0: concurrent Level 0 skeleton (Level0Collector, Level0Report)
- mysql / postgres: engine-specific Level 0 query jobs
- system: OS metric collector (/proc, vmstat, iostat, sar)
- probe: Level 1 capability prober (MySQL)
"""

from .connection import (
    ConnectionFactory,
    MysqlConnectionFactory,
    PostgresConnectionFactory,
    parse_mysql_url,
    redact_url,
)
from .level0 import Level0Collector, Level0Report
from .mysql import MysqlLevel0Collector
from .postgres import PostgresLevel0Collector
from .system import OsMetricCollector, OsSnapshot
from .probe import MysqlLevel1Prober, Level1Probe

__all__ = [
    "ConnectionFactory",
    "MysqlConnectionFactory",
    "PostgresConnectionFactory",
    "parse_mysql_url",
    "redact_url",
    "Level0Collector",
    "Level0Report",
    "MysqlLevel0Collector",
    "PostgresLevel0Collector",
    "OsMetricCollector",
    "OsSnapshot",
    "MysqlLevel1Prober",
    "Level1Probe",
]
