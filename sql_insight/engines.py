"""
Engine registry - binds the per-engine variants the core is written against.

Each EngineProfile names the engine's CapabilityChecklist, HotSwitchStrategy,
LogPatternSet, Level 0 collector class and connection factory class.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Type

from .discovery.connection import (
    ConnectionFactory,
    MysqlConnectionFactory,
    PostgresConnectionFactory,
)
from .discovery.level0 import Level0Collector
from .discovery.mysql import MysqlLevel0Collector
from .discovery.postgres import PostgresLevel0Collector
from .discovery.probe import MysqlLevel1Prober
from .hotswitch.strategy import HotSwitchStrategy, MysqlSlowLogSwitch, PostgresStatementLogSwitch
from .logs.alerts import LogPatternSet, MYSQL_PATTERNS, POSTGRES_PATTERNS
from .negotiation.checklist import CapabilityChecklist, MysqlChecklist, PostgresChecklist


@dataclass(frozen=True)
class EngineProfile:
    name: str
    display_name: str
    checklist: CapabilityChecklist
    hot_switch: HotSwitchStrategy
    patterns: LogPatternSet
    level0_collector: Type[Level0Collector]
    connection_factory: Type[ConnectionFactory]
    level1_prober: Optional[Type[MysqlLevel1Prober]] = None


ENGINES: Dict[str, EngineProfile] = {
    "mysql": EngineProfile(
        name="mysql",
        display_name="MySQL",
        checklist=MysqlChecklist(),
        hot_switch=MysqlSlowLogSwitch(),
        patterns=MYSQL_PATTERNS,
        level0_collector=MysqlLevel0Collector,
        connection_factory=MysqlConnectionFactory,
        level1_prober=MysqlLevel1Prober,
    ),
    "postgres": EngineProfile(
        name="postgres",
        display_name="PostgreSQL",
        checklist=PostgresChecklist(),
        hot_switch=PostgresStatementLogSwitch(),
        patterns=POSTGRES_PATTERNS,
        level0_collector=PostgresLevel0Collector,
        connection_factory=PostgresConnectionFactory,
    ),
}


def get_engine(name: str) -> EngineProfile:
    """Profile for `name`; raises ValueError for unknown engines."""
    try:
        return ENGINES[name]
    except KeyError:
        raise ValueError(f"unsupported engine '{name}' (expected one of: {', '.join(ENGINES)})")
