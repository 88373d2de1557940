"""
Hot-switch module - temporary diagnostic setting changes with guaranteed restore.

- strategy: HotSwitchStrategy per engine (MySQL slow log, PostgreSQL statement log)
- session: HotSwitchController opening single-owner HotSwitchSession objects
"""

from .strategy import (
    DesiredSetting,
    SettingSnapshot,
    HotSwitchStrategy,
    MysqlSlowLogSwitch,
    PostgresStatementLogSwitch,
    STRATEGIES,
)
from .session import HotSwitchController, HotSwitchSession

__all__ = [
    "DesiredSetting",
    "SettingSnapshot",
    "HotSwitchStrategy",
    "MysqlSlowLogSwitch",
    "PostgresStatementLogSwitch",
    "STRATEGIES",
    "HotSwitchController",
    "HotSwitchSession",
]
