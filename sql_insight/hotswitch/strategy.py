"""
Hot-switch strategies - engine-specific snapshot / apply / restore of the
diagnostic setting that routes slow statements into a log.

MySQL:
    slow_query_log, long_query_time via SET GLOBAL
PostgreSQL:
    log_min_duration_statement via ALTER SYSTEM SET + pg_reload_conf()
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional, Any

from ..protocol.errors import HotSwitchApplyError, HotSwitchRestoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DesiredSetting:
    """What the capture window needs from the server."""
    threshold_secs: float


@dataclass
class SettingSnapshot:
    """Values active before the switch, keyed by setting name."""
    engine: str
    values: Dict[str, Optional[str]] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        return self.values.get(name)


def _truthy_switch(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("on", "1", "true")


def _is_number(value: Optional[str]) -> bool:
    try:
        float(value)
        return True
    except (TypeError, ValueError):
        return False


class HotSwitchStrategy(ABC):
    """One engine's way of toggling statement logging."""

    engine: str = ""

    @abstractmethod
    def snapshot(self, conn) -> SettingSnapshot:
        """Read the current setting. Must not mutate server state."""

    @abstractmethod
    def apply(self, conn, desired: DesiredSetting) -> None:
        """Apply the capture setting. Raises HotSwitchApplyError."""

    @abstractmethod
    def restore(self, conn, snapshot: SettingSnapshot) -> None:
        """Put the snapshot back. Raises HotSwitchRestoreError."""


class MysqlSlowLogSwitch(HotSwitchStrategy):
    """Turns on the slow query log with a lowered long_query_time."""

    engine = "mysql"
    SETTINGS = ("slow_query_log", "long_query_time")

    def snapshot(self, conn) -> SettingSnapshot:
        values: Dict[str, Optional[str]] = {name: None for name in self.SETTINGS}
        cur = conn.cursor()
        try:
            cur.execute(
                "SHOW GLOBAL VARIABLES WHERE Variable_name IN "
                "('slow_query_log', 'long_query_time')"
            )
            for name, value in cur.fetchall():
                values[str(name).lower()] = None if value is None else str(value)
        except Exception as e:
            raise HotSwitchApplyError(f"failed to snapshot slow log settings: {e}") from e
        finally:
            cur.close()
        return SettingSnapshot(engine=self.engine, values=values)

    def apply(self, conn, desired: DesiredSetting) -> None:
        self._execute(conn, [
            f"SET GLOBAL long_query_time = {desired.threshold_secs:.6f}",
            "SET GLOBAL slow_query_log = 'ON'",
        ], HotSwitchApplyError, "failed to hot-enable slow log")

    def restore(self, conn, snapshot: SettingSnapshot) -> None:
        statements = []
        previous_threshold = snapshot.get("long_query_time")
        if _is_number(previous_threshold):
            statements.append(f"SET GLOBAL long_query_time = {float(previous_threshold):.6f}")
        previous_state = snapshot.get("slow_query_log")
        if previous_state is not None:
            state = "ON" if _truthy_switch(previous_state) else "OFF"
            statements.append(f"SET GLOBAL slow_query_log = '{state}'")
        if not statements:
            return
        self._execute(conn, statements, HotSwitchRestoreError, "failed to restore slow log settings")

    def _execute(self, conn, statements, error_cls, message: str) -> None:
        cur = conn.cursor()
        try:
            for statement in statements:
                logger.debug("mysql hot-switch: %s", statement)
                cur.execute(statement)
        except Exception as e:
            raise error_cls(f"{message}: {e}") from e
        finally:
            cur.close()


class PostgresStatementLogSwitch(HotSwitchStrategy):
    """
    Lowers log_min_duration_statement cluster-wide.

    ALTER SYSTEM writes postgresql.auto.conf, so restore either writes the
    previous value back (when it came from that file) or resets the entry
    so postgresql.conf / the built-in default applies again.
    """

    engine = "postgres"
    SETTING = "log_min_duration_statement"

    def snapshot(self, conn) -> SettingSnapshot:
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT setting, source, sourcefile FROM pg_settings WHERE name = %s",
                    (self.SETTING,),
                )
                row = cur.fetchone()
        except Exception as e:
            raise HotSwitchApplyError(f"failed to snapshot {self.SETTING}: {e}") from e

        if row is None:
            raise HotSwitchApplyError(f"{self.SETTING} not found in pg_settings")
        setting, source, sourcefile = row
        return SettingSnapshot(
            engine=self.engine,
            values={self.SETTING: setting},
            extra={"source": source, "sourcefile": sourcefile},
        )

    def apply(self, conn, desired: DesiredSetting) -> None:
        threshold_ms = max(0, int(round(desired.threshold_secs * 1000)))
        self._execute(conn, [
            f"ALTER SYSTEM SET {self.SETTING} = {threshold_ms}",
            "SELECT pg_reload_conf()",
        ], HotSwitchApplyError, f"failed to hot-enable {self.SETTING}")

    def restore(self, conn, snapshot: SettingSnapshot) -> None:
        previous = snapshot.get(self.SETTING)
        sourcefile = snapshot.extra.get("sourcefile") or ""
        if sourcefile.endswith("postgresql.auto.conf") and _is_number(previous):
            command = f"ALTER SYSTEM SET {self.SETTING} = {int(float(previous))}"
        else:
            command = f"ALTER SYSTEM RESET {self.SETTING}"
        self._execute(conn, [command, "SELECT pg_reload_conf()"],
                      HotSwitchRestoreError, f"failed to restore {self.SETTING}")

    def _execute(self, conn, commands, error_cls, message: str) -> None:
        # ALTER SYSTEM cannot run inside a transaction block
        old_autocommit = conn.autocommit
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                for cmd in commands:
                    logger.debug("postgres hot-switch: %s", cmd)
                    cur.execute(cmd)
        except Exception as e:
            raise error_cls(f"{message}: {e}") from e
        finally:
            conn.autocommit = old_autocommit


STRATEGIES: Dict[str, HotSwitchStrategy] = {
    "mysql": MysqlSlowLogSwitch(),
    "postgres": PostgresStatementLogSwitch(),
}
