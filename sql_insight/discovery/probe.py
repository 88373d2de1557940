"""
Level 1 capability prober (MySQL).

Strictly read-only: it looks at server variables, grants and the local
filesystem, and never changes a setting. The hot-switch itself happens
later, only after negotiation confirmed Level 1.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..logs.reader import is_readable_file
from ..negotiation import capability as cap
from .connection import ConnectionFactory

logger = logging.getLogger(__name__)


HOT_SWITCH_PRIVILEGES = ("SUPER", "SYSTEM_VARIABLES_ADMIN", "ALL PRIVILEGES")


@dataclass
class Level1Probe:
    flags: Dict[str, bool] = field(default_factory=dict)
    details: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


def has_hot_switch_privilege(grants: List[str]) -> bool:
    """True when a global (ON *.*) grant allows SET GLOBAL."""
    for grant in grants:
        upper = grant.upper()
        if " ON *.* " not in f"{upper} ":
            continue
        if any(privilege in upper for privilege in HOT_SWITCH_PRIVILEGES):
            return True
    return False


def resolve_error_log_path(log_error: Optional[str], datadir: Optional[str]) -> Optional[str]:
    """log_error as a usable path; "stderr" and empty mean no file."""
    if not log_error or not log_error.strip() or log_error.strip() == "stderr":
        return None
    path = log_error.strip()
    if not os.path.isabs(path) and datadir:
        path = os.path.normpath(os.path.join(datadir, path))
    return path


class MysqlLevel1Prober:
    """
    Determines Level 1 feasibility for MySQL.

    Args:
        factory: connection factory for the target server
        slow_log_path: operator override for the slow log file
        error_log_path: operator override for the error log file
        hot_switch_enabled: whether the operator allows SET GLOBAL at all
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        slow_log_path: Optional[str] = None,
        error_log_path: Optional[str] = None,
        hot_switch_enabled: bool = True,
    ):
        self.factory = factory
        self.slow_log_path = slow_log_path
        self.error_log_path = error_log_path
        self.hot_switch_enabled = hot_switch_enabled

    def probe(self) -> Level1Probe:
        """
        Raises:
            CapabilityProbeError: cannot connect
        """
        result = Level1Probe()
        conn = self.factory.connect()
        try:
            variables = self._fetch_variables(conn, result)
            grants = self._fetch_grants(conn, result) if self.hot_switch_enabled else []
        finally:
            conn.close()

        slow_path = self.slow_log_path or (variables.get("slow_query_log_file") or "").strip() or None
        error_path = self.error_log_path or resolve_error_log_path(
            variables.get("log_error"), variables.get("datadir"),
        )

        read_slow = bool(slow_path) and is_readable_file(slow_path)
        read_error = bool(error_path) and is_readable_file(error_path)
        if slow_path is None:
            result.warnings.append(
                "slow log path unavailable (provide --slow-log-path or MySQL slow_query_log_file)"
            )
        elif not read_slow:
            result.warnings.append(f"slow log file {slow_path} is not readable")
        if error_path is None:
            result.warnings.append(
                "error log path unavailable (provide --error-log-path or MySQL log_error)"
            )
        elif not read_error:
            result.warnings.append(f"error log file {error_path} is not readable")

        slow_log_already_on = (variables.get("slow_query_log") or "").strip().lower() in ("on", "1")
        result.flags = {
            cap.HOT_SWITCH_SLOW_LOG: self.hot_switch_enabled and has_hot_switch_privilege(grants),
            cap.EXTERNAL_SLOW_LOG: read_slow and (bool(self.slow_log_path) or slow_log_already_on),
            cap.READ_SLOW_LOG: read_slow,
            cap.READ_ERROR_LOG: read_error,
        }
        result.details = {
            cap.SLOW_LOG_PATH: slow_path,
            cap.ERROR_LOG_PATH: error_path,
        }
        logger.debug("level1 probe: %s %s", result.flags, result.details)
        return result

    def _fetch_variables(self, conn, result: Level1Probe) -> Dict[str, str]:
        cur = conn.cursor()
        try:
            cur.execute(
                "SHOW GLOBAL VARIABLES WHERE Variable_name IN "
                "('slow_query_log', 'slow_query_log_file', 'log_error', 'datadir')"
            )
            return {str(name): str(value) for name, value in cur.fetchall() if value is not None}
        except Exception as e:
            result.warnings.append(f"failed reading log variables: {e}")
            return {}
        finally:
            cur.close()

    def _fetch_grants(self, conn, result: Level1Probe) -> List[str]:
        cur = conn.cursor()
        try:
            cur.execute("SHOW GRANTS FOR CURRENT_USER()")
            return [str(row[0]) for row in cur.fetchall()]
        except Exception as e:
            result.warnings.append(f"failed reading grants: {e}")
            return []
        finally:
            cur.close()
