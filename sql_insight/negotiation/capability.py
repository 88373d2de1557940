"""
CapabilitySnapshot - what the environment allows, captured once per cycle.

Flags are booleans keyed by capability name; details carry supporting
strings such as resolved log paths. The snapshot is immutable once built.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Any


# Level 0 (MySQL)
STATUS_ACCESS = "status_access"
VARIABLES_ACCESS = "variables_access"
INFORMATION_SCHEMA_ACCESS = "information_schema_access"

# Level 0 (PostgreSQL)
SETTINGS_ACCESS = "settings_access"
STORAGE_ACCESS = "storage_access"

# Level 0 (informational, both engines)
REPLICATION_STATUS_ACCESS = "replication_status_access"
OS_METRICS_ACCESS = "os_metrics_access"

# Level 1
HOT_SWITCH_SLOW_LOG = "hot_switch_slow_log"
EXTERNAL_SLOW_LOG = "external_slow_log"
READ_SLOW_LOG = "read_slow_log"
READ_ERROR_LOG = "read_error_log"

# Details
SLOW_LOG_PATH = "slow_log_path"
ERROR_LOG_PATH = "error_log_path"


@dataclass(frozen=True)
class CapabilitySnapshot:
    """Immutable capability flags and details for one engine and cycle."""
    engine: str
    flags: Mapping[str, bool] = field(default_factory=dict)
    details: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze the mappings so collectors cannot mutate a captured snapshot.
        object.__setattr__(self, "flags", MappingProxyType(dict(self.flags)))
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @classmethod
    def create(
        cls,
        engine: str,
        flags: Optional[Dict[str, bool]] = None,
        details: Optional[Dict[str, str]] = None,
    ) -> "CapabilitySnapshot":
        return cls(
            engine=engine,
            flags={k: bool(v) for k, v in (flags or {}).items()},
            details={k: str(v) for k, v in (details or {}).items() if v is not None},
        )

    def has(self, name: str) -> bool:
        """True only if the capability was probed and present."""
        return bool(self.flags.get(name, False))

    def detail(self, name: str) -> Optional[str]:
        return self.details.get(name)

    def merged(
        self,
        flags: Optional[Dict[str, bool]] = None,
        details: Optional[Dict[str, str]] = None,
    ) -> "CapabilitySnapshot":
        """New snapshot with additional flags/details layered on top."""
        new_flags = dict(self.flags)
        new_flags.update({k: bool(v) for k, v in (flags or {}).items()})
        new_details = dict(self.details)
        new_details.update({k: str(v) for k, v in (details or {}).items() if v is not None})
        return CapabilitySnapshot(engine=self.engine, flags=new_flags, details=new_details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.engine,
            "flags": dict(self.flags),
            "details": dict(self.details),
        }
