"""
Error taxonomy for the collector.

CapabilityProbeError: a read-only check could not run (distinct from "capability absent")
CollectionError: a collection step failed after capabilities were confirmed
CollectionTimeoutError: an attempt exceeded its wall-clock bound
CollectionCancelledError: the stop signal arrived mid-attempt
HotSwitchApplyError: applying a diagnostic setting failed (fatal for the attempt)
HotSwitchRestoreError: restoring a diagnostic setting failed (recorded as a warning)
LogParseError: a single log line could not be parsed (skipped and counted)

Downgrades are not errors; they travel as downgrade reasons.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorType(str, Enum):
    """Stable error kinds used in attempt traces."""
    CAPABILITY_PROBE = "CAPABILITY_PROBE"
    COLLECTION = "COLLECTION"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    HOT_SWITCH_APPLY = "HOT_SWITCH_APPLY"
    HOT_SWITCH_RESTORE = "HOT_SWITCH_RESTORE"
    LOG_PARSE = "LOG_PARSE"


class CollectorError(Exception):
    """Base class for collector failures."""
    error_type = ErrorType.COLLECTION


class CapabilityProbeError(CollectorError):
    """A read-only capability check itself failed (e.g. cannot connect)."""
    error_type = ErrorType.CAPABILITY_PROBE


class CollectionError(CollectorError):
    """A collection step failed after its capabilities were confirmed."""
    error_type = ErrorType.COLLECTION


class CollectionTimeoutError(CollectorError, TimeoutError):
    """An attempt exceeded timeout_secs."""
    error_type = ErrorType.TIMEOUT

    def __init__(self, timeout_ms: int):
        super().__init__(f"collection timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class CollectionCancelledError(CollectorError):
    """The process stop signal interrupted an attempt."""
    error_type = ErrorType.CANCELLED


class HotSwitchApplyError(CollectionError):
    """Applying the diagnostic setting failed; the attempt fails."""
    error_type = ErrorType.HOT_SWITCH_APPLY


class HotSwitchRestoreError(CollectorError):
    """Restoring the original setting failed; surfaced as a warning only."""
    error_type = ErrorType.HOT_SWITCH_RESTORE

    def __init__(self, message: str, failed: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.failed = failed or {}


class LogParseError(CollectorError):
    """One log line could not be parsed."""
    error_type = ErrorType.LOG_PARSE

    def __init__(self, message: str, line_no: int = 0):
        super().__init__(message)
        self.line_no = line_no


def error_type_of(error: BaseException) -> str:
    """Error kind for an arbitrary exception raised inside an attempt."""
    if isinstance(error, CollectorError):
        return error.error_type.value
    if isinstance(error, TimeoutError):
        return ErrorType.TIMEOUT.value
    return ErrorType.COLLECTION.value
