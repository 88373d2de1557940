"""
Runner module - cycle orchestration.

- scheduler: CycleScheduler (timeout, retry/backoff, jitter, daemon loop)
- pipeline: CollectionPipeline (probe, negotiate, capture, payload)
"""

from .scheduler import (
    AttemptContext,
    CycleScheduler,
    backoff_delay,
    jittered_interval,
    new_run_id,
    run_with_timeout,
)
from .pipeline import CollectionPipeline

__all__ = [
    "AttemptContext",
    "CycleScheduler",
    "backoff_delay",
    "jittered_interval",
    "new_run_id",
    "run_with_timeout",
    "CollectionPipeline",
]
