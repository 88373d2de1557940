"""
CycleScheduler - drives collection cycles and builds their envelopes.

Per cycle:
1. Allocate the cycle number (run_id is fixed for the process)
2. Attempt loop: up to retry_times + 1 attempts, each bounded by
   timeout_secs, with backoff between failures; stop at first success
3. Record every attempt in the envelope; the window spans the whole loop

Daemon mode sleeps a jittered interval between cycles until max_cycles
or the stop event. Cycles never overlap: an attempt that times out is
cancelled and given a grace period to restore hot-switch state before
the next attempt starts.
"""

import logging
import os
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Any

from ..config import ScheduleConfig
from ..protocol.errors import (
    CollectionCancelledError,
    CollectionTimeoutError,
    error_type_of,
)
from ..protocol.levels import CollectionLevel
from ..protocol.record import (
    AttemptTrace,
    CollectionRecord,
    RecordStatus,
    ScheduleWindow,
    isoformat_z,
    utc_now,
)

logger = logging.getLogger(__name__)


# Time a cancelled attempt gets to finish its hot-switch restore.
RESTORE_GRACE_SECS = 10.0
# How often the driver checks the stop event while an attempt runs.
POLL_INTERVAL_SECS = 0.1
MIN_DAEMON_INTERVAL_MS = 1000
MAX_JITTER_PCT = 0.9


@dataclass
class AttemptContext:
    """Per-attempt state shared between the scheduler and run_cycle."""
    attempt: int
    cancel: threading.Event = field(default_factory=threading.Event)
    warnings: List[str] = field(default_factory=list)
    source_status: Dict[str, bool] = field(default_factory=dict)
    selected_level: Optional[CollectionLevel] = None

    def warn(self, message: str):
        self.warnings.append(message)
        logger.warning(message)

    def check_cancelled(self):
        """Raise CollectionCancelledError if the attempt was cancelled."""
        if self.cancel.is_set():
            raise CollectionCancelledError("collection attempt cancelled")


# run_cycle(engine, requested_level, ctx) -> payload
RunCycle = Callable[[str, CollectionLevel, AttemptContext], Dict[str, Any]]


def new_run_id() -> str:
    return f"run-{int(time.time() * 1000)}-{os.getpid()}"


def jittered_interval(interval_secs: float, jitter_pct: float, rng: Optional[random.Random] = None) -> float:
    """
    Daemon sleep in seconds: interval +/- jitter, never below one second.

    jitter_pct is clamped to [0, 0.9].
    """
    base_ms = int(interval_secs * 1000)
    if base_ms <= 0:
        return 0.0
    jitter_ms = round(base_ms * min(max(jitter_pct, 0.0), MAX_JITTER_PCT))
    if jitter_ms == 0:
        return base_ms / 1000
    rng = rng or random
    offset = rng.randint(-jitter_ms, jitter_ms)
    return max(base_ms + offset, MIN_DAEMON_INTERVAL_MS) / 1000


def backoff_delay(schedule: ScheduleConfig, failed_attempt: int) -> float:
    """
    Seconds to wait after the `failed_attempt`-th (1-based) failure.

    fixed: retry_backoff_ms every time
    exponential: retry_backoff_ms * 2^(n-1), capped at max_backoff_ms
    """
    base_ms = max(0, schedule.retry_backoff_ms)
    if schedule.backoff_policy == "exponential":
        delay_ms = min(base_ms * (2 ** max(0, failed_attempt - 1)), schedule.max_backoff_ms)
    else:
        delay_ms = base_ms
    return delay_ms / 1000


def run_with_timeout(
    func: Callable[[], Any],
    timeout_secs: float,
    cancel: threading.Event,
    stop: Optional[threading.Event] = None,
    grace_secs: float = RESTORE_GRACE_SECS,
) -> Any:
    """
    Run `func` on a worker thread, bounded by `timeout_secs`.

    On timeout or stop, `cancel` is set and the worker gets `grace_secs`
    to unwind (restore hot-switch state) before the failure is reported.

    Raises:
        CollectionTimeoutError: the bound was exceeded
        CollectionCancelledError: `stop` was set while waiting
        Exception: whatever `func` raised
    """
    outcome: Dict[str, Any] = {}

    def target():
        try:
            outcome["value"] = func()
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=target, name="collection-attempt", daemon=True)
    worker.start()

    deadline = time.monotonic() + timeout_secs
    failure: Optional[Exception] = None
    while worker.is_alive():
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            failure = CollectionTimeoutError(int(timeout_secs * 1000))
            break
        if stop is not None and stop.is_set():
            failure = CollectionCancelledError("collection cancelled by stop signal")
            break
        worker.join(min(remaining, POLL_INTERVAL_SECS))

    if failure is not None:
        cancel.set()
        worker.join(grace_secs)
        if worker.is_alive():
            logger.error("cancelled attempt did not finish within %.0fs; abandoning it", grace_secs)
        raise failure

    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


class CycleScheduler:
    """
    Runs cycles of `run_cycle` per ScheduleConfig.

    Usage:
        scheduler = CycleScheduler(schedule, run_cycle, engine="mysql",
                                   requested_level=CollectionLevel.LEVEL1)
        for record in scheduler.run():
            print(record.to_json())
    """

    def __init__(
        self,
        schedule: ScheduleConfig,
        run_cycle: RunCycle,
        engine: str,
        requested_level: CollectionLevel,
        run_id: Optional[str] = None,
        stop_event: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], bool]] = None,
        rng: Optional[random.Random] = None,
        grace_secs: float = RESTORE_GRACE_SECS,
    ):
        self.schedule = schedule
        self.run_cycle = run_cycle
        self.engine = engine
        self.requested_level = requested_level
        self.run_id = run_id or new_run_id()
        self.stop_event = stop_event or threading.Event()
        self._sleep = sleep or self.stop_event.wait
        self.rng = rng
        self.grace_secs = grace_secs
        self.cycle = 0

    def stop(self):
        """Ask the loop to finish; honored mid-attempt and between cycles."""
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def run(self) -> Iterator[CollectionRecord]:
        """Yield one record per cycle (once: a single cycle)."""
        while True:
            record = self.run_once()
            yield record

            if not self.schedule.is_daemon or self.stopped:
                return
            if self.schedule.max_cycles is not None and self.cycle >= self.schedule.max_cycles:
                logger.info("reached max_cycles=%s", self.schedule.max_cycles)
                return

            delay = jittered_interval(self.schedule.interval_secs, self.schedule.jitter_pct, self.rng)
            logger.debug("next cycle in %.1fs", delay)
            if self._sleep(delay) or self.stopped:
                return

    def run_once(self) -> CollectionRecord:
        """Run one cycle's attempt loop and build its envelope."""
        self.cycle += 1
        cycle = self.cycle
        logger.info("cycle %d start (%s, requested %s)", cycle, self.engine, self.requested_level.label)

        started = utc_now()
        attempts: List[AttemptTrace] = []
        contexts: List[AttemptContext] = []
        payload: Optional[Dict[str, Any]] = None
        last_error: Optional[str] = None
        max_attempts = max(0, self.schedule.retry_times) + 1

        for index in range(1, max_attempts + 1):
            ctx = AttemptContext(attempt=index)
            contexts.append(ctx)
            attempt_started = utc_now()
            clock = time.monotonic()
            try:
                payload = run_with_timeout(
                    lambda: self.run_cycle(self.engine, self.requested_level, ctx),
                    timeout_secs=self.schedule.timeout_secs,
                    cancel=ctx.cancel,
                    stop=self.stop_event,
                    grace_secs=self.grace_secs,
                )
                attempts.append(AttemptTrace(
                    index=index,
                    status=RecordStatus.OK.value,
                    started_at=isoformat_z(attempt_started),
                    duration_ms=int((time.monotonic() - clock) * 1000),
                ))
                last_error = None
                break
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                attempts.append(AttemptTrace(
                    index=index,
                    status=RecordStatus.FAILED.value,
                    started_at=isoformat_z(attempt_started),
                    duration_ms=int((time.monotonic() - clock) * 1000),
                    error=last_error,
                    error_type=error_type_of(e),
                ))
                payload = None
                logger.warning("cycle %d attempt %d/%d failed: %s", cycle, index, max_attempts, last_error)

                if isinstance(e, CollectionCancelledError) or self.stopped:
                    break
                if index < max_attempts:
                    delay = backoff_delay(self.schedule, index)
                    if delay > 0:
                        logger.info("retrying in %.1fs", delay)
                        if self._sleep(delay):
                            break

        ended = utc_now()
        ok = bool(attempts) and attempts[-1].ok
        final = contexts[-1]

        warnings: List[str] = []
        for ctx in contexts:
            prefix = "" if ctx is final else f"attempt {ctx.attempt}: "
            warnings.extend(prefix + message for message in ctx.warnings)

        record = CollectionRecord(
            run_id=self.run_id,
            cycle=cycle,
            engine=self.engine,
            requested_level=self.requested_level.label,
            schedule=self.schedule.to_dict(),
            window=ScheduleWindow.between(started, ended),
            selected_level=final.selected_level.label if ok and final.selected_level is not None else None,
            attempts=attempts,
            source_status=dict(final.source_status),
            warnings=warnings,
            status=RecordStatus.OK.value if ok else RecordStatus.FAILED.value,
            error=None if ok else last_error,
            payload=payload if ok else None,
        )
        logger.info("cycle %d end: %s after %d attempt(s)", cycle, record.status, len(attempts))
        return record
