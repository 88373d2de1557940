"""
Tests for CycleScheduler: attempt loop, timeouts, backoff, daemon cycles.
"""

import random
import re
import threading

import pytest

from sql_insight.config import ScheduleConfig
from sql_insight.protocol.errors import CapabilityProbeError, CollectionError
from sql_insight.protocol.levels import CollectionLevel
from sql_insight.runner.scheduler import (
    CycleScheduler,
    backoff_delay,
    jittered_interval,
    new_run_id,
    run_with_timeout,
)


class SleepRecorder:
    """Replaces the scheduler's sleep; never actually waits."""

    def __init__(self, interrupt_after=None):
        self.calls = []
        self.interrupt_after = interrupt_after

    def __call__(self, seconds):
        self.calls.append(seconds)
        return self.interrupt_after is not None and len(self.calls) >= self.interrupt_after


def succeed(engine, level, ctx):
    ctx.selected_level = level
    ctx.source_status["status_access"] = True
    return {"engine": engine, "selected_level": level.label}


def make_scheduler(run_cycle, sleep=None, **schedule):
    settings = dict(retry_times=0, retry_backoff_ms=0, timeout_secs=5)
    settings.update(schedule)
    return CycleScheduler(
        ScheduleConfig(**settings),
        run_cycle,
        engine="mysql",
        requested_level=CollectionLevel.LEVEL1,
        sleep=sleep or SleepRecorder(),
        grace_secs=2,
    )


class TestSingleCycle:

    def test_success(self):
        record = make_scheduler(succeed).run_once()

        assert record.ok
        assert record.cycle == 1
        assert record.selected_level == "Level 1"
        assert record.requested_level == "Level 1"
        assert record.payload == {"engine": "mysql", "selected_level": "Level 1"}
        assert record.source_status == {"status_access": True}
        assert record.error is None
        assert [a.status for a in record.attempts] == ["ok"]
        assert record.schedule["mode"] == "once"

    def test_retry_then_success(self):
        calls = []

        def flaky(engine, level, ctx):
            calls.append(ctx.attempt)
            if ctx.attempt == 1:
                ctx.warn("SHOW VARIABLES failed: lost connection")
                raise CapabilityProbeError("failed to connect MySQL: refused")
            ctx.warn("slow log segment truncated at 2000000 bytes")
            return succeed(engine, level, ctx)

        record = make_scheduler(flaky, retry_times=2).run_once()

        assert calls == [1, 2]
        assert record.ok
        assert [a.status for a in record.attempts] == ["failed", "ok"]
        assert record.attempts[0].error_type == "CAPABILITY_PROBE"
        assert record.error is None
        assert record.warnings == [
            "attempt 1: SHOW VARIABLES failed: lost connection",
            "slow log segment truncated at 2000000 bytes",
        ]

    def test_all_attempts_fail(self):
        def broken(engine, level, ctx):
            ctx.selected_level = CollectionLevel.LEVEL0
            raise CollectionError("failed reading error log file /var/log/mysql/error.log")

        record = make_scheduler(broken, retry_times=2).run_once()

        assert not record.ok
        assert record.status == "failed"
        assert len(record.attempts) == 3
        assert record.payload is None
        assert record.selected_level is None
        assert record.error == "failed reading error log file /var/log/mysql/error.log"

    def test_timeout_every_attempt(self):
        restored = []

        def hangs(engine, level, ctx):
            ctx.cancel.wait(30)
            restored.append(ctx.attempt)
            return {}

        record = make_scheduler(hangs, timeout_secs=1, retry_times=2).run_once()

        assert not record.ok
        assert [a.status for a in record.attempts] == ["failed"] * 3
        assert all(a.error_type == "TIMEOUT" for a in record.attempts)
        assert "timed out" in record.error
        assert restored == [1, 2, 3]
        assert record.window.duration_ms >= 3000

    def test_stop_cancels_without_retry(self):
        def hangs(engine, level, ctx):
            ctx.cancel.wait(30)
            return {}

        scheduler = make_scheduler(hangs, retry_times=3)
        timer = threading.Timer(0.2, scheduler.stop)
        timer.start()
        record = scheduler.run_once()
        timer.cancel()

        assert len(record.attempts) == 1
        assert record.attempts[0].error_type == "CANCELLED"
        assert not record.ok

    def test_backoff_between_failures(self):
        sleep = SleepRecorder()

        def broken(engine, level, ctx):
            raise CollectionError("boom")

        make_scheduler(broken, sleep=sleep, retry_times=2, retry_backoff_ms=500).run_once()
        assert sleep.calls == [0.5, 0.5]

    def test_backoff_interrupted_by_stop(self):
        sleep = SleepRecorder(interrupt_after=1)

        def broken(engine, level, ctx):
            raise CollectionError("boom")

        record = make_scheduler(broken, sleep=sleep, retry_times=3, retry_backoff_ms=500).run_once()
        assert len(record.attempts) == 1


class TestDaemon:

    def test_max_cycles(self):
        sleep = SleepRecorder()
        scheduler = make_scheduler(succeed, sleep=sleep, mode="daemon",
                                   interval_secs=60, jitter_pct=0.0, max_cycles=3)
        records = list(scheduler.run())

        assert [r.cycle for r in records] == [1, 2, 3]
        assert len({r.run_id for r in records}) == 1
        assert sleep.calls == [60.0, 60.0]

    def test_stop_between_cycles(self):
        sleep = SleepRecorder(interrupt_after=1)
        scheduler = make_scheduler(succeed, sleep=sleep, mode="daemon", interval_secs=60)
        records = list(scheduler.run())
        assert len(records) == 1

    def test_failed_cycle_does_not_stop_daemon(self):
        outcomes = iter([CollectionError("boom"), None])

        def alternating(engine, level, ctx):
            error = next(outcomes)
            if error is not None:
                raise error
            return succeed(engine, level, ctx)

        scheduler = make_scheduler(alternating, mode="daemon", jitter_pct=0.0, max_cycles=2)
        records = list(scheduler.run())
        assert [r.status for r in records] == ["failed", "ok"]

    def test_once_mode_runs_one_cycle(self):
        assert len(list(make_scheduler(succeed).run())) == 1


class TestTiming:

    def test_fixed_backoff(self):
        schedule = ScheduleConfig(retry_backoff_ms=1000)
        assert [backoff_delay(schedule, n) for n in (1, 2, 3)] == [1.0, 1.0, 1.0]

    def test_exponential_backoff_is_capped(self):
        schedule = ScheduleConfig(retry_backoff_ms=1000, backoff_policy="exponential", max_backoff_ms=5000)
        assert [backoff_delay(schedule, n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_bounds(self):
        rng = random.Random(7)
        for _ in range(200):
            delay = jittered_interval(10, 0.5, rng)
            assert 5.0 <= delay <= 15.0

    def test_jitter_clamped(self):
        rng = random.Random(7)
        for _ in range(200):
            delay = jittered_interval(10, 5.0, rng)
            assert 1.0 <= delay <= 19.0

    def test_jitter_never_below_one_second(self):
        rng = random.Random(3)
        for _ in range(200):
            assert jittered_interval(1, 0.9, rng) >= 1.0

    def test_no_jitter(self):
        assert jittered_interval(30, 0.0) == 30.0

    def test_run_id_format(self):
        assert re.match(r"^run-\d{13}-\d+$", new_run_id())


class TestRunWithTimeout:

    def test_returns_value(self):
        assert run_with_timeout(lambda: 42, 5, threading.Event()) == 42

    def test_propagates_error(self):
        def fail():
            raise CollectionError("boom")

        with pytest.raises(CollectionError, match="boom"):
            run_with_timeout(fail, 5, threading.Event())
