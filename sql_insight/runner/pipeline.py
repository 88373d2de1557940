"""
CollectionPipeline - the run_cycle closure driven by CycleScheduler.

One attempt:
1. Level 0 collection (also probes Level 0 capabilities)
2. Level 1 probe when Level 1+ was requested (read-only)
3. Negotiation
4. Level 1 capture when selected: hot-switch window (or externally
   managed slow log), slow log digest, error log alerts
5. Payload assembly

Negotiation never mutates the server; only the hot-switch session does,
and only after Level 1 was selected.
"""

import logging
from typing import Dict, Optional, Any

from ..config import Config
from ..discovery.connection import ConnectionFactory
from ..discovery.level0 import Level0Collector
from ..discovery.probe import Level1Probe
from ..engines import EngineProfile, get_engine
from ..hotswitch.session import HotSwitchController
from ..hotswitch.strategy import DesiredSetting
from ..logs.alerts import extract_from_content
from ..logs.digest import DigestAggregator, DigestWindow
from ..logs.reader import file_size, read_appended_segment, read_tail
from ..logs.slowlog import parse_slow_log
from ..negotiation import capability as cap
from ..negotiation.capability import CapabilitySnapshot
from ..negotiation.negotiator import NegotiationResult, negotiate
from ..protocol.errors import CollectionCancelledError, CollectionError
from ..protocol.levels import CollectionLevel
from ..protocol.record import isoformat_z, utc_now
from .scheduler import AttemptContext

logger = logging.getLogger(__name__)


class CollectionPipeline:
    """
    Wires collaborators for one engine into a run_cycle callable.

    Usage:
        pipeline = CollectionPipeline(config)
        scheduler = CycleScheduler(config.schedule, pipeline.run_cycle,
                                   config.engine, config.collect_level)
    """

    def __init__(
        self,
        config: Config,
        profile: Optional[EngineProfile] = None,
        factory: Optional[ConnectionFactory] = None,
        level0_collector: Optional[Level0Collector] = None,
        prober=None,
        controller: Optional[HotSwitchController] = None,
    ):
        self.config = config
        self.profile = profile or get_engine(config.engine)

        if factory is None:
            factory = self.profile.connection_factory(
                config.database.url_for(self.profile.name) or "",
                connect_timeout=config.schedule.timeout_secs,
            )
        self.factory = factory

        self.level0_collector = level0_collector or self.profile.level0_collector(
            factory,
            table_limit=config.limits.table_limit,
            index_limit=config.limits.index_limit,
        )

        if prober is None and self.profile.level1_prober is not None:
            prober = self.profile.level1_prober(
                factory,
                slow_log_path=config.level1.slow_log_path,
                error_log_path=config.level1.error_log_path,
                hot_switch_enabled=config.level1.hot_switch,
            )
        self.prober = prober

        self.controller = controller or HotSwitchController(
            factory.connect,
            strategies={self.profile.name: self.profile.hot_switch},
            restore_on_exit=config.level1.restore_settings,
        )
        self.aggregator = DigestAggregator()

    def run_cycle(self, engine: str, requested_level: CollectionLevel, ctx: AttemptContext) -> Dict[str, Any]:
        """
        Collect at the highest negotiable level up to `requested_level`.

        Raises:
            CapabilityProbeError: the database cannot be reached
            CollectionError: a step failed after its capability was confirmed
            CollectionCancelledError: the attempt was cancelled
        """
        level0 = self.level0_collector.collect(cancel=ctx.cancel)
        ctx.source_status.update(level0.capability)
        for message in level0.warnings:
            ctx.warn(message)
        ctx.check_cancelled()

        flags: Dict[str, bool] = dict(level0.capability)
        details: Dict[str, str] = {}
        probe: Optional[Level1Probe] = None
        if requested_level >= CollectionLevel.LEVEL1 and self.prober is not None:
            probe = self.prober.probe()
            flags.update(probe.flags)
            details.update({k: v for k, v in probe.details.items() if v is not None})
            ctx.source_status.update(probe.flags)
            for message in probe.warnings:
                ctx.warn(message)
            ctx.check_cancelled()

        snapshot = CapabilitySnapshot.create(engine, flags, details)
        result = negotiate(engine, requested_level, snapshot, self.profile.checklist)
        ctx.selected_level = result.selected_level
        self._log_negotiation(result)

        payload: Dict[str, Any] = {
            "engine": engine,
            "requested_level": requested_level.label,
            "selected_level": result.selected_level.label,
            "downgrade_reasons": result.downgrade_reasons,
            "level0": level0.to_dict(),
        }

        if requested_level >= CollectionLevel.LEVEL1:
            level1: Dict[str, Any] = {
                "capability": dict(probe.flags) if probe else {},
                "slow_log": None,
                "error_log": None,
            }
            if result.selected_level >= CollectionLevel.LEVEL1:
                level1["slow_log"] = self._collect_slow_log(engine, snapshot, ctx)
                level1["error_log"] = self._collect_error_log(snapshot, ctx)
            payload["level1"] = level1

        return payload

    def close_active_session(self) -> bool:
        """
        Restore and release a hot-switch session still held by an attempt.

        Called when the process is interrupted while an attempt may be
        inside its window. Waits for a restore another thread already
        started.

        Returns:
            True when a session was open and its restore did not fail
        """
        session = self.controller.active
        if session is None:
            return False
        logger.warning("closing hot-switch session left open by an interrupted attempt")
        error = session.close(restore=self.config.level1.restore_settings)
        if error is not None:
            logger.error("hot-switch restore on interrupt failed: %s", error)
            return False
        return True

    def _log_negotiation(self, result: NegotiationResult):
        logger.info(
            "negotiated %s for %s (requested %s)",
            result.selected_level.label, result.engine, result.requested_level.label,
        )
        for evaluation in result.evaluations:
            if not evaluation.ok:
                logger.info("downgraded from %s: %s", evaluation.level.label, "; ".join(evaluation.reasons))
        for task in result.tasks:
            logger.debug("enabled task %s [%s] via %s: %s", task.name, task.level.label, task.source, task.purpose)

    def _collect_slow_log(self, engine: str, snapshot: CapabilitySnapshot, ctx: AttemptContext) -> Dict[str, Any]:
        settings = self.config.level1
        max_bytes = self.config.limits.max_slow_log_bytes
        path = snapshot.detail(cap.SLOW_LOG_PATH)
        use_hot_switch = snapshot.has(cap.HOT_SWITCH_SLOW_LOG)

        report: Dict[str, Any] = {
            "source": "hot_switch" if use_hot_switch else "external",
            "enabled_for_window": use_hot_switch,
            "window_secs": settings.slow_log_window_secs,
            "long_query_time_secs": settings.long_query_time_secs,
            "slow_log_path": path,
        }

        offset = self._initial_offset(path)
        window_start = utc_now()
        if use_hot_switch:
            session = self.controller.open(
                engine,
                settings.slow_log_window_secs,
                DesiredSetting(threshold_secs=settings.long_query_time_secs),
            )
            # the restore outcome is reported even when the window raised
            try:
                with session:
                    completed = session.hold(ctx.cancel)
                    if not completed:
                        raise CollectionCancelledError("slow log window cancelled")
                    window_end = utc_now()
                    segment = self._read_segment(path, offset, max_bytes)
            finally:
                if session.restore_error is not None:
                    ctx.warn(f"hot-switch restore failed: {session.restore_error}")
            report["previous_settings"] = dict(session.snapshot.values)
            report["restore"] = {
                "attempted": session.restore_attempted,
                "succeeded": session.restore_succeeded,
            }
        else:
            if ctx.cancel.wait(settings.slow_log_window_secs):
                raise CollectionCancelledError("slow log window cancelled")
            window_end = utc_now()
            segment = self._read_segment(path, offset, max_bytes)

        if segment.truncated:
            ctx.warn(f"slow log segment truncated at {max_bytes} bytes")

        parsed = parse_slow_log(segment.text)
        if parsed.skipped_lines:
            ctx.warn(f"skipped {parsed.skipped_lines} unparseable slow log line(s)")
        digest = self.aggregator.aggregate(
            parsed.entries,
            window=DigestWindow(start=window_start, end=window_end),
        )

        report.update({
            "window_start": isoformat_z(window_start),
            "window_end": isoformat_z(window_end),
            "collected_bytes": segment.collected_bytes,
            "truncated": segment.truncated,
            "parsed_entries": len(parsed.entries),
            "skipped_lines": parsed.skipped_lines,
            "parse_errors": parsed.errors,
            "out_of_window": digest.out_of_window,
            "digest_count": len(digest.buckets),
            "digests": [bucket.to_dict() for bucket in digest.buckets],
        })
        return report

    def _collect_error_log(self, snapshot: CapabilitySnapshot, ctx: AttemptContext) -> Dict[str, Any]:
        limits = self.config.limits
        path = snapshot.detail(cap.ERROR_LOG_PATH)
        try:
            segment = read_tail(path, limits.max_error_log_bytes)
        except OSError as e:
            raise CollectionError(f"failed reading error log file {path}: {e}") from e

        if segment.truncated:
            ctx.warn(f"error log truncated to last {limits.max_error_log_bytes} bytes")
        alerts = extract_from_content(segment.text, self.profile.patterns, limits.max_error_log_lines)
        if alerts.truncated:
            ctx.warn(f"error log truncated to last {limits.max_error_log_lines} lines")

        report = {"error_log_path": path}
        report.update(alerts.to_dict())
        return report

    @staticmethod
    def _initial_offset(path: str) -> int:
        try:
            return file_size(path)
        except OSError as e:
            raise CollectionError(f"failed reading slow log file {path}: {e}") from e

    @staticmethod
    def _read_segment(path: str, offset: int, max_bytes: int):
        try:
            return read_appended_segment(path, offset, max_bytes)
        except OSError as e:
            raise CollectionError(f"failed reading slow log file {path}: {e}") from e
