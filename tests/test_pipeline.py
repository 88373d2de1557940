"""
End-to-end tests for CollectionPipeline driven by CycleScheduler against
scripted servers.
"""

import json
import threading

import pytest

from sql_insight.discovery.mysql import MysqlLevel0Collector
from sql_insight.discovery.postgres import PostgresLevel0Collector
from sql_insight.engines import get_engine
from sql_insight.hotswitch.strategy import DesiredSetting
from sql_insight.protocol.errors import CollectionCancelledError
from sql_insight.protocol.levels import CollectionLevel
from sql_insight.protocol.record import isoformat_z, utc_now
from sql_insight.runner.pipeline import CollectionPipeline
from sql_insight.runner.scheduler import AttemptContext, CycleScheduler

from mocks import MockConnectionFactory, QueryResult, mysql_rules, postgres_rules, workload_slow_log


def build_pipeline(config, factory, os_collector):
    collector_cls = MysqlLevel0Collector if config.engine == "mysql" else PostgresLevel0Collector
    return CollectionPipeline(
        config,
        profile=get_engine(config.engine),
        factory=factory,
        level0_collector=collector_cls(factory, os_collector=os_collector),
    )


def run(config, pipeline):
    scheduler = CycleScheduler(
        config.schedule,
        pipeline.run_cycle,
        engine=config.engine,
        requested_level=config.collect_level,
        sleep=lambda seconds: False,
    )
    return scheduler.run_once()


def workload_on_apply(slow_log_file):
    """Rule appending a captured workload when the slow log is switched on."""
    def append(query):
        with open(slow_log_file, "a") as f:
            f.write(workload_slow_log(isoformat_z(utc_now())))
        return QueryResult()
    return ("set global slow_query_log = 'on'", append)


class TestMysqlLevel1:

    def test_hot_switch_capture(self, config, os_collector, slow_log_file, error_log_file):
        factory = MockConnectionFactory(
            [workload_on_apply(slow_log_file)] + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert record.ok, record.error
        assert record.selected_level == "Level 1"
        payload = record.payload
        assert payload["downgrade_reasons"] == []

        slow_log = payload["level1"]["slow_log"]
        assert slow_log["source"] == "hot_switch"
        assert slow_log["enabled_for_window"] is True
        assert slow_log["previous_settings"] == {"slow_query_log": "OFF", "long_query_time": "10.000000"}
        assert slow_log["restore"] == {"attempted": True, "succeeded": True}
        # pre-existing content before the window is not re-read
        assert slow_log["parsed_entries"] == 4
        assert slow_log["out_of_window"] == 0
        assert slow_log["digest_count"] == 2
        assert slow_log["digests"][1]["fingerprint"] == "select * from orders where id = ?"
        assert slow_log["digests"][1]["count"] == 3

        error_log = payload["level1"]["error_log"]
        assert error_log["error_log_path"] == str(error_log_file)
        assert error_log["alert_count"] == 4

        assert factory.statements("set global") == [
            "set global long_query_time = 0.200000",
            "set global slow_query_log = 'on'",
            "set global long_query_time = 10.000000",
            "set global slow_query_log = 'off'",
        ]
        assert pipeline.controller.active is None

    def test_external_slow_log_never_changes_settings(self, config, os_collector, slow_log_file, error_log_file):
        config.level1.hot_switch = False
        config.level1.slow_log_path = str(slow_log_file)
        factory = MockConnectionFactory(mysql_rules(str(slow_log_file), str(error_log_file)))
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert record.selected_level == "Level 1"
        slow_log = record.payload["level1"]["slow_log"]
        assert slow_log["source"] == "external"
        assert slow_log["enabled_for_window"] is False
        assert slow_log["parsed_entries"] == 0
        assert factory.statements("set ") == []

    def test_restore_failure_is_a_warning(self, config, os_collector, slow_log_file, error_log_file):
        factory = MockConnectionFactory(
            [("set global slow_query_log = 'off'", ConnectionError("server has gone away"))]
            + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert record.ok
        assert record.payload["level1"]["slow_log"]["restore"] == {"attempted": True, "succeeded": False}
        assert any(w.startswith("hot-switch restore failed:") for w in record.warnings)

    def test_restore_failure_after_timeout_is_warned(self, config, os_collector, slow_log_file, error_log_file):
        config.level1.slow_log_window_secs = 30
        config.schedule.timeout_secs = 1
        factory = MockConnectionFactory(
            [("set global slow_query_log = 'off'", ConnectionError("server has gone away"))]
            + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert not record.ok
        assert record.attempts[0].error_type == "TIMEOUT"
        assert record.error == "collection timed out after 1000ms"
        assert any(w.startswith("hot-switch restore failed:") for w in record.warnings)
        assert pipeline.controller.active is None

    def test_apply_failure_fails_the_attempt(self, config, os_collector, slow_log_file, error_log_file):
        factory = MockConnectionFactory(
            [("set global long_query_time = 0.2", PermissionError("Access denied"))]
            + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert not record.ok
        assert record.attempts[0].error_type == "HOT_SWITCH_APPLY"
        assert record.payload is None
        assert factory.statements("set global slow_query_log = 'off'") == [
            "set global slow_query_log = 'off'"
        ]

    def test_downgrade_without_log_access(self, config, os_collector):
        config.level1.hot_switch = False
        factory = MockConnectionFactory(mysql_rules())
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert record.ok
        assert record.selected_level == "Level 0"
        payload = record.payload
        assert payload["downgrade_reasons"] == [
            "[Level 1] cannot hot-enable slow log",
            "[Level 1] cannot collect slow log for digest aggregation",
            "[Level 1] cannot collect error log",
        ]
        assert payload["level1"]["slow_log"] is None
        assert payload["level1"]["error_log"] is None
        assert payload["level1"]["capability"]["read_slow_log"] is False
        assert record.source_status["read_error_log"] is False
        assert factory.statements("set ") == []

    def test_error_log_line_budget(self, config, os_collector, slow_log_file, error_log_file):
        config.limits.max_error_log_lines = 2
        factory = MockConnectionFactory(mysql_rules(str(slow_log_file), str(error_log_file)))
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        error_log = record.payload["level1"]["error_log"]
        assert error_log["truncated"] is True
        assert error_log["sampled_lines"] == 2
        assert "error log truncated to last 2 lines" in record.warnings


class TestMysqlLevel0:

    def test_level0_request_skips_level1(self, config, os_collector):
        config.collect_level = CollectionLevel.LEVEL0
        factory = MockConnectionFactory(mysql_rules())
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert record.selected_level == "Level 0"
        assert "level1" not in record.payload
        assert factory.statements("show grants") == []

    def test_unavailable_is_not_a_failure(self, config, os_collector):
        config.collect_level = CollectionLevel.LEVEL0
        factory = MockConnectionFactory(mysql_rules(denied=("show global status",)))
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert record.ok
        assert record.selected_level == "Unavailable"
        assert record.payload["downgrade_reasons"] == ["[Level 0] missing SHOW GLOBAL STATUS access"]

    def test_unreachable_server(self, config, os_collector):
        config.schedule.retry_times = 1
        factory = MockConnectionFactory(connect_error="failed to connect MySQL: Connection refused")
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert not record.ok
        assert record.selected_level is None
        assert len(record.attempts) == 2
        assert record.attempts[-1].error_type == "CAPABILITY_PROBE"
        assert record.error == "failed to connect MySQL: Connection refused"

    def test_envelope_serializes(self, config, os_collector):
        config.collect_level = CollectionLevel.LEVEL0
        factory = MockConnectionFactory(mysql_rules())
        pipeline = build_pipeline(config, factory, os_collector)
        data = json.loads(run(config, pipeline).to_json())

        assert data["engine"] == "mysql"
        assert data["payload"]["level0"]["mysql"]["global_status"]["Questions"] == "1048576"
        assert data["payload"]["level0"]["os"]["load_average"]["one"] == 0.42


class TestPostgres:

    def test_level1_downgrades_to_level0(self, config, os_collector):
        config.engine = "postgres"
        factory = MockConnectionFactory(postgres_rules())
        pipeline = build_pipeline(config, factory, os_collector)
        record = run(config, pipeline)

        assert record.ok
        assert record.selected_level == "Level 0"
        assert record.payload["downgrade_reasons"] == ["[Level 1] postgres Level 1 is not implemented yet"]
        assert record.payload["level1"]["slow_log"] is None
        assert record.payload["level0"]["postgres"]["global_variables"]["max_connections"] == "100"
        assert factory.statements("alter system") == []

    def test_default_collaborators(self, config):
        config.engine = "postgres"
        pipeline = CollectionPipeline(config)
        assert pipeline.prober is None
        assert pipeline.factory.url == config.database.postgres_url


class TestCancellation:

    def test_cancel_during_window_still_restores(self, config, os_collector, slow_log_file, error_log_file):
        config.level1.slow_log_window_secs = 30
        ctx = AttemptContext(attempt=1)

        def stop_signal(query):
            ctx.cancel.set()
            return QueryResult()

        factory = MockConnectionFactory(
            [("set global slow_query_log = 'on'", stop_signal)]
            + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)

        with pytest.raises(CollectionCancelledError):
            pipeline.run_cycle("mysql", CollectionLevel.LEVEL1, ctx)

        assert factory.statements("set global slow_query_log = 'off'") == [
            "set global slow_query_log = 'off'"
        ]
        assert pipeline.controller.active is None

    def test_cancel_with_failing_restore_warns(self, config, os_collector, slow_log_file, error_log_file):
        config.level1.slow_log_window_secs = 30
        ctx = AttemptContext(attempt=1)

        def stop_signal(query):
            ctx.cancel.set()
            return QueryResult()

        factory = MockConnectionFactory(
            [
                ("set global slow_query_log = 'on'", stop_signal),
                ("set global slow_query_log = 'off'", ConnectionError("server has gone away")),
            ]
            + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)

        with pytest.raises(CollectionCancelledError):
            pipeline.run_cycle("mysql", CollectionLevel.LEVEL1, ctx)

        assert [w for w in ctx.warnings if w.startswith("hot-switch restore failed:")]


class TestInterruptedSession:

    def test_close_active_session_restores(self, config, os_collector, slow_log_file, error_log_file):
        factory = MockConnectionFactory(mysql_rules(str(slow_log_file), str(error_log_file)))
        pipeline = build_pipeline(config, factory, os_collector)
        pipeline.controller.open("mysql", 30, DesiredSetting(threshold_secs=0.2))

        assert pipeline.close_active_session() is True
        assert pipeline.controller.active is None
        assert factory.statements("set global slow_query_log = 'off'") == [
            "set global slow_query_log = 'off'"
        ]
        assert pipeline.close_active_session() is False

    def test_close_active_session_reports_failed_restore(self, config, os_collector, slow_log_file, error_log_file):
        factory = MockConnectionFactory(
            [("set global slow_query_log = 'off'", ConnectionError("server has gone away"))]
            + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)
        pipeline.controller.open("mysql", 30, DesiredSetting(threshold_secs=0.2))

        assert pipeline.close_active_session() is False
        assert pipeline.controller.active is None

    def test_no_session_is_a_no_op(self, config, os_collector):
        pipeline = build_pipeline(config, MockConnectionFactory(mysql_rules()), os_collector)
        assert pipeline.close_active_session() is False

    def test_waits_for_a_restore_already_running(self, config, os_collector, slow_log_file, error_log_file):
        entered = threading.Event()
        release = threading.Event()

        def slow_restore(query):
            entered.set()
            release.wait(5)
            return QueryResult()

        factory = MockConnectionFactory(
            [("set global slow_query_log = 'off'", slow_restore)]
            + mysql_rules(str(slow_log_file), str(error_log_file))
        )
        pipeline = build_pipeline(config, factory, os_collector)
        session = pipeline.controller.open("mysql", 30, DesiredSetting(threshold_secs=0.2))

        worker = threading.Thread(target=session.close)
        worker.start()
        assert entered.wait(5)

        closer = threading.Thread(target=pipeline.close_active_session)
        closer.start()
        closer.join(0.2)
        assert closer.is_alive()

        release.set()
        worker.join(5)
        closer.join(5)
        assert not closer.is_alive()
        assert session.restore_succeeded
        assert factory.statements("set global slow_query_log = 'off'") == [
            "set global slow_query_log = 'off'"
        ]
