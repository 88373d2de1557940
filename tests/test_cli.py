"""
Tests for the command-line entry point and its exit codes.
"""

import json

import pytest

from sql_insight import cli
from sql_insight.config import ENV_OVERRIDES
from sql_insight.protocol.errors import CollectionError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var, _, _, _ in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "empty.toml"
    path.write_text("")
    return str(path)


class FakePipeline:
    """Stands in for CollectionPipeline; never touches a database."""

    fail = False

    def __init__(self, config):
        self.config = config
        self.closed_sessions = 0

    def run_cycle(self, engine, requested_level, ctx):
        if self.fail:
            raise CollectionError("failed reading slow log file /var/log/mysql/slow.log")
        ctx.selected_level = requested_level
        return {"engine": engine, "selected_level": requested_level.label}

    def close_active_session(self):
        self.closed_sessions += 1
        return True


class FailingPipeline(FakePipeline):
    fail = True


def test_missing_url_is_config_error(config_file):
    assert cli.main(["--config", config_file]) == cli.EXIT_CONFIG


def test_missing_config_file(tmp_path):
    assert cli.main(["--config", str(tmp_path / "nope.toml")]) == cli.EXIT_CONFIG


def test_bad_env_value(monkeypatch, config_file):
    monkeypatch.setenv("SCHEDULE_TIMEOUT_SECS", "soon")
    assert cli.main(["--config", config_file, "--mysql-url", "mysql://u@h/db"]) == cli.EXIT_CONFIG


def test_successful_cycle(monkeypatch, capsys, config_file):
    monkeypatch.setattr(cli, "CollectionPipeline", FakePipeline)

    code = cli.main(["--config", config_file, "--mysql-url", "mysql://u:secret@h/db", "-q"])

    assert code == cli.EXIT_OK
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["status"] == "ok"
    assert record["selected_level"] == "Level 1"
    assert record["payload"] == {"engine": "mysql", "selected_level": "Level 1"}
    assert "secret" not in lines[0]


def test_failed_cycle(monkeypatch, capsys, config_file):
    monkeypatch.setattr(cli, "CollectionPipeline", FailingPipeline)

    code = cli.main([
        "--config", config_file, "--mysql-url", "mysql://u@h/db",
        "--retry-times", "0", "-q",
    ])

    assert code == cli.EXIT_FAILED
    record = json.loads(capsys.readouterr().out)
    assert record["status"] == "failed"
    assert record["error"] == "failed reading slow log file /var/log/mysql/slow.log"
    assert record["selected_level"] is None


def test_daemon_emits_one_line_per_cycle(monkeypatch, capsys, config_file):
    monkeypatch.setattr(cli, "CollectionPipeline", FakePipeline)

    code = cli.main([
        "--config", config_file, "--engine", "postgres", "--postgres-url", "postgresql://u@h/db",
        "--collect-level", "level0", "--run-mode", "daemon", "--interval-secs", "1",
        "--jitter-pct", "0", "--max-cycles", "2", "-q",
    ])

    assert code == cli.EXIT_OK
    records = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert [r["cycle"] for r in records] == [1, 2]
    assert {r["engine"] for r in records} == {"postgres"}


def test_pretty_json(monkeypatch, capsys, config_file):
    monkeypatch.setattr(cli, "CollectionPipeline", FakePipeline)
    cli.main(["--config", config_file, "--mysql-url", "mysql://u@h/db", "--output", "pretty-json", "-q"])
    out = capsys.readouterr().out
    assert out.startswith("{\n")
    assert json.loads(out)["status"] == "ok"


def test_stop_handler_second_signal_interrupts():
    class Scheduler:
        stopped = False

        def stop(self):
            self.stopped = True

    scheduler = Scheduler()
    handler = cli._StopHandler(scheduler)
    handler(2, None)
    assert scheduler.stopped
    with pytest.raises(KeyboardInterrupt):
        handler(2, None)


def test_second_interrupt_closes_open_session(monkeypatch, capsys, config_file):
    pipelines = []

    class RecordingPipeline(FakePipeline):
        def __init__(self, config):
            super().__init__(config)
            pipelines.append(self)

    class InterruptedScheduler:
        def __init__(self, *args, **kwargs):
            pass

        def stop(self):
            pass

        def run(self):
            raise KeyboardInterrupt
            yield

    monkeypatch.setattr(cli, "CollectionPipeline", RecordingPipeline)
    monkeypatch.setattr(cli, "CycleScheduler", InterruptedScheduler)

    code = cli.main(["--config", config_file, "--mysql-url", "mysql://u@h/db", "-q"])

    assert code == cli.EXIT_INTERRUPTED
    assert pipelines[0].closed_sessions == 1
    assert capsys.readouterr().out == ""
