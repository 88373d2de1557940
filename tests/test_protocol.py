"""
Tests for collection levels, the envelope and the error taxonomy.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from sql_insight.protocol.errors import (
    CapabilityProbeError,
    CollectionTimeoutError,
    HotSwitchApplyError,
    error_type_of,
)
from sql_insight.protocol.levels import CollectionLevel
from sql_insight.protocol.record import (
    AttemptTrace,
    CollectionRecord,
    ScheduleWindow,
    isoformat_z,
)


class TestCollectionLevel:

    @pytest.mark.parametrize("text,expected", [
        ("level0", CollectionLevel.LEVEL0),
        ("Level 1", CollectionLevel.LEVEL1),
        ("LEVEL_2", CollectionLevel.LEVEL2),
        ("3", CollectionLevel.LEVEL3),
        ("unavailable", CollectionLevel.UNAVAILABLE),
    ])
    def test_parse(self, text, expected):
        assert CollectionLevel.parse(text) is expected

    @pytest.mark.parametrize("text", ["level9", "-1", "deep", ""])
    def test_parse_rejects_unknown(self, text):
        with pytest.raises(ValueError):
            CollectionLevel.parse(text)

    def test_labels(self):
        assert CollectionLevel.LEVEL1.label == "Level 1"
        assert str(CollectionLevel.UNAVAILABLE) == "Unavailable"

    def test_lower_stops_at_unavailable(self):
        assert CollectionLevel.LEVEL1.lower() is CollectionLevel.LEVEL0
        assert CollectionLevel.LEVEL0.lower() is CollectionLevel.UNAVAILABLE
        assert CollectionLevel.UNAVAILABLE.lower() is CollectionLevel.UNAVAILABLE

    def test_descending_from(self):
        assert CollectionLevel.descending_from(CollectionLevel.LEVEL2) == [
            CollectionLevel.LEVEL2, CollectionLevel.LEVEL1, CollectionLevel.LEVEL0,
        ]


class TestCollectionRecord:

    def _record(self, **kwargs):
        start = datetime(2026, 2, 7, 12, 0, 0, tzinfo=timezone.utc)
        defaults = dict(
            run_id="run-1770465600000-42",
            cycle=1,
            engine="mysql",
            requested_level="Level 1",
            schedule={"mode": "once"},
            window=ScheduleWindow.between(start, start + timedelta(milliseconds=1500)),
        )
        defaults.update(kwargs)
        return CollectionRecord(**defaults)

    def test_field_order(self):
        record = self._record(selected_level="Level 0", payload={"engine": "mysql"})
        assert list(record.to_dict()) == [
            "contract_version", "run_id", "cycle", "engine", "requested_level",
            "selected_level", "schedule", "window", "attempts", "source_status",
            "warnings", "status", "error", "payload",
        ]

    def test_json_round_trip_keeps_window(self):
        record = self._record(attempts=[AttemptTrace(index=1, status="ok", duration_ms=12)])
        data = json.loads(record.to_json())

        assert data["contract_version"] == "v1"
        assert data["window"] == {
            "start": "2026-02-07T12:00:00.000Z",
            "end": "2026-02-07T12:00:01.500Z",
            "duration_ms": 1500,
        }
        assert data["attempts"][0]["index"] == 1
        assert data["attempts"][0]["error"] is None

    def test_failed_record(self):
        record = self._record(status="failed", error="collection timed out after 1000ms")
        assert not record.ok
        assert record.to_dict()["payload"] is None

    def test_window_never_negative(self):
        start = datetime(2026, 2, 7, tzinfo=timezone.utc)
        window = ScheduleWindow.between(start, start - timedelta(seconds=1))
        assert window.duration_ms == 0

    def test_isoformat_z_converts_offsets(self):
        moment = datetime(2026, 2, 7, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert isoformat_z(moment) == "2026-02-07T12:00:00.000Z"


class TestErrorTypes:

    def test_collector_errors(self):
        assert error_type_of(CapabilityProbeError("refused")) == "CAPABILITY_PROBE"
        assert error_type_of(CollectionTimeoutError(1000)) == "TIMEOUT"
        assert error_type_of(HotSwitchApplyError("denied")) == "HOT_SWITCH_APPLY"

    def test_foreign_errors(self):
        assert error_type_of(TimeoutError()) == "TIMEOUT"
        assert error_type_of(RuntimeError("boom")) == "COLLECTION"

    def test_timeout_message(self):
        error = CollectionTimeoutError(120000)
        assert "timed out" in str(error)
        assert error.timeout_ms == 120000
