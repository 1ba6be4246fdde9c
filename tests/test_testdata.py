from __future__ import annotations

import json
import random
from datetime import datetime, timezone

import pytest

from otelgw.core.errors import CommandError, ResourceNotFoundError
from otelgw.core.tables import OTEL_TABLE_COLUMNS
from otelgw.core.testdata import (
    RUN_ATTRIBUTE,
    EventHubTarget,
    TelemetryKind,
    discover_event_hub,
    log_record,
    metric_record,
    send_test_data,
    streaming_queries,
    trace_record,
)

_NOW = datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
_TARGET = EventHubTarget("rg-otel", "evhns-otel", "diagnostics")


class _EventHubs:
    def __init__(
        self,
        *,
        namespaces: list[str] | None = None,
        hubs: list[str] | None = None,
        fail_on: set[int] | None = None,
    ):
        self.calls: list[str] = []
        self.namespaces = namespaces or []
        self.hubs = hubs or []
        self.fail_on = fail_on or set()
        self.bodies: list[dict] = []

    def list_eventhub_namespaces(self, resource_group: str) -> list[str]:
        self.calls.append(f"list_namespaces:{resource_group}")
        return list(self.namespaces)

    def list_eventhubs(self, resource_group: str, namespace: str) -> list[str]:
        self.calls.append(f"list_hubs:{resource_group}:{namespace}")
        return list(self.hubs)

    def send_event(self, resource_group: str, namespace: str, event_hub: str, body: str) -> None:
        index = len(self.bodies)
        self.bodies.append(json.loads(body))
        self.calls.append(f"send:{namespace}/{event_hub}")
        if index in self.fail_on:
            raise CommandError("Failed to send event: throttled")


@pytest.mark.parametrize(
    "build, table",
    [(log_record, "OTELLogs"), (metric_record, "OTELMetrics"), (trace_record, "OTELTraces")],
)
def test_records_use_table_columns_in_order(build, table):
    record = build(random.Random(7), _NOW, "run1")

    assert list(record) == [name for name, _ in OTEL_TABLE_COLUMNS[table]]


def test_records_carry_run_id_in_attribute_column():
    rng = random.Random(1)

    assert log_record(rng, _NOW, "run1")["LogsAttributes"][RUN_ATTRIBUTE] == "run1"
    assert metric_record(rng, _NOW, "run1")["MetricAttributes"][RUN_ATTRIBUTE] == "run1"
    assert trace_record(rng, _NOW, "run1")["TraceAttributes"][RUN_ATTRIBUTE] == "run1"


def test_log_record_values_are_well_formed():
    record = log_record(random.Random(3), _NOW, "run1")

    assert record["Timestamp"] == "2024-05-01T12:30:15.123Z"
    assert len(record["TraceID"]) == 32
    assert len(record["SpanID"]) == 16
    assert (record["SeverityText"], record["SeverityNumber"]) in {
        ("INFO", 1),
        ("DEBUG", 2),
        ("WARN", 3),
        ("ERROR", 4),
    }


def test_trace_end_follows_start():
    record = trace_record(random.Random(5), _NOW, "run1")

    assert record["EndTime"] > record["StartTime"]
    assert record["Events"] == [] and record["Links"] == []


def test_discover_uses_first_namespace_and_hub():
    hubs = _EventHubs(namespaces=["evhns-a", "evhns-b"], hubs=["diagnostics", "other"])

    target = discover_event_hub(hubs, "rg-otel")

    assert target == EventHubTarget("rg-otel", "evhns-a", "diagnostics")


def test_discover_explicit_names_skip_listing():
    hubs = _EventHubs()

    target = discover_event_hub(hubs, "rg-otel", namespace="evhns-x", event_hub="hub-x")

    assert str(target) == "evhns-x/hub-x"
    assert hubs.calls == []


def test_discover_without_namespace_raises():
    with pytest.raises(ResourceNotFoundError, match="No Event Hub namespace"):
        discover_event_hub(_EventHubs(), "rg-otel")


def test_discover_without_hub_raises():
    with pytest.raises(ResourceNotFoundError, match="No Event Hub found in namespace 'evhns-a'"):
        discover_event_hub(_EventHubs(namespaces=["evhns-a"]), "rg-otel")


def test_send_sends_one_of_each_kind_per_batch_and_sleeps_between():
    hubs = _EventHubs()
    sleeps: list[float] = []

    report = send_test_data(
        hubs,
        _TARGET,
        count=3,
        delay=2.0,
        run_id="run1",
        rng=random.Random(0),
        clock=lambda: _NOW,
        sleep=sleeps.append,
    )

    assert report.sent() == 9
    assert report.sent(TelemetryKind.METRIC) == 3
    assert sleeps == [2.0, 2.0]
    assert [b.get("MetricName") is not None for b in hubs.bodies[:3]] == [False, True, False]
    assert all(c == "send:evhns-otel/diagnostics" for c in hubs.calls)


def test_send_failure_is_recorded_and_sending_continues():
    hubs = _EventHubs(fail_on={1})

    report = send_test_data(hubs, _TARGET, count=2, run_id="run1", sleep=lambda _: None)

    assert len(report.results) == 6
    assert [(r.kind, r.batch) for r in report.failed] == [(TelemetryKind.METRIC, 1)]
    assert "throttled" in (report.failed[0].error or "")
    assert report.sent() == 5


def test_streaming_queries_filter_on_run_id():
    queries = streaming_queries("abc123")

    assert set(queries) == set(OTEL_TABLE_COLUMNS)
    assert queries["OTELLogs"] == (
        "OTELLogs | where tostring(LogsAttributes['test.run']) == 'abc123' | count"
    )
    assert "MetricAttributes['test.run']" in queries["OTELMetrics"]
    assert "TraceAttributes['test.run']" in queries["OTELTraces"]
