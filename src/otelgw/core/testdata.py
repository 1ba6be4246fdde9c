"""Synthetic OTEL telemetry for proving the Event Hub to Fabric pipeline.

Each record is one JSON object keyed by the columns of its OTEL table, so
the Eventstream can map it without a transformation. Every record carries
the run id under `test.run` in its attribute column, which is what the
streaming check queries for.
"""

from __future__ import annotations

import json
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Protocol

from otelgw.core.errors import CommandError, ResourceNotFoundError

RUN_ATTRIBUTE = "test.run"

_SERVICES = (
    "user-service",
    "order-service",
    "payment-service",
    "inventory-service",
    "notification-service",
    "analytics-service",
    "auth-service",
    "cart-service",
)
_OPERATIONS = (
    "create_user",
    "process_payment",
    "update_inventory",
    "send_notification",
    "authenticate",
    "add_to_cart",
    "place_order",
    "generate_report",
)
_HOSTS = ("web-01", "web-02", "api-01", "api-02", "worker-01", "worker-02")
_SEVERITIES = (("INFO", 1), ("DEBUG", 2), ("WARN", 3), ("ERROR", 4))
_LOG_MESSAGES = (
    "User {user} successfully executed {op}",
    "Processing {op} for user {user} completed",
    "Started {op} workflow for user {user}",
    "Completed {op} with response time 150ms",
    "Cache hit for {op} operation",
    "Database query for {op} took 45ms",
    "Rate limiting applied for user {user}",
    "Authentication successful for user {user}",
)
# name, type, unit, description
_METRICS = (
    ("cpu.usage.percent", "gauge", "percent", "CPU usage percentage"),
    ("memory.usage.bytes", "gauge", "bytes", "Memory usage in bytes"),
    ("request.duration.ms", "histogram", "milliseconds", "Request duration"),
    ("request.count", "counter", "count", "Number of requests"),
    ("error.count", "counter", "count", "Number of errors"),
    ("cache.hit.ratio", "gauge", "ratio", "Cache hit ratio"),
    ("database.connections", "gauge", "count", "Active database connections"),
    ("queue.size", "gauge", "count", "Queue size"),
)
_SPAN_KINDS = ("INTERNAL", "SERVER", "CLIENT", "PRODUCER", "CONSUMER")
_SPAN_STATUSES = ("OK", "ERROR", "TIMEOUT")


class TelemetryKind(str, Enum):
    LOG = "log"
    METRIC = "metric"
    TRACE = "trace"


# Table and attribute column each kind lands in.
TELEMETRY_TABLES: dict[TelemetryKind, tuple[str, str]] = {
    TelemetryKind.LOG: ("OTELLogs", "LogsAttributes"),
    TelemetryKind.METRIC: ("OTELMetrics", "MetricAttributes"),
    TelemetryKind.TRACE: ("OTELTraces", "TraceAttributes"),
}


@dataclass(frozen=True)
class EventHubTarget:
    resource_group: str
    namespace: str
    event_hub: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.event_hub}"


@dataclass(frozen=True)
class SendResult:
    kind: TelemetryKind
    batch: int
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class SendReport:
    run_id: str
    target: EventHubTarget
    results: list[SendResult] = field(default_factory=list)

    @property
    def failed(self) -> list[SendResult]:
        return [r for r in self.results if not r.ok]

    def sent(self, kind: TelemetryKind | None = None) -> int:
        return sum(1 for r in self.results if r.ok and (kind is None or r.kind == kind))


class EventHubAdapter(Protocol):
    def list_eventhub_namespaces(self, resource_group: str) -> list[str]: ...

    def list_eventhubs(self, resource_group: str, namespace: str) -> list[str]: ...

    def send_event(
        self, resource_group: str, namespace: str, event_hub: str, body: str
    ) -> None: ...


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _hex_id(rng: random.Random, bits: int) -> str:
    return f"{rng.getrandbits(bits):0{bits // 4}x}"


def log_record(rng: random.Random, now: datetime, run_id: str) -> dict[str, Any]:
    """One OTELLogs row."""
    service = rng.choice(_SERVICES)
    operation = rng.choice(_OPERATIONS)
    severity_text, severity_number = rng.choice(_SEVERITIES)
    user = rng.randint(1, 1000)
    stamp = _timestamp(now)
    return {
        "Timestamp": stamp,
        "ObservedTimestamp": stamp,
        "TraceID": _hex_id(rng, 128),
        "SpanID": _hex_id(rng, 64),
        "SeverityText": severity_text,
        "SeverityNumber": severity_number,
        "Body": rng.choice(_LOG_MESSAGES).format(user=user, op=operation),
        "ResourceAttributes": {
            "service.name": service,
            "service.version": "1.0.0",
            "service.environment": "production",
            "host.name": rng.choice(_HOSTS),
        },
        "LogsAttributes": {
            "user.id": str(user),
            "operation": operation,
            "source": "application-logs",
            RUN_ATTRIBUTE: run_id,
        },
    }


def _metric_value(rng: random.Random, name: str) -> float:
    if name == "cpu.usage.percent":
        return round(rng.uniform(0, 100), 2)
    if name == "memory.usage.bytes":
        return float(rng.randint(1_000_000_000, 9_000_000_000))
    if name == "request.duration.ms":
        return round(rng.uniform(10, 510), 2)
    if name == "cache.hit.ratio":
        return round(rng.random(), 3)
    return float(rng.randint(1, 1000))


def metric_record(rng: random.Random, now: datetime, run_id: str) -> dict[str, Any]:
    """One OTELMetrics row."""
    name, metric_type, unit, description = rng.choice(_METRICS)
    host = rng.choice(_HOSTS)
    return {
        "Timestamp": _timestamp(now),
        "MetricName": name,
        "MetricType": metric_type,
        "MetricUnit": unit,
        "MetricDescription": description,
        "MetricValue": _metric_value(rng, name),
        "Host": host,
        "ResourceAttributes": {
            "service.name": rng.choice(_SERVICES),
            "service.version": "1.0.0",
            "host.name": host,
        },
        "MetricAttributes": {
            "environment": "production",
            "datacenter": "us-east-1",
            RUN_ATTRIBUTE: run_id,
        },
    }


def trace_record(rng: random.Random, now: datetime, run_id: str) -> dict[str, Any]:
    """One OTELTraces row; a third of the spans get a parent."""
    parent = _hex_id(rng, 64) if rng.randrange(3) == 0 else ""
    end = now + timedelta(milliseconds=rng.randint(10, 510))
    return {
        "TraceID": _hex_id(rng, 128),
        "SpanID": _hex_id(rng, 64),
        "ParentID": parent,
        "SpanName": rng.choice(_OPERATIONS),
        "SpanStatus": rng.choice(_SPAN_STATUSES),
        "SpanKind": rng.choice(_SPAN_KINDS),
        "StartTime": _timestamp(now),
        "EndTime": _timestamp(end),
        "ResourceAttributes": {
            "service.name": rng.choice(_SERVICES),
            "service.version": "1.0.0",
            "telemetry.sdk.name": "opentelemetry",
            "telemetry.sdk.version": "1.0.0",
        },
        "TraceAttributes": {
            "http.method": "POST",
            "http.status_code": str(rng.randint(200, 299)),
            "user.id": str(rng.randint(1, 1000)),
            RUN_ATTRIBUTE: run_id,
        },
        "Events": [],
        "Links": [],
    }


_BUILDERS: dict[TelemetryKind, Callable[[random.Random, datetime, str], dict[str, Any]]] = {
    TelemetryKind.LOG: log_record,
    TelemetryKind.METRIC: metric_record,
    TelemetryKind.TRACE: trace_record,
}


def discover_event_hub(
    azure: EventHubAdapter,
    resource_group: str,
    *,
    namespace: str | None = None,
    event_hub: str | None = None,
) -> EventHubTarget:
    """
    Pick the Event Hub to send to.

    Explicit names are used as given; otherwise the first namespace in the
    resource group and the first Event Hub in that namespace.

    Raises:
        ResourceNotFoundError: If no namespace or Event Hub exists.
    """
    if not namespace:
        namespaces = azure.list_eventhub_namespaces(resource_group)
        if not namespaces:
            raise ResourceNotFoundError(
                f"No Event Hub namespace found in resource group '{resource_group}'. "
                "Deploy the Azure infrastructure first."
            )
        namespace = namespaces[0]
    if not event_hub:
        hubs = azure.list_eventhubs(resource_group, namespace)
        if not hubs:
            raise ResourceNotFoundError(f"No Event Hub found in namespace '{namespace}'.")
        event_hub = hubs[0]
    return EventHubTarget(resource_group, namespace, event_hub)


def send_test_data(
    azure: EventHubAdapter,
    target: EventHubTarget,
    *,
    count: int,
    delay: float = 0.0,
    run_id: str | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    sleep: Callable[[float], None] = time.sleep,
    on_batch: Callable[[int], None] | None = None,
) -> SendReport:
    """
    Send `count` batches of one log, one metric and one trace record.

    A failed send is recorded and the remaining records are still sent.
    `delay` seconds pass between batches, not after the last one.
    """
    rng = rng or random.Random()
    run_id = run_id or new_run_id()
    results: list[SendResult] = []
    for batch in range(1, count + 1):
        if on_batch is not None:
            on_batch(batch)
        for kind, build in _BUILDERS.items():
            body = json.dumps(build(rng, clock(), run_id))
            try:
                azure.send_event(target.resource_group, target.namespace, target.event_hub, body)
            except CommandError as exc:
                results.append(SendResult(kind, batch, ok=False, error=str(exc)))
            else:
                results.append(SendResult(kind, batch, ok=True))
        if delay > 0 and batch < count:
            sleep(delay)
    return SendReport(run_id=run_id, target=target, results=results)


def streaming_queries(run_id: str) -> dict[str, str]:
    """Return one count query per OTEL table, matching records of `run_id`."""
    return {
        table: f"{table} | where tostring({column}['{RUN_ATTRIBUTE}']) == '{run_id}' | count"
        for table, column in TELEMETRY_TABLES.values()
    }
