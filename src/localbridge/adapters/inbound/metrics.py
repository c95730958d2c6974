# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Prometheus metrics for the bridge.

- HTTP request throughput and latency
- Admission queue depth (pending and in-flight)
- Backend call outcomes and latency
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Create registry (separate from default to avoid conflicts)
registry = CollectorRegistry()

# Request metrics
request_total = Counter(
    "localbridge_request_total",
    "Total number of HTTP requests",
    ["method", "path", "status_code"],
    registry=registry,
)

request_duration_seconds = Histogram(
    "localbridge_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
    registry=registry,
)

# Queue metrics
queue_pending = Gauge(
    "localbridge_queue_pending",
    "Jobs waiting in the admission queue",
    registry=registry,
)

queue_inflight = Gauge(
    "localbridge_queue_inflight",
    "Jobs currently running against the backend",
    registry=registry,
)

# Backend metrics
backend_requests_total = Counter(
    "localbridge_backend_requests_total",
    "Backend calls by mode and outcome",
    ["mode", "outcome"],  # outcome: ok, timeout, http_error, connection_error
    registry=registry,
)

backend_duration_seconds = Histogram(
    "localbridge_backend_duration_seconds",
    "Backend call latency in seconds",
    ["mode"],
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300, 600),
    registry=registry,
)


def observe_queue(pending: int, inflight: int) -> None:
    """Publish a queue snapshot to the gauges."""
    queue_pending.set(pending)
    queue_inflight.set(inflight)
