"""
Metrics definitions for FenceSync.

This module defines Prometheus metrics for monitoring
change broadcasting and perimeter reconciliation.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
events_sent = Counter(
    "fencesync_events_sent_total",
    "Change events transmitted over the transport",
    ["type"]
)

events_local_fallback = Counter(
    "fencesync_events_local_fallback_total",
    "Change events dispatched locally because the transport was unavailable",
    ["type"]
)

events_received = Counter(
    "fencesync_events_received_total",
    "Valid change events received from the transport",
    ["type"]
)

events_dropped = Counter(
    "fencesync_events_dropped_total",
    "Incoming frames dropped as malformed or unknown"
)

listener_errors = Counter(
    "fencesync_listener_errors_total",
    "Listener callbacks that raised during dispatch",
    ["type"]
)

reconnects = Counter(
    "fencesync_transport_reconnects_total",
    "Automatic reconnection attempts made by the broadcaster"
)

reconnect_failures = Counter(
    "fencesync_transport_reconnect_failed_total",
    "Times the broadcaster gave up reconnecting"
)

perimeter_saves = Counter(
    "fencesync_perimeter_saves_total",
    "Perimeter persistence operations by outcome",
    ["operation", "outcome"]
)

rollbacks = Counter(
    "fencesync_rollbacks_total",
    "Optimistic local changes reverted after a persistence failure",
    ["operation"]
)

# 히스토그램 메트릭
measure_seconds = Histogram(
    "fencesync_measure_duration_seconds",
    "Time spent measuring perimeter geometry",
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1]
)

save_seconds = Histogram(
    "fencesync_save_duration_seconds",
    "End-to-end perimeter save latency",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)

# 게이지 메트릭
broadcaster_connected = Gauge(
    "fencesync_broadcaster_connected",
    "1 when the change broadcaster holds a live transport connection"
)

cached_perimeters = Gauge(
    "fencesync_cached_perimeters",
    "Number of perimeters held in local state"
)
