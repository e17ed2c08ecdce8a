"""Prometheus metrics for the synchronization engine.

Defined metrics:
- simulive_clock_offset_ms: Gauge of the current local-to-server offset
- simulive_clock_syncs_total: Counter of sync outcomes (success, fallback, unavailable)
- simulive_clock_round_trip_seconds: Histogram of timestamp round-trip duration
- simulive_playback_drift_seconds: Histogram of measured drift per stream
- simulive_playback_corrections_total: Counter of forced seeks per stream
- simulive_playback_blocked_total: Counter of rejected resume attempts per stream
- simulive_feed_merges_total: Counter of window merges
- simulive_feed_fetch_failures_total: Counter of feed failures by source
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

clock_offset_ms = Gauge(
    "simulive_clock_offset_ms",
    "Current local-to-server clock offset in milliseconds",
)

clock_syncs_total = Counter(
    "simulive_clock_syncs_total",
    "Server clock sync attempts by outcome",
    ["result"],
)

clock_round_trip_seconds = Histogram(
    "simulive_clock_round_trip_seconds",
    "Duration of the trusted timestamp round trip",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

playback_drift_seconds = Histogram(
    "simulive_playback_drift_seconds",
    "Absolute drift between stream position and the shared timeline",
    ["stream"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

playback_corrections_total = Counter(
    "simulive_playback_corrections_total",
    "Forced seeks issued to re-anchor a stream",
    ["stream"],
)

playback_blocked_total = Counter(
    "simulive_playback_blocked_total",
    "Resume attempts rejected by the media element",
    ["stream"],
)

feed_merges_total = Counter(
    "simulive_feed_merges_total",
    "Feed windows merged into the client view",
)

feed_fetch_failures_total = Counter(
    "simulive_feed_fetch_failures_total",
    "Feed subscription or pagination failures",
    ["source"],
)
