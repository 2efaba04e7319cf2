"""Prometheus metrics for configuration loading and watching.

All metric objects are defined at import time and shared by every Config in
the process.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

config_datasets_total = Counter(
    "liveconf_datasets_total",
    "DataSets merged into a Config",
    ["status"],  # ok|empty|error|aborted
)
config_option_updates_total = Counter(
    "liveconf_option_updates_total",
    "Option values written",
)
config_errors_total = Counter(
    "liveconf_errors_total",
    "Errors reported to the Config error handler",
    ["kind"],
)
config_active_watchers = Gauge(
    "liveconf_active_watchers",
    "Source watchers currently running",
)
config_merge_duration_seconds = Histogram(
    "liveconf_merge_duration_seconds",
    "Time spent decoding and applying one DataSet",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
)
