"""OpenTelemetry メトリクス定義"""

from __future__ import annotations

from opentelemetry import metrics

from .source import SDK_VERSION

_meter = metrics.get_meter("k1s0_featuretoggle", version=SDK_VERSION)

evaluations_total = _meter.create_counter(
    name="featuretoggle_evaluations_total",
    description="Total number of toggle evaluations",
    unit="1",
)

sync_total = _meter.create_counter(
    name="featuretoggle_sync_total",
    description="Total number of synchronization attempts by result",
    unit="1",
)

sync_duration_seconds = _meter.create_histogram(
    name="featuretoggle_sync_duration_seconds",
    description="Duration of one fetch and publish cycle in seconds",
    unit="s",
)
