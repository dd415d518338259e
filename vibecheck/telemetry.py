from __future__ import annotations

from prometheus_client import REGISTRY, Counter, Histogram

PROMETHEUS_REGISTRY = REGISTRY

PROVIDER_REQUESTS_TOTAL = Counter(
    "vibecheck_provider_requests_total",
    "Completions attempted against a provider, partitioned by outcome.",
    ("provider", "outcome"),
    registry=PROMETHEUS_REGISTRY,
)

PROVIDER_REQUEST_LATENCY_SECONDS = Histogram(
    "vibecheck_provider_request_duration_seconds",
    "Latency distribution for provider completions.",
    ("provider",),
    registry=PROMETHEUS_REGISTRY,
    buckets=(
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
        30.0,
        60.0,
    ),
)

PROVIDER_FALLBACKS_TOTAL = Counter(
    "vibecheck_provider_fallbacks_total",
    "Requests retried on another provider after a failure.",
    ("from_provider", "to_provider"),
    registry=PROMETHEUS_REGISTRY,
)

ON_DEVICE_PROBES_TOTAL = Counter(
    "vibecheck_on_device_probes_total",
    "On-device availability probes partitioned by result.",
    ("result",),
    registry=PROMETHEUS_REGISTRY,
)

PROVIDER_CHANGES_TOTAL = Counter(
    "vibecheck_provider_changes_total",
    "Provider change notifications delivered to listeners.",
    ("new_provider",),
    registry=PROMETHEUS_REGISTRY,
)

ANALYSES_DEGRADED_TOTAL = Counter(
    "vibecheck_analyses_degraded_total",
    "Analyses that fell back to the neutral result because model output was malformed.",
    ("provider",),
    registry=PROMETHEUS_REGISTRY,
)
