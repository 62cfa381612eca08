"""
Prometheus Metrics for tts-api.

Metrics Exposed:
    tts_api_requests_total             - Requests by endpoint and outcome code
    tts_api_request_duration_seconds   - Request latency by endpoint
    tts_api_characters_consumed_total  - Characters charged against quotas
    tts_api_quota_rejections_total     - Requests refused for quota
    tts_api_engine_failures_total      - Engine failures by error code
    tts_api_opus_frames_total          - Opus frames produced
    tts_api_synthesis_slots_active     - open_jtalk processes running now

Usage:
    from tts_api.core.metrics import metrics

    metrics.record_request("wav", "ok", duration=0.8)
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class ServiceMetrics:
    """
    Metric collection on a private CollectorRegistry.

    A private registry keeps repeated app construction in tests from
    tripping duplicate-registration errors in the default registry.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "tts_api_requests_total",
            "Requests by endpoint and outcome",
            ["endpoint", "outcome"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "tts_api_request_duration_seconds",
            "Request duration in seconds",
            ["endpoint"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._characters_consumed = Counter(
            "tts_api_characters_consumed_total",
            "Characters charged against user quotas",
            registry=self._registry,
        )
        self._quota_rejections = Counter(
            "tts_api_quota_rejections_total",
            "Requests rejected because the quota would be exceeded",
            registry=self._registry,
        )
        self._engine_failures = Counter(
            "tts_api_engine_failures_total",
            "Engine failures by error code",
            ["code"],
            registry=self._registry,
        )
        self._opus_frames = Counter(
            "tts_api_opus_frames_total",
            "Opus frames produced",
            registry=self._registry,
        )
        self._slots_active = Gauge(
            "tts_api_synthesis_slots_active",
            "Synthesis processes currently running",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(self, endpoint: str, outcome: str, duration: float) -> None:
        """
        Record a finished request.

        Args:
            endpoint: Logical endpoint ("user", "wav", "opus", "revoke").
            outcome: "ok" or an ErrorCode value.
            duration: Wall time in seconds; negative values are not observed.
        """
        self._requests_total.labels(endpoint=endpoint, outcome=outcome).inc()
        if duration >= 0:
            self._request_duration.labels(endpoint=endpoint).observe(duration)

    def record_characters(self, count: int) -> None:
        if count > 0:
            self._characters_consumed.inc(count)

    def record_quota_rejection(self) -> None:
        self._quota_rejections.inc()

    def record_engine_failure(self, code: str) -> None:
        self._engine_failures.labels(code=code).inc()

    def record_frames(self, count: int) -> None:
        if count > 0:
            self._opus_frames.inc(count)

    def set_slots_active(self, count: int) -> None:
        self._slots_active.set(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Return (body, content_type) for the /metrics endpoint."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide instance: from tts_api.core.metrics import metrics
metrics = ServiceMetrics()
