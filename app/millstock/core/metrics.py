from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from app.millstock.core.config import settings

LATENCY_BUCKETS_MS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


@dataclass
class MetricsSnapshot:
    content: bytes
    content_type: str


class Metrics:
    """Per-process Prometheus registry; every recorder is a no-op when metrics are disabled."""

    def __init__(self) -> None:
        self.enabled = bool(settings.METRICS_ENABLED)
        self._registry: CollectorRegistry | None = None
        if self.enabled:
            self._initialize_registry()

    def _counter(self, name: str, documentation: str, labels: tuple[str, ...] = ()) -> Counter:
        return Counter(name, documentation, list(labels), registry=self._registry)

    def _initialize_registry(self) -> None:
        self._registry = CollectorRegistry()
        http_labels = ("route", "method", "status")
        self._http_requests_total = self._counter(
            "http_requests_total", "HTTP requests by route/method/status.", http_labels
        )
        self._http_request_duration_ms = Histogram(
            "http_request_duration_ms",
            "HTTP request latency in milliseconds.",
            list(http_labels),
            buckets=LATENCY_BUCKETS_MS,
            registry=self._registry,
        )
        self._idempotency_replay_total = self._counter("idempotency_replay_total", "Idempotent replay responses.")
        self._lock_wait_timeout_total = self._counter("lock_wait_timeout_total", "Lock wait timeout occurrences.")
        self._transfer_transitions_total = self._counter(
            "transfer_transitions_total", "Committed transfer lifecycle transitions.", ("action",)
        )
        self._ledger_conflicts_total = self._counter(
            "ledger_conflicts_total",
            "Conditional ledger writes that lost a race or hit the non-negative guard.",
        )
        self._transaction_retries_total = self._counter(
            "transaction_retries_total", "Units of work retried after a transient storage failure."
        )
        self._invariants_violation_total = self._counter(
            "invariants_violation_total", "Integrity invariant violations.", ("check_id",)
        )

    def reset(self) -> None:
        if self.enabled:
            self._initialize_registry()

    def record_http_request(self, *, route: str, method: str, status_code: int, latency_ms: float) -> None:
        if not self.enabled:
            return
        labels = {"route": route, "method": method, "status": str(status_code)}
        self._http_requests_total.labels(**labels).inc()
        self._http_request_duration_ms.labels(**labels).observe(latency_ms)

    def increment_idempotency_replay(self) -> None:
        if self.enabled:
            self._idempotency_replay_total.inc()

    def increment_lock_wait_timeout(self) -> None:
        if self.enabled:
            self._lock_wait_timeout_total.inc()

    def increment_transfer_transition(self, action: str) -> None:
        if self.enabled:
            self._transfer_transitions_total.labels(action=action).inc()

    def increment_ledger_conflict(self) -> None:
        if self.enabled:
            self._ledger_conflicts_total.inc()

    def increment_transaction_retry(self) -> None:
        if self.enabled:
            self._transaction_retries_total.inc()

    def increment_invariant_violation(self, check_id: str, count: int = 1) -> None:
        if self.enabled:
            self._invariants_violation_total.labels(check_id=check_id).inc(count)

    def sample(self, name: str, **labels: str) -> float:
        """Current value of one sample, 0.0 when absent or disabled."""
        if not self.enabled:
            return 0.0
        return self._registry.get_sample_value(name, labels or None) or 0.0

    def render(self) -> MetricsSnapshot:
        if not self.enabled:
            return MetricsSnapshot(content=b"metrics_disabled\n", content_type="text/plain")
        return MetricsSnapshot(content=generate_latest(self._registry), content_type=CONTENT_TYPE_LATEST)


metrics = Metrics()
