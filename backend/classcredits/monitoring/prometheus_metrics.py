"""
Prometheus metrics for the ledger and booking engine.

Service timings are fed by ``@BaseService.measure_operation``; domain counters
cover ledger appends, reconciliation drift, booking transitions, reminder
dispatch and outbox delivery.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "classcredits_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "classcredits_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "classcredits_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Ledger
ledger_entries_total = Counter(
    "classcredits_ledger_entries_total",
    "Credit ledger entries appended",
    ["type"],  # gift | purchase | spend | refund
    registry=REGISTRY,
)

reconciliations_total = Counter(
    "classcredits_reconciliations_total",
    "Balance reconciliations by outcome",
    ["outcome"],  # consistent | corrected | drift_detected
    registry=REGISTRY,
)

reconciliation_drift_credits_total = Counter(
    "classcredits_reconciliation_drift_credits_total",
    "Absolute available-credit drift found between cache and ledger",
    registry=REGISTRY,
)

# Bookings
booking_transitions_total = Counter(
    "classcredits_booking_transitions_total",
    "Booking state transitions by target status",
    ["status"],
    registry=REGISTRY,
)

batch_items_total = Counter(
    "classcredits_batch_items_total",
    "Items handled by background sweeps",
    ["job", "outcome"],  # outcome: processed | failed
    registry=REGISTRY,
)

# Reminders
reminders_total = Counter(
    "classcredits_reminders_total",
    "Scheduled reminder outcomes",
    ["type", "outcome"],  # scheduled | skipped | deduplicated | sent | failed | cancelled
    registry=REGISTRY,
)

# Notification outbox instrumentation
notifications_outbox_total = Counter(
    "classcredits_notifications_outbox_total",
    "Total notification outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

notifications_outbox_attempt_total = Counter(
    "classcredits_notifications_outbox_attempt_total",
    "Number of notification outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

notifications_dispatch_seconds = Histogram(
    "classcredits_notifications_dispatch_seconds",
    "Notification provider dispatch duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'book_class')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_ledger_entry(entry_type: str) -> None:
        ledger_entries_total.labels(type=entry_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_reconciliation(outcome: str, drift: int = 0) -> None:
        """Count a reconciliation run and accumulate any drift found."""
        reconciliations_total.labels(outcome=outcome).inc()
        if drift:
            reconciliation_drift_credits_total.inc(abs(drift))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_booking_transition(status: str) -> None:
        booking_transitions_total.labels(status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_batch_item(job: str, outcome: str) -> None:
        batch_items_total.labels(job=job, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_reminder(reminder_type: str, outcome: str) -> None:
        reminders_total.labels(type=reminder_type, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_notification_attempt(event_type: str) -> None:
        """Increment attempt counter for notification outbox delivery."""
        notifications_outbox_attempt_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_notification_outcome(event_type: str, status: str) -> None:
        """Record terminal outcome for notification outbox delivery."""
        notifications_outbox_total.labels(status=status, event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_notification_dispatch(event_type: str, duration: float) -> None:
        """Observe provider dispatch duration."""
        notifications_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()
