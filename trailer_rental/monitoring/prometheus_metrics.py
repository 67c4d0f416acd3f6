"""
Prometheus metrics for the trailer rental backend.

Service timings come from ``@BaseService.measure_operation``; the domain
counters below are incremented by the reservation engine and the sweeps.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so test runs and multiple apps in one process don't collide
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "trailer_rental_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 8.0),
)

service_operations_total = Counter(
    "trailer_rental_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "trailer_rental_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

reservation_transitions_total = Counter(
    "trailer_rental_reservation_transitions_total",
    "Reservation status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

confirmation_conflicts_total = Counter(
    "trailer_rental_confirmation_conflicts_total",
    "Confirmations rejected because the trailer was taken in the meantime",
    registry=REGISTRY,
)

payment_calls_total = Counter(
    "trailer_rental_payment_calls_total",
    "Payment processor calls by operation and outcome",
    ["operation", "outcome"],
    registry=REGISTRY,
)

lock_calls_total = Counter(
    "trailer_rental_lock_calls_total",
    "Smart lock controller calls by operation and outcome",
    ["operation", "outcome"],
    registry=REGISTRY,
)

sweep_items_total = Counter(
    "trailer_rental_sweep_items_total",
    "Items processed by scheduled sweeps",
    ["sweep", "outcome"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade over the module-level collectors."""

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
            service: Service name (e.g., 'ReservationService')
            operation: Operation name (e.g., 'confirm_reservation')
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

    @staticmethod
    def record_transition(from_status: str, to_status: str) -> None:
        reservation_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def inc_confirmation_conflict() -> None:
        confirmation_conflicts_total.inc()

    @staticmethod
    def record_payment_call(operation: str, outcome: str) -> None:
        payment_calls_total.labels(operation=operation, outcome=outcome).inc()

    @staticmethod
    def record_lock_call(operation: str, outcome: str) -> None:
        lock_calls_total.labels(operation=operation, outcome=outcome).inc()

    @staticmethod
    def record_sweep_item(sweep: str, outcome: str, count: int = 1) -> None:
        if count > 0:
            sweep_items_total.labels(sweep=sweep, outcome=outcome).inc(count)

    @staticmethod
    def get_metrics() -> bytes:
        """Generate metrics in Prometheus text exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
