"""Prometheus counters for stay lifecycle, billing, and background flows."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

REGISTRY = CollectorRegistry()

# Scheduler outcomes for expired holds.
HOLDS_EXPIRED_TOTAL = Counter(
    "innkeeper_holds_expired_total",
    "On-hold bookings cancelled by the hold scheduler",
    ["outcome"],
    registry=REGISTRY,
)

KEY_CARD_ALLOCATIONS_TOTAL = Counter(
    "innkeeper_key_card_allocations_total",
    "Key-card allocation attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)

CHECKOUTS_TOTAL = Counter(
    "innkeeper_checkouts_total",
    "Checkout attempts by outcome (completed, payment_required)",
    ["outcome"],
    registry=REGISTRY,
)

OVERSTAY_INVOICES_TOTAL = Counter(
    "innkeeper_overstay_invoices_total",
    "Overstay invoice lifecycle actions",
    ["action"],
    registry=REGISTRY,
)

BACKGROUND_JOB_FAILURES_TOTAL = Counter(
    "innkeeper_background_job_failures_total",
    "Background jobs that failed",
    ["type"],
    registry=REGISTRY,
)

BACKGROUND_JOBS_QUEUED = Gauge(
    "innkeeper_background_jobs_queued",
    "Background jobs fetched as due on the last poll",
    registry=REGISTRY,
)

SERVICE_OPERATIONS_TOTAL = Counter(
    "innkeeper_service_operations_total",
    "Service operations by outcome",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

SERVICE_OPERATION_SECONDS = Histogram(
    "innkeeper_service_operation_seconds",
    "Service operation latency",
    ["service", "operation"],
    registry=REGISTRY,
)
