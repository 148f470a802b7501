"""
Prometheus Metrics
==================
Counters for the 2FA lifecycle, registered in a dedicated registry.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    generate_latest,
)

TWOFA_REGISTRY = CollectorRegistry()

STATE_CHANGES = Counter(
    name="twofa_state_changes_total",
    documentation="Enable/disable requests by outcome",
    labelnames=["action", "outcome"],
    registry=TWOFA_REGISTRY,
)

CHALLENGES_ISSUED = Counter(
    name="twofa_challenges_total",
    documentation="Challenge requests by outcome",
    labelnames=["outcome"],
    registry=TWOFA_REGISTRY,
)

VERIFICATIONS = Counter(
    name="twofa_verifications_total",
    documentation="Code verifications by outcome",
    labelnames=["outcome"],
    registry=TWOFA_REGISTRY,
)

DELIVERY_FAILURES = Counter(
    name="twofa_delivery_failures_total",
    documentation="Codes the notifier failed to deliver",
    labelnames=["channel"],
    registry=TWOFA_REGISTRY,
)


def record_state_change(action: str, outcome: str) -> None:
    STATE_CHANGES.labels(action=action, outcome=outcome).inc()


def record_challenge(outcome: str) -> None:
    CHALLENGES_ISSUED.labels(outcome=outcome).inc()


def record_verification(outcome: str) -> None:
    VERIFICATIONS.labels(outcome=outcome).inc()


def record_delivery_failure(channel: str) -> None:
    DELIVERY_FAILURES.labels(channel=channel).inc()


def get_metrics_text() -> bytes:
    """Prometheus exposition format for the 2FA registry."""
    return generate_latest(TWOFA_REGISTRY)


__all__ = [
    "CONTENT_TYPE_LATEST",
    "TWOFA_REGISTRY",
    "record_state_change",
    "record_challenge",
    "record_verification",
    "record_delivery_failure",
    "get_metrics_text",
]
