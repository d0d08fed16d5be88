"""
Token Lifecycle Metrics

Prometheus metrics for token operations, their outcomes and latency,
and remote key fetches.

Author: Warden Team
Date: 2026-10-16
"""

from typing import Any, Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


class TokenMetrics:
    """
    Prometheus metrics collector for token lifecycle operations.

    Each instance owns a registry unless one is passed in, so several
    engines can live in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collectors.

        Args:
            registry: Prometheus registry (a private one if None)
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.operations_total = Counter(
            'warden_token_operations_total',
            'Token lifecycle operations',
            ['operation', 'outcome'],
            registry=self.registry
        )

        self.operation_duration_seconds = Histogram(
            'warden_token_operation_duration_seconds',
            'Token lifecycle operation duration',
            ['operation'],
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry
        )

        self.key_fetches_total = Counter(
            'warden_remote_key_fetches_total',
            'Remote key fetches by outcome',
            ['outcome'],
            registry=self.registry
        )

    def track_operation(self, operation: str, outcome: str, duration: float) -> None:
        """
        Track a finished lifecycle operation.

        Args:
            operation: Operation name (encode_and_sign, refresh, ...)
            outcome: "ok" or the label from outcome_label()
            duration: Operation duration in seconds
        """
        self.operations_total.labels(operation=operation, outcome=outcome).inc()
        self.operation_duration_seconds.labels(operation=operation).observe(duration)

    def record_key_fetch(self, outcome: str) -> None:
        """Track a remote key fetch ("success", "error" or "untrusted")."""
        self.key_fetches_total.labels(outcome=outcome).inc()

    def generate_metrics(self) -> bytes:
        """
        Generate Prometheus metrics output.

        Returns:
            Metrics in Prometheus text format
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Error codes that are safe to use as label values; anything else is bucketed
KNOWN_OUTCOMES = frozenset({
    "invalid_token",
    "missing_signature",
    "invalid_signature",
    "token_expired",
    "token_not_yet_valid",
    "invalid_issuer",
    "invalid_audience",
    "invalid_type",
    "invalid_claim",
    "incorrect_token_type",
    "untrusted_key_source",
    "key_resolution_failed",
    "unsupported_algorithm",
    "json_encoding_fail",
    "invalid_ttl",
    "invalid_claims",
})


def outcome_label(error: Any) -> str:
    """
    Map an error code to a bounded outcome label.

    ``invalid_claim:<key>`` drops the key; hook and serializer reasons
    become "rejected".
    """
    code = str(error).split(":", 1)[0]
    return code if code in KNOWN_OUTCOMES else "rejected"
