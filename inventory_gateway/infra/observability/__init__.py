"""Observability infrastructure: structured logging and Prometheus metrics."""

from inventory_gateway.infra.observability.logging import (
    CorrelationIDFilter,
    JSONFormatter,
    correlation_id_var,
    get_correlation_id,
    set_correlation_id,
    setup_logging,
)
from inventory_gateway.infra.observability.metrics import (
    get_metrics_text,
    get_registry,
    record_approval_action,
    record_auth_attempt,
    record_authz_check,
    record_nonce_claim,
    record_oauth_callback,
    record_oauth_redirect,
    record_proxy_request,
)

__all__ = [
    # Logging
    "correlation_id_var",
    "get_correlation_id",
    "set_correlation_id",
    "CorrelationIDFilter",
    "JSONFormatter",
    "setup_logging",
    # Metrics
    "get_registry",
    "get_metrics_text",
    "record_auth_attempt",
    "record_authz_check",
    "record_proxy_request",
    "record_approval_action",
    "record_oauth_redirect",
    "record_oauth_callback",
    "record_nonce_claim",
]
