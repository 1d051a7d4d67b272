"""Prometheus metrics for observability.

Provides counters and histograms for authentication attempts, authorization
decisions, proxied data requests, approval actions and OAuth state claims.
"""

import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Global registry for metrics
_registry = CollectorRegistry()


# Authentication Metrics
auth_attempts_total = Counter(
    "inventory_gateway_auth_attempts_total",
    "Total number of login attempts",
    ["method", "status"],
    registry=_registry,
)

oauth_redirects_total = Counter(
    "inventory_gateway_oauth_redirects_total",
    "Total number of authorization redirects issued",
    ["mode"],
    registry=_registry,
)

oauth_callbacks_total = Counter(
    "inventory_gateway_oauth_callbacks_total",
    "Total number of OAuth callbacks processed",
    ["outcome"],
    registry=_registry,
)

# Authorization Metrics
authz_checks_total = Counter(
    "inventory_gateway_authz_checks_total",
    "Total number of authorization decisions",
    ["check", "status"],
    registry=_registry,
)

# Data Proxy Metrics
proxy_requests_total = Counter(
    "inventory_gateway_proxy_requests_total",
    "Total number of requests forwarded to the data service",
    ["method", "status"],
    registry=_registry,
)

proxy_request_duration_seconds = Histogram(
    "inventory_gateway_proxy_request_duration_seconds",
    "Duration of proxied data-service requests in seconds",
    ["method"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=_registry,
)

# Approval Workflow Metrics
approval_actions_total = Counter(
    "inventory_gateway_approval_actions_total",
    "Total number of admin approval actions",
    ["action", "status"],
    registry=_registry,
)

# State Nonce Store Metrics
nonce_claims_total = Counter(
    "inventory_gateway_nonce_claims_total",
    "Total number of OAuth state nonce claims",
    ["backend", "status"],
    registry=_registry,
)


def get_registry() -> CollectorRegistry:
    """Get the metrics registry.

    Returns:
        Prometheus collector registry
    """
    return _registry


def get_metrics_text() -> str:
    """Get metrics in Prometheus text format.

    Returns:
        Metrics in Prometheus exposition format
    """
    return generate_latest(_registry).decode("utf-8")


def record_auth_attempt(method: str, success: bool) -> None:
    """Record metrics for a login attempt.

    Args:
        method: Login method (local/axpert)
        success: Whether authentication succeeded
    """
    status = "success" if success else "failed"
    auth_attempts_total.labels(method=method, status=status).inc()


def record_authz_check(check: str, allowed: bool) -> None:
    """Record metrics for an authorization decision.

    Args:
        check: Name of the check (proxy_target, proxy_write, superadmin, ...)
        allowed: Whether the caller was allowed
    """
    status = "allowed" if allowed else "denied"
    authz_checks_total.labels(check=check, status=status).inc()


def record_proxy_request(method: str, status_code: int, duration: float) -> None:
    """Record metrics for a forwarded data-service request.

    Args:
        method: HTTP method
        status_code: Upstream status code (0 for transport failures)
        duration: Round-trip duration in seconds
    """
    proxy_requests_total.labels(method=method, status=str(status_code)).inc()
    proxy_request_duration_seconds.labels(method=method).observe(duration)


def record_approval_action(action: str, success: bool) -> None:
    """Record metrics for an approve/reject action.

    Args:
        action: approve or reject
        success: Whether the mutation was applied
    """
    status = "success" if success else "error"
    approval_actions_total.labels(action=action, status=status).inc()


def record_oauth_redirect(mode: str | None) -> None:
    oauth_redirects_total.labels(mode=mode or "login").inc()


def record_oauth_callback(outcome: str) -> None:
    oauth_callbacks_total.labels(outcome=outcome).inc()


def record_nonce_claim(backend: str, status: str) -> None:
    nonce_claims_total.labels(backend=backend, status=status).inc()


__all__ = [
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
