"""
Shared utilities for the RBAC authorization layer.

This package aggregates common building blocks consumed by the service:

- config: Base configuration via pydantic-settings
- logging: Structured logging with trace and identity correlation
- metrics: Prometheus metrics for authorization decisions and loads
- tracing: OpenTelemetry span helper
- errors: Canonical error types and responses

Any cross-cutting logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
