"""
Shared metrics configuration for the RBAC authorization layer.
"""

import threading
from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for authorization services.

    Collectors created with ``metrics`` reuse another collector's metric
    objects, so several services can report into one registry under their
    own ``service`` label.
    """

    def __init__(
        self,
        service_name: str,
        registry: Optional[CollectorRegistry] = None,
        metrics: Optional[Dict[str, Any]] = None,
    ):
        self.service_name = service_name
        self.registry = registry
        if metrics is None:
            self._metrics: Dict[str, Any] = {}
            self._setup_metrics()
        else:
            self._metrics = metrics

        self._metrics["service_info"].labels(service=service_name).info({"version": "1.0.0"})

    def _setup_metrics(self):
        """Set up common and authorization metrics."""
        registry_kwargs = {"registry": self.registry} if self.registry is not None else {}

        self._metrics["service_info"] = Info(
            "rbac_service",
            "Service information",
            ["service"],
            **registry_kwargs
        )

        self._metrics["errors_total"] = Counter(
            "rbac_errors_total",
            "Total errors",
            ["error_type", "service"],
            **registry_kwargs
        )

        self._metrics["authorization_checks_total"] = Counter(
            "rbac_authorization_checks_total",
            "Total authorization checks",
            ["decision", "mode"],
            **registry_kwargs
        )

        self._metrics["authorization_check_duration_seconds"] = Histogram(
            "rbac_authorization_check_duration_seconds",
            "Authorization check duration in seconds",
            **registry_kwargs
        )

        self._metrics["role_checks_total"] = Counter(
            "rbac_role_satisfaction_checks_total",
            "Total role satisfaction checks",
            ["decision"],
            **registry_kwargs
        )

        self._metrics["role_graph_loads_total"] = Counter(
            "rbac_role_graph_loads_total",
            "Total role graph load cycles",
            ["status"],
            **registry_kwargs
        )

        self._metrics["role_graph_roles"] = Gauge(
            "rbac_role_graph_roles",
            "Number of roles held in the role graph",
            **registry_kwargs
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_check(self, decision: str, mode: str, duration: float):
        """Record one authorization decision."""
        self._metrics["authorization_checks_total"].labels(decision=decision, mode=mode).inc()
        self._metrics["authorization_check_duration_seconds"].observe(duration)

    def record_role_check(self, decision: str, duration: float):
        """Record one role satisfaction decision."""
        self._metrics["role_checks_total"].labels(decision=decision).inc()
        self._metrics["authorization_check_duration_seconds"].observe(duration)

    def record_load(self, status: str, role_count: Optional[int] = None):
        """Record a role graph load cycle."""
        self._metrics["role_graph_loads_total"].labels(status=status).inc()
        if role_count is not None:
            self._metrics["role_graph_roles"].set(role_count)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()


_default_collectors: Dict[str, MetricsCollector] = {}
_default_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors on the default registry are cached per service name and share
    one set of metric objects, since prometheus_client rejects registering
    the same metric twice.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _default_lock:
        collector = _default_collectors.get(service_name)
        if collector is None:
            shared_metrics = None
            if _default_collectors:
                shared_metrics = next(iter(_default_collectors.values()))._metrics
            collector = MetricsCollector(service_name, metrics=shared_metrics)
            _default_collectors[service_name] = collector
        return collector
