"""Tracing helpers built on the OpenTelemetry API."""

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace
from opentelemetry.trace import Span


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the globally configured provider."""
    return trace.get_tracer(name)


@contextmanager
def traced_operation(
    name: str,
    tracer: Optional[trace.Tracer] = None,
    **attributes: Any,
) -> Iterator[Span]:
    """Run a block inside a span.

    Exceptions escaping the block are recorded on the span and mark it as
    failed. Without an SDK provider the span is non-recording.
    """
    tracer = tracer or get_tracer("rbac")
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is None:
                continue
            if not isinstance(value, (str, bool, int, float)):
                value = str(value)
            span.set_attribute(key, value)
        yield span
