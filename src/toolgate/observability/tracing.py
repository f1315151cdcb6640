"""Tracer and span context manager.

Spans are created through the OpenTelemetry API; without a configured SDK
they are non-recording and cost next to nothing.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace

TRACER_NAME = "toolgate"


def get_tracer(name: str = TRACER_NAME) -> trace.Tracer:
    """Return an OTel Tracer."""
    return trace.get_tracer(name)


@contextmanager
def span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """Context manager that creates an OTel span."""
    tracer = get_tracer()
    with tracer.start_as_current_span(name, attributes=attributes) as s:
        yield s

