"""OpenTelemetry-based observability for toolgate."""

from toolgate.observability.metrics import (
    record_decision,
    record_load_warning,
    record_rule_change,
)
from toolgate.observability.tracing import get_tracer, span

__all__ = [
    "get_tracer",
    "record_decision",
    "record_load_warning",
    "record_rule_change",
    "span",
]
