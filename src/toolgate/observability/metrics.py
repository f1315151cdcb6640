"""Metrics recording for permission decisions and rule changes."""

from __future__ import annotations

from typing import Any

from opentelemetry import metrics

# Lazily-created instruments
_meter: Any = None
_decision_counter: Any = None
_rule_change_counter: Any = None
_load_warning_counter: Any = None


def _ensure_instruments() -> None:
    """Create meter and instruments on first use."""
    global _meter, _decision_counter, _rule_change_counter, _load_warning_counter

    if _meter is not None:
        return

    _meter = metrics.get_meter("toolgate")
    _decision_counter = _meter.create_counter(
        "toolgate.decisions",
        description="Permission decisions by outcome and reason",
    )
    _rule_change_counter = _meter.create_counter(
        "toolgate.rule_changes",
        description="Rules added or removed at runtime",
    )
    _load_warning_counter = _meter.create_counter(
        "toolgate.load_warnings",
        description="Settings problems skipped while loading rules",
    )


def record_decision(outcome: str, reason: str, mode: str) -> None:
    """Record one resolved permission decision."""
    _ensure_instruments()
    _decision_counter.add(1, {"outcome": outcome, "reason": reason, "mode": mode})


def record_rule_change(change: str, source: str) -> None:
    """Record a rule being added or removed (``change`` is "added"/"removed")."""
    _ensure_instruments()
    _rule_change_counter.add(1, {"change": change, "source": source})


def record_load_warning(kind: str, source: str) -> None:
    """Record a settings problem found during load."""
    _ensure_instruments()
    _load_warning_counter.add(1, {"kind": kind, "source": source})
