"""Rich rendering for CLI output."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table
from rich.text import Text

from toolgate.permissions.rules import RuleAction, RuleStoreSnapshot
from toolgate.permissions.scope import WorkingDirectoryScope
from toolgate.types.permissions import Decision, LoadWarning, Outcome, ToolInvocationRequest

STYLE_ALLOW = "bold #22c55e"
STYLE_DENY = "bold #ef4444"
STYLE_ASK = "bold #fbbf24"
STYLE_DIM = "#7c7c8a"
STYLE_WARNING = "#fbbf24"

_OUTCOME_STYLES = {
    Outcome.ALLOW: STYLE_ALLOW,
    Outcome.DENY: STYLE_DENY,
    Outcome.ASK: STYLE_ASK,
}


def make_console() -> Console:
    """Console bound to whatever ``sys.stdout`` is at print time."""
    return Console(highlight=False, soft_wrap=True)


def print_decision(console: Console, request: ToolInvocationRequest, decision: Decision) -> None:
    """Print one decision as ``OUTCOME  reason  tool(signature)``."""
    line = Text()
    line.append(decision.outcome.value.upper(), style=_OUTCOME_STYLES[decision.outcome])
    line.append(f"  {decision.reason.value}  ", style=STYLE_DIM)
    line.append(request.tool_name)
    if request.arg_signature:
        line.append(f"({request.arg_signature})")
    if request.target_path:
        line.append(f" {request.target_path}", style=STYLE_DIM)
    console.print(line)

    if decision.matched_rule is not None:
        rule = decision.matched_rule
        console.print(
            Text(f"  matched {rule.pattern} from {rule.source.value}", style=STYLE_DIM),
        )


def rules_table(snapshot: RuleStoreSnapshot) -> Table:
    """Merged rules, highest-precedence source first, deny before allow."""
    tbl = Table(show_edge=False, padding=(0, 1), expand=False)
    tbl.add_column("Source", no_wrap=True)
    tbl.add_column("Action", no_wrap=True)
    tbl.add_column("Pattern", no_wrap=True)

    for source in snapshot.precedence:
        rule_set = snapshot.rule_set(source)
        for action in (RuleAction.DENY, RuleAction.ALLOW):
            style = STYLE_DENY if action is RuleAction.DENY else STYLE_ALLOW
            for bucket in rule_set.rules(action).values():
                for rule in bucket:
                    tbl.add_row(source.value, Text(action.value, style=style), rule.pattern)
    return tbl


def print_scope(console: Console, scope: WorkingDirectoryScope) -> None:
    console.print(Text("Directories:", style="bold"))
    for directory in scope.directories:
        console.print(f"  {directory}")


def print_warnings(console: Console, warnings: tuple[LoadWarning, ...]) -> None:
    if not warnings:
        return
    console.print()
    console.print(Text(f"{len(warnings)} warning(s):", style=STYLE_WARNING))
    for warning in warnings:
        console.print(Text(f"  {warning}", style=STYLE_WARNING))
