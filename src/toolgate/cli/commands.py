"""CLI subcommands for toolgate (rules, validate, allow/deny/remove, audit)."""

from __future__ import annotations

from pathlib import Path

import click

from toolgate.cli.output import make_console, print_scope, print_warnings, rules_table
from toolgate.permissions.patterns import InvalidPatternError, compile_pattern
from toolgate.permissions.rules import RuleAction
from toolgate.types.config import RuleSource

SCOPES = {
    "user": RuleSource.USER_SETTINGS,
    "project": RuleSource.PROJECT_SETTINGS,
    "local": RuleSource.LOCAL_SETTINGS,
}

_scope_option = click.option(
    "--scope",
    type=click.Choice(sorted(SCOPES)),
    default="local",
    show_default=True,
    help="Settings file to edit",
)
_cwd_option = click.option("--cwd", default=None, help="Project directory")


@click.command()
@_cwd_option
def rules_cmd(cwd: str | None) -> None:
    """Show the merged rules in precedence order."""
    from toolgate.permissions.manager import PermissionManager

    manager = PermissionManager.from_settings(cwd)
    snapshot = manager.store.snapshot()
    console = make_console()

    console.print(f"Mode: {manager.mode.value}")
    print_scope(console, manager.scope)
    console.print()
    if snapshot.always_allow_rules or snapshot.always_deny_rules:
        console.print(rules_table(snapshot))
    else:
        console.print("(no rules configured)")
    print_warnings(console, manager.warnings)


@click.command()
@click.argument("patterns", nargs=-1, required=True)
def validate_cmd(patterns: tuple[str, ...]) -> None:
    """Check that rule patterns compile."""
    failed = 0
    for pattern in patterns:
        try:
            matcher = compile_pattern(pattern)
        except InvalidPatternError as e:
            failed += 1
            click.echo(f"invalid  {pattern}: {e.reason}")
            continue
        detail = f"tool={matcher.tool_name}"
        if matcher.arg_glob is not None:
            detail += f" args={matcher.arg_glob}"
        click.echo(f"ok       {pattern} ({detail})")

    if failed:
        raise SystemExit(1)


def _edit_rule(pattern: str, action: RuleAction, scope: str, cwd: str | None, *, remove: bool) -> None:
    from toolgate.config import SettingsWriteError
    from toolgate.permissions.manager import PermissionManager

    source = SCOPES[scope]
    manager = PermissionManager.from_settings(cwd)
    before = manager.store.snapshot()
    try:
        if remove:
            after = manager.remove_rule(pattern, action, source)
        else:
            after = manager.add_rule(pattern, action, source)
    except (InvalidPatternError, SettingsWriteError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    if after is before:
        state = "not present in" if remove else "already in"
        click.echo(f"Rule {pattern.strip()} {state} {source.value}; nothing to do")
        return

    verb = "Removed" if remove else "Added"
    click.echo(f"{verb} {action.value} rule {pattern.strip()} ({source.value})")


@click.command()
@click.argument("rule")
@_scope_option
@_cwd_option
def allow_cmd(rule: str, scope: str, cwd: str | None) -> None:
    """Add an always-allow rule to a settings file."""
    _edit_rule(rule, RuleAction.ALLOW, scope, cwd, remove=False)


@click.command()
@click.argument("rule")
@_scope_option
@_cwd_option
def deny_cmd(rule: str, scope: str, cwd: str | None) -> None:
    """Add an always-deny rule to a settings file."""
    _edit_rule(rule, RuleAction.DENY, scope, cwd, remove=False)


@click.command()
@click.argument("rule")
@click.option(
    "--action",
    type=click.Choice([a.value for a in RuleAction]),
    required=True,
    help="Which list to remove the rule from",
)
@_scope_option
@_cwd_option
def remove_cmd(rule: str, action: str, scope: str, cwd: str | None) -> None:
    """Remove a rule from a settings file."""
    _edit_rule(rule, RuleAction(action), scope, cwd, remove=True)


@click.group()
def audit_cmd() -> None:
    """Inspect audit logs."""


@audit_cmd.command("verify")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def audit_verify(path: Path) -> None:
    """Verify the hash chain of an audit log."""
    from toolgate.audit import AuditLogger

    valid, errors = AuditLogger.verify_chain(path)
    if valid:
        click.echo(f"OK: {path} chain intact")
        return
    for error in errors:
        click.echo(error)
    click.echo(f"FAILED: {len(errors)} problem(s) in {path}")
    raise SystemExit(1)
