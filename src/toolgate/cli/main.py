"""CLI entry point for toolgate."""

from __future__ import annotations

import json
import logging
import uuid

import click

from toolgate import __version__
from toolgate.cli.output import make_console, print_decision
from toolgate.types.config import PermissionMode
from toolgate.types.permissions import Outcome, ToolInvocationRequest

# Exit status of ``toolgate check`` per outcome
EXIT_CODES = {
    Outcome.ALLOW: 0,
    Outcome.DENY: 1,
    Outcome.ASK: 2,
}


def _parse_mode(ctx: click.Context, param: click.Parameter, value: str | None) -> PermissionMode | None:
    if value is None:
        return None
    try:
        return PermissionMode.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose (debug) logging")
@click.version_option(version=__version__, prog_name="toolgate")
def cli(verbose: bool) -> None:
    """toolgate -- permission rules for agent tool calls.

    \b
    Usage:
      toolgate check Bash "git log:--oneline"
      toolgate check Edit --path src/app.py --mode acceptEdits
      toolgate rules
      toolgate allow "Bash(npm run:*)" --scope project
      toolgate validate "mcp__github__*" "Bash(git log:*)"
      toolgate audit verify ~/.toolgate/audit/audit-<session>.jsonl
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command("check")
@click.argument("tool")
@click.argument("signature", required=False, default="")
@click.option("--path", "target", default=None, help="Filesystem path the call touches")
@click.option(
    "--mode",
    default=None,
    callback=_parse_mode,
    help="Permission mode (default, plan, acceptEdits, bypassPermissions)",
)
@click.option("--cwd", default=None, help="Project directory")
@click.option("--add-dir", multiple=True, help="Extra directory the session may touch")
@click.option("--allow", "allow_rules", multiple=True, help="Command-line allow rule")
@click.option("--deny", "deny_rules", multiple=True, help="Command-line deny rule")
@click.option("--json", "as_json", is_flag=True, help="Print the decision as JSON")
def check_cmd(
    tool: str,
    signature: str,
    target: str | None,
    mode: PermissionMode | None,
    cwd: str | None,
    add_dir: tuple[str, ...],
    allow_rules: tuple[str, ...],
    deny_rules: tuple[str, ...],
    as_json: bool,
) -> None:
    """Dry-run a tool call against the current rules.

    Exit status is 0 for allow, 1 for deny and 2 when the user would be asked.
    """
    from toolgate.audit import AuditLogger
    from toolgate.config import load_env_config, toolgate_home
    from toolgate.permissions.manager import PermissionManager

    audit_logger = None
    if load_env_config().get("audit"):
        audit_logger = AuditLogger(uuid.uuid4().hex[:12], audit_dir=toolgate_home() / "audit")

    manager = PermissionManager.from_settings(
        cwd,
        mode=mode,
        cli_allow=allow_rules,
        cli_deny=deny_rules,
        additional_directories=add_dir,
        audit_logger=audit_logger,
    )
    request = ToolInvocationRequest(tool_name=tool, arg_signature=signature, target_path=target)
    decision = manager.check(request)
    if audit_logger is not None:
        audit_logger.close()

    if as_json:
        payload = {
            "tool": tool,
            "signature": signature,
            "path": target,
            "mode": manager.mode.value,
            **decision.to_dict(),
        }
        click.echo(json.dumps(payload, indent=2))
    else:
        print_decision(make_console(), request, decision)
        for warning in manager.warnings:
            click.echo(f"warning: {warning}", err=True)

    raise SystemExit(EXIT_CODES[decision.outcome])


def _register_subcommands() -> None:
    """Register CLI subcommands."""
    from toolgate.cli.commands import (
        allow_cmd,
        audit_cmd,
        deny_cmd,
        remove_cmd,
        rules_cmd,
        validate_cmd,
    )

    cli.add_command(rules_cmd, "rules")
    cli.add_command(validate_cmd, "validate")
    cli.add_command(allow_cmd, "allow")
    cli.add_command(deny_cmd, "deny")
    cli.add_command(remove_cmd, "remove")
    cli.add_command(audit_cmd, "audit")


_register_subcommands()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
