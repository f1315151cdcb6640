"""Approval callback for interactive tool permission prompts."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from toolgate.permissions.patterns import SEGMENT_SEPARATOR
from toolgate.permissions.signatures import SHELL_TOOL, is_compound_command
from toolgate.types.permissions import ApprovalResponse, ToolInvocationRequest

_ANSWERS = {
    "y": ApprovalResponse.ALLOW_ONCE,
    "yes": ApprovalResponse.ALLOW_ONCE,
    "a": ApprovalResponse.ALLOW_ALWAYS,
    "always": ApprovalResponse.ALLOW_ALWAYS,
    "n": ApprovalResponse.DENY,
    "no": ApprovalResponse.DENY,
}


@runtime_checkable
class ApprovalCallback(Protocol):
    """Protocol for asking the user about a tool call."""

    async def request_approval(
        self,
        request: ToolInvocationRequest,
        description: str,
        suggestions: list[str],
    ) -> ApprovalResponse:
        """Ask the user whether to allow a tool call.

        *suggestions* are the rules an "always allow" answer would add.
        """
        ...


def parse_answer(answer: str) -> ApprovalResponse:
    """Map free-text input to a response; anything unrecognized denies."""
    return _ANSWERS.get(answer.strip().lower(), ApprovalResponse.DENY)


def describe_request(request: ToolInvocationRequest) -> str:
    """Build a human-readable one-line description of a tool call."""
    tool_name = request.tool_name
    if tool_name == SHELL_TOOL and request.arg_signature:
        command = request.arg_signature
        split_once = len(request.subcommands) == 1
        if split_once or (not request.subcommands and not is_compound_command(command)):
            command = command.replace(SEGMENT_SEPARATOR, " ", 1)
        return f"Run command: {command}"
    if request.target_path:
        return f"{tool_name} {request.target_path}"
    if tool_name.startswith("mcp__"):
        parts = tool_name.split("__", 2)
        if len(parts) == 3:
            return f"MCP tool: {parts[2]} (server {parts[1]})"
        return f"MCP tool: {tool_name}"
    if request.arg_signature:
        sig = request.arg_signature
        if len(sig) > 80:
            sig = sig[:77] + "..."
        return f"{tool_name}({sig})"
    return tool_name


class StdinApprovalCallback:
    """Plain-text approval prompt using stdin/stdout."""

    async def request_approval(
        self,
        request: ToolInvocationRequest,
        description: str,
        suggestions: list[str],
    ) -> ApprovalResponse:
        """Prompt the user with a yes/always/no question."""
        loop = asyncio.get_running_loop()
        always = f"[a]lways allow {', '.join(suggestions)} / " if suggestions else ""
        prompt = (
            f"\nAllow {request.tool_name}? {description}\n"
            f"[y]es / {always}[n]o > "
        )
        try:
            answer = await loop.run_in_executor(None, lambda: input(prompt))
        except (EOFError, KeyboardInterrupt):
            return ApprovalResponse.DENY
        return parse_answer(answer)
