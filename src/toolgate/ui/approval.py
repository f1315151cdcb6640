"""Rich-formatted approval prompt for tool calls."""

from __future__ import annotations

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from toolgate.permissions.approval import parse_answer
from toolgate.types.permissions import ApprovalResponse, ToolInvocationRequest


class RichApprovalCallback:
    """Rich-formatted interactive approval prompt."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    async def request_approval(
        self,
        request: ToolInvocationRequest,
        description: str,
        suggestions: list[str],
    ) -> ApprovalResponse:
        """Show a styled approval prompt and wait for y/a/n."""
        title = Text(f" ◆ {request.tool_name} ", style="bold #fbbf24")
        body = Text(description, style="#94a3b8")
        if suggestions:
            body.append("\n\nAlways allow would add: ", style="#7c7c8a")
            body.append(", ".join(suggestions), style="bold #94a3b8")

        self._console.print()
        self._console.print(Panel(
            body,
            title=title,
            border_style="#fbbf24",
            expand=False,
            padding=(0, 1),
        ))

        loop = asyncio.get_running_loop()
        prompt_text = "[bold #fbbf24]Allow?[/bold #fbbf24] [#7c7c8a](y/a/n)[/#7c7c8a] › "
        try:
            self._console.print(prompt_text, end="")
            answer = await loop.run_in_executor(None, lambda: input(""))
        except (EOFError, KeyboardInterrupt):
            self._console.print()
            return ApprovalResponse.DENY
        return parse_answer(answer)
