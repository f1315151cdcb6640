"""Tests for approval callbacks and prompt helpers."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from toolgate.permissions.approval import (
    ApprovalCallback,
    StdinApprovalCallback,
    describe_request,
    parse_answer,
)
from toolgate.permissions.signatures import build_request
from toolgate.types.permissions import ApprovalResponse, ToolInvocationRequest
from toolgate.ui.approval import RichApprovalCallback


class TestParseAnswer:
    @pytest.mark.parametrize("answer,expected", [
        ("y", ApprovalResponse.ALLOW_ONCE),
        ("YES", ApprovalResponse.ALLOW_ONCE),
        (" a ", ApprovalResponse.ALLOW_ALWAYS),
        ("always", ApprovalResponse.ALLOW_ALWAYS),
        ("n", ApprovalResponse.DENY),
        ("", ApprovalResponse.DENY),
        ("maybe", ApprovalResponse.DENY),
    ])
    def test_answers(self, answer, expected):
        assert parse_answer(answer) is expected


class TestDescribeRequest:
    def test_shell(self):
        assert describe_request(ToolInvocationRequest("Bash", "git log:--oneline")) == (
            "Run command: git log --oneline"
        )

    def test_chained_shell_shown_verbatim(self):
        request = build_request("Bash", {"command": "echo a:b && ls"})
        assert describe_request(request) == "Run command: echo a:b && ls"

    def test_path(self):
        assert describe_request(ToolInvocationRequest("Edit", "a.py", "a.py")) == "Edit a.py"

    def test_mcp(self):
        assert describe_request(ToolInvocationRequest("mcp__github__create_issue")) == (
            "MCP tool: create_issue (server github)"
        )

    def test_long_signature_truncated(self):
        text = describe_request(ToolInvocationRequest("WebFetch", "domain:" + "x" * 200))
        assert text.endswith("...)")
        assert len(text) < 100

    def test_bare(self):
        assert describe_request(ToolInvocationRequest("WebSearch")) == "WebSearch"


class TestStdinApproval:
    def test_satisfies_protocol(self):
        assert isinstance(StdinApprovalCallback(), ApprovalCallback)
        assert isinstance(RichApprovalCallback(), ApprovalCallback)

    @pytest.mark.asyncio
    async def test_reads_answer(self, monkeypatch):
        prompts: list[str] = []

        def fake_input(prompt: str = "") -> str:
            prompts.append(prompt)
            return "a"

        monkeypatch.setattr("builtins.input", fake_input)
        request = ToolInvocationRequest("Bash", "npm run:build")
        response = await StdinApprovalCallback().request_approval(
            request, "Run command: npm run build", ["Bash(npm run:*)"],
        )
        assert response is ApprovalResponse.ALLOW_ALWAYS
        assert "Bash(npm run:*)" in prompts[0]

    @pytest.mark.asyncio
    async def test_no_always_option_without_suggestions(self, monkeypatch):
        prompts: list[str] = []
        monkeypatch.setattr("builtins.input", lambda prompt="": prompts.append(prompt) or "n")
        await StdinApprovalCallback().request_approval(
            ToolInvocationRequest("Bash", "$(id)"), "Run command: $(id)", [],
        )
        assert "[a]lways" not in prompts[0]

    @pytest.mark.asyncio
    async def test_eof_denies(self, monkeypatch):
        def raise_eof(prompt: str = "") -> str:
            raise EOFError

        monkeypatch.setattr("builtins.input", raise_eof)
        response = await StdinApprovalCallback().request_approval(
            ToolInvocationRequest("Bash"), "Bash", [],
        )
        assert response is ApprovalResponse.DENY


class TestRichApproval:
    @pytest.mark.asyncio
    async def test_renders_panel_and_reads_answer(self, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt="": "y")
        buf = io.StringIO()
        callback = RichApprovalCallback(Console(file=buf, width=100))
        response = await callback.request_approval(
            ToolInvocationRequest("Write", "out.txt", "out.txt"), "Write out.txt", ["Write"],
        )
        assert response is ApprovalResponse.ALLOW_ONCE
        output = buf.getvalue()
        assert "Write out.txt" in output
        assert "Always allow would add" in output

    @pytest.mark.asyncio
    async def test_eof_denies(self, monkeypatch):
        def raise_eof(prompt: str = "") -> str:
            raise EOFError

        monkeypatch.setattr("builtins.input", raise_eof)
        callback = RichApprovalCallback(Console(file=io.StringIO()))
        response = await callback.request_approval(ToolInvocationRequest("Bash"), "Bash", [])
        assert response is ApprovalResponse.DENY
