"""Shared fixtures: isolated settings locations, stores, trees and a scripted approval callback."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from toolgate.permissions.resolver import PermissionResolver
from toolgate.permissions.routes import SessionRouteTree
from toolgate.permissions.rules import ALLOW_KEY, DENY_KEY, RawRules
from toolgate.permissions.scope import WorkingDirectoryScope
from toolgate.permissions.store import RuleStore
from toolgate.types.permissions import ApprovalResponse, ToolInvocationRequest


def raw_rules(allow: Iterable[str] = (), deny: Iterable[str] = ()) -> RawRules:
    """Build a settings-shaped rules document, keyed by each pattern's tool name."""

    def group(patterns: Iterable[str]) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for pattern in patterns:
            grouped.setdefault(pattern.split("(", 1)[0], []).append(pattern)
        return grouped

    return {ALLOW_KEY: group(allow), DENY_KEY: group(deny)}


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


@dataclass
class ScriptedApproval:
    """Approval callback that answers from a fixed script and records every prompt.

    Usage:
        callback = ScriptedApproval([ApprovalResponse.ALLOW_ALWAYS])
        allowed = await manager.authorize(request, callback=callback)
    """

    responses: list[ApprovalResponse]
    calls: list[tuple[ToolInvocationRequest, str, list[str]]] = field(default_factory=list)

    async def request_approval(
        self,
        request: ToolInvocationRequest,
        description: str,
        suggestions: list[str],
    ) -> ApprovalResponse:
        self.calls.append((request, description, suggestions))
        return self.responses.pop(0)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every settings location at a per-test directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("TOOLGATE_HOME", str(home))
    monkeypatch.setenv("TOOLGATE_POLICY_SETTINGS", str(tmp_path / "etc" / "managed-settings.json"))
    monkeypatch.delenv("TOOLGATE_MODE", raising=False)
    monkeypatch.delenv("TOOLGATE_AUDIT", raising=False)
    return home


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def store() -> RuleStore:
    return RuleStore()


@pytest.fixture
def tree(store: RuleStore) -> SessionRouteTree:
    return SessionRouteTree(store)


@pytest.fixture
def resolver(tree: SessionRouteTree) -> PermissionResolver:
    return PermissionResolver(tree)


@pytest.fixture
def scope(project: Path) -> WorkingDirectoryScope:
    return WorkingDirectoryScope.create(project)

