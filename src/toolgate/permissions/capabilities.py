"""Static tool capability tags consulted by mode overrides."""

from __future__ import annotations

from collections.abc import Mapping

from toolgate.types.config import ToolCapability

# Tools that only observe the filesystem or the network
READ_ONLY_TOOLS = frozenset({
    "Read", "Glob", "Grep", "LS", "NotebookRead", "ToolSearch", "WebFetch", "WebSearch",
})

# Tools that modify files in the working directory
EDIT_TOOLS = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})


class CapabilityRegistry:
    """Maps tool names to a :class:`ToolCapability`.

    Unknown tools (including every MCP tool unless registered) are treated as
    mutating.
    """

    def __init__(self, overrides: Mapping[str, ToolCapability] | None = None) -> None:
        self._tags: dict[str, ToolCapability] = {}
        for name in READ_ONLY_TOOLS:
            self._tags[name] = ToolCapability.READONLY
        for name in EDIT_TOOLS:
            self._tags[name] = ToolCapability.EDIT
        if overrides:
            self._tags.update(overrides)

    def register(self, tool_name: str, capability: ToolCapability) -> None:
        self._tags[tool_name] = capability

    def classify(self, tool_name: str) -> ToolCapability:
        return self._tags.get(tool_name, ToolCapability.MUTATING)

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._tags
