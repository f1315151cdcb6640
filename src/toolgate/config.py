"""Settings loading and persistence (JSON settings files, env vars).

One JSON document per rule source::

    {
      "alwaysAllowRules": {"Bash": ["Bash(git log:*)"]},
      "alwaysDenyRules": {"mcp__fs__*": ["mcp__fs__*"]},
      "defaultMode": "acceptEdits",
      "additionalDirectories": ["../shared"]
    }
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from toolgate.permissions.patterns import InvalidPatternError, split_pattern
from toolgate.permissions.rules import ALLOW_KEY, DENY_KEY, RawRules
from toolgate.types.config import EDITABLE_SOURCES, SOURCE_PRECEDENCE, PermissionMode, RuleSource

# Load .env from current directory (and parents), won't override existing env vars
load_dotenv()

logger = logging.getLogger(__name__)

SETTINGS_DIR = ".toolgate"
DEFAULT_POLICY_PATH = Path("/etc/toolgate/managed-settings.json")
MODE_KEY = "defaultMode"
DIRECTORIES_KEY = "additionalDirectories"


class SettingsWriteError(OSError):
    """Raised when rules cannot be written back to a settings file."""


def toolgate_home() -> Path:
    """Directory holding user-scope settings and audit logs."""
    if home := os.environ.get("TOOLGATE_HOME"):
        return Path(home).expanduser()
    return Path.home() / SETTINGS_DIR


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    if home := os.environ.get("TOOLGATE_HOME"):
        config["home"] = home
    if policy := os.environ.get("TOOLGATE_POLICY_SETTINGS"):
        config["policy_settings"] = policy
    if mode := os.environ.get("TOOLGATE_MODE"):
        config["mode"] = mode
    if audit := os.environ.get("TOOLGATE_AUDIT"):
        config["audit"] = audit.strip().lower() in ("1", "true", "yes", "on")

    return config


def settings_path(source: RuleSource, cwd: str | Path | None = None) -> Path | None:
    """Well-known settings file for *source*; ``None`` for command-line rules."""
    project = Path(cwd) if cwd else Path.cwd()
    match source:
        case RuleSource.USER_SETTINGS:
            return toolgate_home() / "settings.json"
        case RuleSource.PROJECT_SETTINGS:
            return project / SETTINGS_DIR / "settings.json"
        case RuleSource.LOCAL_SETTINGS:
            return project / SETTINGS_DIR / "settings.local.json"
        case RuleSource.POLICY_SETTINGS:
            if policy := os.environ.get("TOOLGATE_POLICY_SETTINGS"):
                return Path(policy).expanduser()
            return DEFAULT_POLICY_PATH
        case _:
            return None


def read_settings_file(path: Path) -> dict[str, Any] | None:
    """Read a settings document.

    Returns ``{}`` for a missing file and ``None`` when the file exists but
    cannot be read or parsed.
    """
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Cannot read settings file %s: %s", path, exc)
        return None
    except ValueError as exc:
        logger.warning("Invalid JSON in settings file %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Settings file %s does not contain a JSON object", path)
        return None
    return data


def cli_raw_rules(allow: Iterable[str] = (), deny: Iterable[str] = ()) -> RawRules:
    """Group ``--allow``/``--deny`` patterns by tool name.

    Unparseable patterns are still passed through (keyed by their raw text)
    so the rule store reports them alongside file-based problems.
    """

    def group(patterns: Iterable[str]) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for pattern in patterns:
            try:
                tool_name, _ = split_pattern(pattern.strip())
            except InvalidPatternError:
                tool_name = pattern
            grouped.setdefault(tool_name, []).append(pattern)
        return grouped

    return {ALLOW_KEY: group(allow), DENY_KEY: group(deny)}


@dataclass(slots=True)
class SettingsBundle:
    """Everything loaded from the settings sources for one session."""

    raw_rules: dict[RuleSource, RawRules | None] = field(default_factory=dict)
    paths: dict[RuleSource, Path] = field(default_factory=dict)
    default_mode: PermissionMode | None = None
    additional_directories: tuple[Path, ...] = ()

    @property
    def unavailable(self) -> tuple[RuleSource, ...]:
        return tuple(s for s, raw in self.raw_rules.items() if raw is None)


def load_settings(
    cwd: str | Path | None = None,
    *,
    cli_allow: Iterable[str] = (),
    cli_deny: Iterable[str] = (),
) -> SettingsBundle:
    """Read every settings source for a project directory."""
    project = Path(cwd).resolve() if cwd else Path.cwd()
    bundle = SettingsBundle()
    documents: dict[RuleSource, dict[str, Any]] = {}

    for source in SOURCE_PRECEDENCE:
        if source is RuleSource.CLI_ARG:
            bundle.raw_rules[source] = cli_raw_rules(cli_allow, cli_deny)
            continue
        path = settings_path(source, project)
        if path is None:
            continue
        bundle.paths[source] = path
        data = read_settings_file(path)
        if data is None:
            bundle.raw_rules[source] = None
            continue
        documents[source] = data
        bundle.raw_rules[source] = {
            key: data[key] for key in (ALLOW_KEY, DENY_KEY) if key in data
        }

    bundle.default_mode = _resolve_default_mode(documents)
    bundle.additional_directories = _collect_directories(documents, project)
    return bundle


def _resolve_default_mode(documents: dict[RuleSource, dict[str, Any]]) -> PermissionMode | None:
    """First valid ``defaultMode`` in precedence order."""
    for source in SOURCE_PRECEDENCE:
        value = documents.get(source, {}).get(MODE_KEY)
        if value is None:
            continue
        try:
            return PermissionMode.parse(str(value))
        except ValueError:
            logger.warning("Ignoring unknown %s %r in %s", MODE_KEY, value, source.value)
    return None


def _collect_directories(
    documents: dict[RuleSource, dict[str, Any]], project: Path,
) -> tuple[Path, ...]:
    seen: dict[Path, None] = {}
    for source in SOURCE_PRECEDENCE:
        entries = documents.get(source, {}).get(DIRECTORIES_KEY, [])
        if not isinstance(entries, list):
            logger.warning("Ignoring non-list %s in %s", DIRECTORIES_KEY, source.value)
            continue
        for entry in entries:
            if not isinstance(entry, str) or not entry:
                continue
            path = Path(entry).expanduser()
            if not path.is_absolute():
                path = project / path
            seen[path.resolve()] = None
    return tuple(seen)


class JsonSettingsStore:
    """Writes rule changes back to the JSON settings files."""

    def __init__(self, cwd: str | Path | None = None) -> None:
        self._cwd = Path(cwd).resolve() if cwd else Path.cwd()

    def path_for(self, source: RuleSource) -> Path | None:
        return settings_path(source, self._cwd)

    def write_rules(self, source: RuleSource, raw: RawRules) -> Path:
        """Replace *source*'s rule lists, keeping every other key in the file."""
        if source not in EDITABLE_SOURCES:
            raise SettingsWriteError(f"Refusing to write rules to {source.value}")
        path = self.path_for(source)
        if path is None:
            raise SettingsWriteError(f"No settings file for {source.value}")

        data = read_settings_file(path)
        if data is None:
            raise SettingsWriteError(f"Existing settings file {path} is unreadable; not overwriting")

        for key in (ALLOW_KEY, DENY_KEY):
            rules = dict(raw.get(key) or {})
            if rules:
                data[key] = rules
            else:
                data.pop(key, None)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2) + "\n")
        except OSError as exc:
            raise SettingsWriteError(f"Cannot write settings file {path}: {exc}") from exc
        logger.info("Wrote %s rules to %s", source.value, path)
        return path
