"""AuditLogger — append-only JSONL with chain integrity."""

from __future__ import annotations

import hashlib
import json
import threading
import time
import uuid
from enum import Enum
from pathlib import Path
from typing import IO, Any


class AuditEventType(Enum):
    """Types of audit events."""

    PERMISSION_DECISION = "permission_decision"
    APPROVAL = "approval"
    RULE_ADDED = "rule_added"
    RULE_REMOVED = "rule_removed"
    MODE_CHANGED = "mode_changed"
    DIRECTORY_ADDED = "directory_added"
    LOAD_WARNING = "load_warning"


GENESIS_HASH = "0" * 64


class AuditLogger:
    """Append-only audit logger with tamper-detection via hash chaining.

    Each event includes a SHA-256 hash computed over the event *without* the
    ``hash`` field, then the hash is stored alongside it.  To verify chain
    integrity, use :meth:`verify_chain` which re-derives each hash and checks
    ``prev_hash`` links.

    The log file handle is kept open for the lifetime of the logger.  Call
    :meth:`close` (or use as a context manager) to flush and release it.
    """

    def __init__(
        self,
        session_id: str,
        *,
        enabled: bool = True,
        audit_dir: Path | None = None,
    ) -> None:
        self._enabled = enabled
        self._session_id = session_id
        self._prev_hash = GENESIS_HASH
        self._event_count = 0
        self._handle: IO[str] | None = None
        self._lock = threading.Lock()

        if enabled:
            self._audit_dir = audit_dir or (Path.home() / ".toolgate" / "audit")
            self._audit_dir.mkdir(parents=True, exist_ok=True)
            self._log_path: Path | None = self._audit_dir / f"audit-{session_id}.jsonl"
            self._handle = open(self._log_path, "a")  # noqa: SIM115
        else:
            self._audit_dir = None
            self._log_path = None

    # -- Context manager support ------------------------------------------

    def __enter__(self) -> AuditLogger:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        """Flush and close the underlying file handle."""
        if self._handle is not None:
            self._handle.flush()
            self._handle.close()
            self._handle = None

    # -- Properties -------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    @property
    def event_count(self) -> int:
        return self._event_count

    # -- Core write -------------------------------------------------------

    @staticmethod
    def _compute_hash(event: dict[str, Any]) -> str:
        """Compute SHA-256 over the event dict *without* the ``hash`` key."""
        payload = {k: v for k, v in event.items() if k != "hash"}
        event_json = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(event_json.encode()).hexdigest()

    def _write_event(self, event_type: AuditEventType, data: dict[str, Any]) -> str | None:
        """Write an audit event. Returns the event_id or None if disabled."""
        if not self._enabled or self._handle is None:
            return None

        event_id = uuid.uuid4().hex[:16]
        with self._lock:
            event = {
                "event_id": event_id,
                "timestamp": time.time(),
                "event_type": event_type.value,
                "session_id": self._session_id,
                "data": data,
                "prev_hash": self._prev_hash,
            }

            event_hash = self._compute_hash(event)
            event["hash"] = event_hash
            self._prev_hash = event_hash
            self._event_count += 1

            self._handle.write(json.dumps(event, separators=(",", ":")) + "\n")
            self._handle.flush()

        return event_id

    # -- Chain verification -----------------------------------------------

    @staticmethod
    def verify_chain(log_path: Path) -> tuple[bool, list[str]]:
        """Verify the integrity of an audit log file.

        Returns ``(valid, errors)`` where *valid* is ``True`` when the chain
        is intact and *errors* lists human-readable descriptions of any
        problems found.
        """
        errors: list[str] = []
        expected_prev = GENESIS_HASH

        with open(log_path) as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError as e:
                    errors.append(f"Line {lineno}: invalid JSON ({e})")
                    break  # chain is broken

                stored_hash = event.get("hash", "")
                recomputed = AuditLogger._compute_hash(event)
                if recomputed != stored_hash:
                    errors.append(
                        f"Line {lineno}: hash mismatch "
                        f"(stored={stored_hash[:12]}… recomputed={recomputed[:12]}…)"
                    )

                if event.get("prev_hash") != expected_prev:
                    errors.append(
                        f"Line {lineno}: prev_hash mismatch "
                        f"(expected={expected_prev[:12]}… got={event.get('prev_hash', '')[:12]}…)"
                    )

                expected_prev = stored_hash

        return (len(errors) == 0, errors)

    # -- Convenience methods ----------------------------------------------

    def log_permission_decision(
        self,
        tool_name: str,
        decision: str,
        reason: str,
        mode: str,
        *,
        rule: str | None = None,
        route_id: str | None = None,
        nested: bool = False,
    ) -> str | None:
        return self._write_event(AuditEventType.PERMISSION_DECISION, {
            "tool": tool_name,
            "decision": decision,
            "reason": reason,
            "mode": mode,
            "rule": rule,
            "route": route_id,
            "nested": nested,
        })

    def log_approval(self, tool_name: str, response: str) -> str | None:
        return self._write_event(AuditEventType.APPROVAL, {
            "tool": tool_name,
            "response": response,
        })

    def log_rule_added(self, rule: str, action: str, source: str) -> str | None:
        return self._write_event(AuditEventType.RULE_ADDED, {
            "rule": rule,
            "action": action,
            "source": source,
        })

    def log_rule_removed(self, rule: str, action: str, source: str) -> str | None:
        return self._write_event(AuditEventType.RULE_REMOVED, {
            "rule": rule,
            "action": action,
            "source": source,
        })

    def log_mode_changed(self, old_mode: str, new_mode: str) -> str | None:
        return self._write_event(AuditEventType.MODE_CHANGED, {
            "from": old_mode,
            "to": new_mode,
        })

    def log_directory_added(self, path: str) -> str | None:
        return self._write_event(AuditEventType.DIRECTORY_ADDED, {"path": path})

    def log_load_warning(self, source: str, kind: str, message: str) -> str | None:
        return self._write_event(AuditEventType.LOAD_WARNING, {
            "source": source,
            "kind": kind,
            "message": message,
        })
