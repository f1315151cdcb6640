"""Tests for the audit module."""

from __future__ import annotations

import json
from pathlib import Path

from toolgate.audit.logger import GENESIS_HASH, AuditEventType, AuditLogger

# ---------------------------------------------------------------------------
# AuditLogger tests
# ---------------------------------------------------------------------------


def _events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestAuditLogger:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = AuditLogger("test-session", audit_dir=tmp_path)
        logger.log_permission_decision("Bash", "ask", "needs_approval", "default")
        assert logger.log_path == tmp_path / "audit-test-session.jsonl"
        assert logger.log_path.exists()
        logger.close()

    def test_disabled_logger_noop(self, tmp_path: Path) -> None:
        logger = AuditLogger("test-session", enabled=False, audit_dir=tmp_path)
        result = logger.log_mode_changed("default", "plan")
        assert result is None
        assert logger.event_count == 0
        assert logger.log_path is None
        assert list(tmp_path.iterdir()) == []

    def test_chain_integrity(self, tmp_path: Path) -> None:
        with AuditLogger("test-session", audit_dir=tmp_path) as logger:
            logger.log_permission_decision("Bash", "allow", "explicit_allow", "default", rule="Bash(ls:*)")
            logger.log_approval("Edit", "allow_always")
            logger.log_rule_added("Bash(npm run:*)", "allow", "localSettings")
            logger.log_rule_removed("Bash(npm run:*)", "allow", "localSettings")
            assert logger.event_count == 4

        events = _events(logger.log_path)  # type: ignore[arg-type]
        assert events[0]["prev_hash"] == GENESIS_HASH
        for i in range(1, len(events)):
            # Each event's prev_hash should match the previous event's hash
            assert events[i]["prev_hash"] == events[i - 1]["hash"]

    def test_event_payloads(self, tmp_path: Path) -> None:
        with AuditLogger("s", audit_dir=tmp_path) as logger:
            logger.log_permission_decision(
                "Read", "deny", "path_out_of_scope", "plan", route_id="r1", nested=True,
            )
            logger.log_mode_changed("default", "acceptEdits")
            logger.log_directory_added("/srv/shared")
            logger.log_load_warning("projectSettings", "invalid_pattern", "bad rule")

        decision, mode, directory, warning = _events(logger.log_path)  # type: ignore[arg-type]
        assert decision["event_type"] == AuditEventType.PERMISSION_DECISION.value
        assert decision["data"] == {
            "tool": "Read", "decision": "deny", "reason": "path_out_of_scope",
            "mode": "plan", "rule": None, "route": "r1", "nested": True,
        }
        assert mode["data"] == {"from": "default", "to": "acceptEdits"}
        assert directory["data"] == {"path": "/srv/shared"}
        assert warning["event_type"] == "load_warning"
        assert all(e["session_id"] == "s" for e in (decision, mode, directory, warning))


class TestVerifyChain:
    def test_valid(self, tmp_path: Path) -> None:
        with AuditLogger("v", audit_dir=tmp_path) as logger:
            logger.log_approval("Bash", "deny")
            logger.log_approval("Bash", "allow_once")
        assert AuditLogger.verify_chain(logger.log_path) == (True, [])  # type: ignore[arg-type]

    def test_tampered_event(self, tmp_path: Path) -> None:
        with AuditLogger("v", audit_dir=tmp_path) as logger:
            logger.log_approval("Bash", "deny")
            logger.log_approval("Bash", "deny")
        path = logger.log_path
        assert path is not None
        lines = path.read_text().splitlines()
        lines[0] = lines[0].replace('"deny"', '"allow_always"')
        path.write_text("\n".join(lines) + "\n")

        valid, errors = AuditLogger.verify_chain(path)
        assert not valid
        assert any("hash mismatch" in e for e in errors)

    def test_deleted_event(self, tmp_path: Path) -> None:
        with AuditLogger("v", audit_dir=tmp_path) as logger:
            for mode in ("plan", "default", "acceptEdits"):
                logger.log_mode_changed("x", mode)
        path = logger.log_path
        assert path is not None
        lines = path.read_text().splitlines()
        path.write_text("\n".join([lines[0], lines[2]]) + "\n")

        valid, errors = AuditLogger.verify_chain(path)
        assert not valid
        assert any("prev_hash mismatch" in e for e in errors)

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.jsonl"
        path.write_text("not json\n")
        valid, errors = AuditLogger.verify_chain(path)
        assert not valid
        assert "invalid JSON" in errors[0]
