# tests/test_x402_audit.py
"""
Unit tests for x402 audit logging.
"""
import json
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest
from unittest.mock import patch

from app.x402.audit import (
    AuditEventType,
    create_audit_event,
    generate_request_id,
    get_audit_log_path,
    get_audit_stats,
    log_audit_event,
    log_error,
    log_payment_failed,
    log_payment_received,
    log_payment_required_sent,
    log_payment_settled,
    log_payment_verified,
    log_request_received,
    read_audit_log,
)


class TestAuditEventType:
    """Test audit event type enumeration."""

    def test_event_types_exist(self):
        """All expected event types exist."""
        assert AuditEventType.REQUEST_RECEIVED.value == "request_received"
        assert AuditEventType.PAYMENT_REQUIRED_SENT.value == "payment_required_sent"
        assert AuditEventType.PAYMENT_RECEIVED.value == "payment_received"
        assert AuditEventType.PAYMENT_VERIFIED.value == "payment_verified"
        assert AuditEventType.PAYMENT_FAILED.value == "payment_failed"
        assert AuditEventType.PAYMENT_SETTLED.value == "payment_settled"
        assert AuditEventType.ERROR.value == "error"


class TestGenerateRequestId:
    """Test request ID generation."""

    def test_correct_length(self):
        assert len(generate_request_id()) == 8

    def test_unique_ids(self):
        ids = [generate_request_id() for _ in range(100)]
        assert len(set(ids)) == 100


class TestGetAuditLogPath:
    @patch("app.x402.audit.settings")
    def test_path_from_config(self, mock_settings):
        mock_settings.X402_AUDIT_LOG_PATH = "/var/log/x402/audit.jsonl"
        assert get_audit_log_path() == Path("/var/log/x402/audit.jsonl")


class TestCreateAuditEvent:
    """Test audit event creation."""

    def test_creates_event_structure(self):
        event = create_audit_event(
            event_type=AuditEventType.PAYMENT_RECEIVED,
            data={"value": "20000"},
            client_ip="192.168.1.1",
            wallet_address="0x1234",
            request_id="abc12345"
        )

        assert event["event_type"] == "payment_received"
        assert event["request_id"] == "abc12345"
        assert event["client_ip"] == "192.168.1.1"
        assert event["wallet_address"] == "0x1234"
        assert event["data"] == {"value": "20000"}
        assert event["timestamp"].endswith("+00:00")

    def test_generates_request_id_if_not_provided(self):
        event = create_audit_event(AuditEventType.ERROR, {}, client_ip="192.168.1.1")
        assert len(event["request_id"]) == 8


class TestLogAuditEvent:
    """Test audit event logging to file."""

    @patch("app.x402.audit.settings")
    def test_writes_json_lines(self, mock_settings):
        """Events are written as JSON lines."""
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = Path(tmpdir) / "audit.jsonl"
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(log_path)

            log_audit_event(AuditEventType.REQUEST_RECEIVED, {"n": 1}, "1.1.1.1")
            log_audit_event(AuditEventType.ERROR, {"n": 2}, "2.2.2.2")

            lines = log_path.read_text().splitlines()
            assert len(lines) == 2
            for line in lines:
                event = json.loads(line)
                assert "timestamp" in event
                assert "event_type" in event

    @patch("app.x402.audit.settings")
    def test_creates_directory_if_missing(self, mock_settings):
        """Creates parent directory if it doesn't exist."""
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = Path(tmpdir) / "subdir" / "audit.jsonl"
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(log_path)

            log_audit_event(AuditEventType.REQUEST_RECEIVED, {}, "1.1.1.1")

            assert log_path.exists()

    @patch("app.x402.audit.settings")
    def test_returns_request_id(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            assert log_audit_event(AuditEventType.ERROR, {}, request_id="req00001") == "req00001"

    @patch("app.x402.audit.settings")
    def test_disabled_writes_nothing(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = Path(tmpdir) / "audit.jsonl"
            mock_settings.X402_AUDIT_ENABLED = False
            mock_settings.X402_AUDIT_LOG_PATH = str(log_path)

            assert log_audit_event(AuditEventType.ERROR, {}) is None
            assert not log_path.exists()

    @patch("app.x402.audit.settings")
    def test_write_failure_does_not_raise(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            with patch("builtins.open", side_effect=PermissionError("read-only")):
                assert log_audit_event(AuditEventType.ERROR, {}) is None

    @patch("app.x402.audit.settings")
    def test_decimal_values_serialized(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_audit_event(AuditEventType.PAYMENT_VERIFIED, {"amount": Decimal("0.02")})
            assert read_audit_log()[0]["data"]["amount"] == "0.02"


class TestConvenienceLoggingFunctions:
    """Test convenience logging functions."""

    @patch("app.x402.audit.settings")
    def test_log_request_received(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_request_received("192.168.1.1", "POST", "/api/execute")

            event = read_audit_log()[0]
            assert event["event_type"] == "request_received"
            assert event["data"] == {"method": "POST", "path": "/api/execute"}

    @patch("app.x402.audit.settings")
    def test_log_payment_required_sent(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_payment_required_sent("1.1.1.1", "20000", "base", "0xpayee", "/api/execute")

            event = read_audit_log()[0]
            assert event["event_type"] == "payment_required_sent"
            assert event["data"]["amount"] == "20000"
            assert event["data"]["resource"] == "/api/execute"

    @patch("app.x402.audit.settings")
    def test_log_payment_received(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_payment_received("1.1.1.1", "0xpayer", "20000", "0x01")

            event = read_audit_log()[0]
            assert event["wallet_address"] == "0xpayer"
            assert event["data"] == {"value": "20000", "nonce": "0x01"}

    @patch("app.x402.audit.settings")
    def test_log_payment_verified(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_payment_verified("1.1.1.1", "0xpayer", "0.02")
            assert read_audit_log()[0]["data"]["amount"] == "0.02"

    @patch("app.x402.audit.settings")
    def test_log_payment_failed(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_payment_failed(
                "1.1.1.1", "invalid recipient", "verify", "recipient_mismatch", wallet_address="0xpayer"
            )

            event = read_audit_log()[0]
            assert event["data"] == {
                "reason": "invalid recipient",
                "stage": "verify",
                "error_code": "recipient_mismatch",
            }

    @patch("app.x402.audit.settings")
    def test_log_payment_settled(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_payment_settled("1.1.1.1", "0xpayer", "0xabc", "base")
            assert read_audit_log()[0]["data"] == {"transaction_hash": "0xabc", "network": "base"}

    @patch("app.x402.audit.settings")
    def test_log_error(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_error("1.1.1.1", "RuntimeError", "boom", context={"path": "/api/execute"})

            event = read_audit_log()[0]
            assert event["data"]["error_type"] == "RuntimeError"
            assert event["data"]["context"] == {"path": "/api/execute"}


class TestReadAuditLog:
    """Test reading the audit log back."""

    @patch("app.x402.audit.settings")
    def test_missing_log_is_empty(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "nonexistent.jsonl")
            assert read_audit_log() == []

    @patch("app.x402.audit.settings")
    def test_most_recent_first(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_request_received("1.1.1.1", "POST", "/first")
            log_request_received("1.1.1.1", "POST", "/second")

            events = read_audit_log()
            assert [e["data"]["path"] for e in events] == ["/second", "/first"]

    @patch("app.x402.audit.settings")
    def test_filters(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_request_received("1.1.1.1", "POST", "/a")
            log_error("2.2.2.2", "E", "m")

            assert len(read_audit_log(event_type=AuditEventType.ERROR)) == 1
            assert len(read_audit_log(client_ip="1.1.1.1")) == 1

    @patch("app.x402.audit.settings")
    def test_max_entries(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            for i in range(5):
                log_request_received("1.1.1.1", "POST", f"/{i}")
            assert len(read_audit_log(max_entries=3)) == 3

    @patch("app.x402.audit.settings")
    def test_skips_corrupt_lines(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = Path(tmpdir) / "audit.jsonl"
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(log_path)

            log_request_received("1.1.1.1", "POST", "/a")
            with open(log_path, "a") as f:
                f.write("not json\n\n")

            assert len(read_audit_log()) == 1


class TestGetAuditStats:
    @patch("app.x402.audit.settings")
    def test_no_log(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "nonexistent.jsonl")

            stats = get_audit_stats()
            assert stats["total_events"] == 0
            assert stats["log_exists"] is False

    @patch("app.x402.audit.settings")
    def test_counts_by_type(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.X402_AUDIT_ENABLED = True
            mock_settings.X402_AUDIT_LOG_PATH = str(Path(tmpdir) / "audit.jsonl")

            log_request_received("1.1.1.1", "POST", "/a")
            log_request_received("1.1.1.1", "POST", "/b")
            log_error("1.1.1.1", "E", "m")

            stats = get_audit_stats()
            assert stats["total_events"] == 3
            assert stats["events_by_type"] == {"request_received": 2, "error": 1}
            assert stats["first_event"] <= stats["last_event"]
            assert stats["log_exists"] is True
