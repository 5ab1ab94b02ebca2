"""
Tests for structured security event logging.
"""

import json
from datetime import datetime, timezone

import pytest

from security_logger import SecurityLogger, get_security_logger, reset_security_logger


def read_events(log_dir):
    lines = (log_dir / "security.log").read_text(encoding="utf-8").splitlines()
    return [json.loads(line.split(" - ", 3)[-1]) for line in lines if line]


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def sec_logger(log_dir):
    sec = SecurityLogger(log_dir=str(log_dir))
    yield sec
    for handler in list(sec.logger.handlers):
        handler.close()
    sec.logger.handlers.clear()
    reset_security_logger()


class TestSecurityLogger:

    def test_creates_log_file(self, sec_logger, log_dir):
        assert (log_dir / "security.log").exists()

    def test_auth_failure_event(self, sec_logger, log_dir):
        sec_logger.log_auth_failure("alice@example.com", "wrong_password")

        event = read_events(log_dir)[0]
        assert event["event_type"] == "AUTH_FAILED"
        assert event["error_code"] == "WRONG_PASSWORD"
        assert event["sanitized_input"] == "alice@example.com"
        assert event["context"]["blocked"] is True

    def test_injection_is_sanitized(self, sec_logger, log_dir):
        sec_logger.log_auth_failure("evil@example.com\n2024-01-01 - SECURITY - fake", "not_found")

        lines = (log_dir / "security.log").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert "\n" not in read_events(log_dir)[0]["sanitized_input"]

    def test_long_input_truncated(self, sec_logger, log_dir):
        sec_logger.log_validation_failure("document", "UNSUPPORTED_MEDIA_TYPE", "x" * 200)

        event = read_events(log_dir)[0]
        assert event["event_type"] == "VALIDATION_FAILED"
        assert event["sanitized_input"].endswith("...(truncated)")

    def test_account_locked_context(self, sec_logger, log_dir):
        until = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        sec_logger.log_account_locked("bob@example.com", 5, until)

        event = read_events(log_dir)[0]
        assert event["severity"] == "ERROR"
        assert event["context"]["attempts"] == 5
        assert event["context"]["lock_until"] == until.isoformat()

    def test_request_context_is_attached(self, sec_logger, log_dir):
        request_id = sec_logger.set_request_context(user_id="admin-1", source_ip="10.0.0.1")
        sec_logger.log_access_denied("admin-1", "manage admins", resource="admins")
        sec_logger.clear_request_context()
        sec_logger.log_token_rejected("expired")

        denied, rejected = read_events(log_dir)
        assert request_id.startswith("REQ-")
        assert denied["request_id"] == request_id
        assert denied["source_ip"] == "10.0.0.1"
        assert denied["context"]["resource"] == "admins"
        assert rejected["request_id"] == ""
        assert rejected["error_code"] == "EXPIRED"


class TestGlobalSecurityLogger:

    def test_singleton(self, tmp_path):
        reset_security_logger()
        try:
            first = get_security_logger(log_dir=str(tmp_path))
            assert get_security_logger(log_dir=str(tmp_path)) is first
        finally:
            for handler in list(first.logger.handlers):
                handler.close()
            first.logger.handlers.clear()
            reset_security_logger()
