"""Tests for log sanitization helpers (harborwatch/utils/security.py, error_handling.py)."""

import logging

from harborwatch.exceptions import SourceUnavailableError
from harborwatch.utils.error_handling import log_and_continue
from harborwatch.utils.security import sanitize_log_message, short_id


class TestSanitizeLogMessage:
    """Test suite for log injection prevention."""

    def test_removes_newlines(self):
        assert sanitize_log_message("web\nINFO fake entry") == "webINFO fake entry"

    def test_removes_control_characters(self):
        assert sanitize_log_message("a\x00b\x1bc\x7f") == "abc"

    def test_handles_bytes_and_none(self):
        assert sanitize_log_message(b"caf\xc3\xa9") == "café"
        assert sanitize_log_message(None) == ""
        assert sanitize_log_message(42) == "42"


class TestShortId:
    def test_truncates(self):
        assert short_id("0123456789abcdef0123") == "0123456789ab"


class TestLogAndContinue:
    def test_logs_with_context(self, caplog):
        logger = logging.getLogger("harborwatch.test")
        error = SourceUnavailableError("docker", "daemon gone\nINJECTED")

        with caplog.at_level(logging.WARNING, logger="harborwatch.test"):
            log_and_continue(logger, error, "Error listing containers")

        assert "Error listing containers: SourceUnavailableError: docker: daemon goneINJECTED" in caplog.text

    def test_log_level(self, caplog):
        logger = logging.getLogger("harborwatch.test")
        with caplog.at_level(logging.ERROR, logger="harborwatch.test"):
            log_and_continue(logger, ValueError("x"), "ctx", log_level="error")
        assert caplog.records[-1].levelno == logging.ERROR
