"""Tests for log redaction in devtracker.core.logging."""

from __future__ import annotations

import logging

from devtracker.core.logging import SanitizingFilter, install_sanitizing_filter, redact_message


class TestRedactMessage:
    def test_redacts_commit_message(self) -> None:
        assert redact_message("commit_message=fix secret bug") == "commit_message=[REDACTED] secret bug"

    def test_redacts_quoted_value(self) -> None:
        assert redact_message('query: "password reset"') == "query=[REDACTED]"

    def test_redacts_bearer_token(self) -> None:
        out = redact_message("authorization: Bearer abc.def.ghi")
        assert "abc.def.ghi" not in out
        assert out == "authorization=[REDACTED]"

    def test_redacts_bearer_inside_header_dump(self) -> None:
        out = redact_message("headers={'Authorization': 'Bearer abc123'}")
        assert out == "headers={'Authorization': 'Bearer [REDACTED]'}"

    def test_leaves_other_keys(self) -> None:
        assert redact_message("events=12 sessions=3") == "events=12 sessions=3"


class TestSanitizingFilter:
    def test_formats_args_before_redacting(self) -> None:
        record = logging.LogRecord(
            "x", logging.INFO, __file__, 1, "token=%s sent", ("s3cr3t",), None,
        )
        assert SanitizingFilter().filter(record) is True
        assert record.getMessage() == "token=[REDACTED] sent"

    def test_install_on_logger(self) -> None:
        logger = logging.getLogger("devtracker.test.redaction")
        filt = install_sanitizing_filter(logger)
        try:
            assert filt in logger.filters
        finally:
            logger.removeFilter(filt)

    def test_install_on_handlers(self) -> None:
        logger = logging.getLogger("devtracker.test.redaction.handlers")
        handler = logging.NullHandler()
        logger.addHandler(handler)
        try:
            filt = install_sanitizing_filter(logger, handler_level=True)
            assert filt in handler.filters
            assert filt not in logger.filters
        finally:
            logger.removeHandler(handler)
