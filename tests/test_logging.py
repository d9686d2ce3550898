"""Tests for structured logging."""

import json
import logging

from aliyun_kms.logging import (
    HumanFormatter,
    StructuredFormatter,
    StructuredLogger,
    action_var,
    call_context,
    call_id_var,
    get_logger,
    mask_sensitive,
    setup_logging,
)


def make_record(message="hello", **fields):
    record = logging.LogRecord("aliyun_kms.test", logging.INFO, __file__, 1, message, (), None)
    if fields:
        record.extra_fields = fields
    return record


class TestMaskSensitive:
    """Masking of secrets."""

    def test_long_values_partially_masked(self):
        masked = mask_sensitive({"SecurityToken": "abcdefghijklmnop"})
        assert masked["SecurityToken"] == "abcd...mnop"

    def test_short_values_redacted(self):
        masked = mask_sensitive({"access_key_secret": "short"})
        assert masked["access_key_secret"] == "[REDACTED]"

    def test_signature_and_headers_masked(self):
        masked = mask_sensitive({
            "Signature": "U9aeRULKcj4BCNhR115/8B4vc+Q=",
            "x-acs-bearer-token": "bt",
        })
        assert masked["Signature"] == "U9ae...c+Q="
        assert masked["x-acs-bearer-token"] == "[REDACTED]"

    def test_plain_values_kept(self):
        masked = mask_sensitive({"Action": "Encrypt", "KeyId": "k1", "AccessKeyId": "testid"})
        assert masked == {"Action": "Encrypt", "KeyId": "k1", "AccessKeyId": "testid"}

    def test_nested(self):
        masked = mask_sensitive({"params": {"Plaintext": "aGVsbG8gd29ybGQ="}})
        assert masked["params"]["Plaintext"] == "aGVs...bGQ="


class TestCallContext:
    """Context propagation."""

    def test_sets_and_resets(self):
        with call_context(action="Encrypt", call_id="abc123") as call_id:
            assert call_id == "abc123"
            assert action_var.get() == "Encrypt"
            assert call_id_var.get() == "abc123"

        assert action_var.get() is None
        assert call_id_var.get() is None

    def test_generates_call_id(self):
        with call_context(action="Encrypt") as call_id:
            assert len(call_id) == 32


class TestFormatters:
    """Output formats."""

    def test_structured_formatter(self):
        with call_context(action="ListKeys", call_id="call-1"):
            output = StructuredFormatter().format(make_record(attempt=2, SecurityToken="abcdefghijklmnop"))

        entry = json.loads(output)
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["action"] == "ListKeys"
        assert entry["call_id"] == "call-1"
        assert entry["attempt"] == 2
        assert entry["SecurityToken"] == "abcd...mnop"

    def test_human_formatter(self):
        with call_context(action="ListKeys", call_id="0123456789abcdef"):
            output = HumanFormatter().format(make_record(attempt=2))

        assert "action=ListKeys" in output
        assert "call=01234567" in output
        assert "attempt=2" in output


class TestLoggerSetup:
    """Logger creation and configuration."""

    def test_get_logger_returns_structured_logger(self):
        logger = get_logger("aliyun_kms.tests.structured")
        assert isinstance(logger, StructuredLogger)

    def test_keyword_fields_attached(self, caplog):
        logger = get_logger("aliyun_kms.tests.fields")

        with caplog.at_level(logging.INFO, logger="aliyun_kms.tests.fields"):
            logger.info("Attempt done", attempt=1)

        assert caplog.records[-1].extra_fields == {"attempt": 1}

    def test_setup_logging(self):
        setup_logging(json_output=True, level="DEBUG")

        package_logger = logging.getLogger("aliyun_kms")
        assert package_logger.level == logging.DEBUG
        assert isinstance(package_logger.handlers[0].formatter, StructuredFormatter)

        setup_logging(level="WARNING")
        assert len(package_logger.handlers) == 1
        assert isinstance(package_logger.handlers[0].formatter, HumanFormatter)

        package_logger.removeHandler(package_logger.handlers[0])
        package_logger.setLevel(logging.NOTSET)
