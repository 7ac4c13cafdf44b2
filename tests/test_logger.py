"""Unit tests for core.logger."""

import logging

from futures_agent.core.logger import RedactSecrets, setup_logging


def test_secrets_are_masked():
    f = RedactSecrets(["sk-abcdef123", ""])
    record = logging.LogRecord("futures_agent", logging.INFO, __file__, 1, "key=%s", ("sk-abcdef123",), None)
    f.filter(record)
    assert record.getMessage() == "key=***"


def test_short_values_are_not_treated_as_secrets():
    f = RedactSecrets(["42"])
    record = logging.LogRecord("futures_agent", logging.INFO, __file__, 1, "chat 42", None, None)
    f.filter(record)
    assert record.getMessage() == "chat 42"


def test_setup_writes_log_file(tmp_path):
    logger = setup_logging("DEBUG", tmp_path, "agent.log", secrets=["supersecret"])
    try:
        logging.getLogger("futures_agent.test").info("token supersecret loaded")
        for h in logger.handlers:
            h.flush()
        text = (tmp_path / "agent.log").read_text(encoding="utf-8")
        assert "token *** loaded" in text
        assert "supersecret" not in text
        assert logger.level == logging.DEBUG
    finally:
        for h in list(logger.handlers):
            h.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
