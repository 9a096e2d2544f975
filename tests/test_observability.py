"""
Tests for logging configuration.
"""

import logging

import pytest

from orchard.core.observability.logging_config import (
    FILE_ENV_VAR,
    LEVEL_ENV_VAR,
    console_format,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


# ── Level Tests ────────────────────────────────────────────────────


class TestSetupLogging:
    def test_default_warning(self):
        setup_logging(env={})
        assert logging.getLogger().level == logging.WARNING

    def test_explicit_level_wins(self):
        setup_logging("debug", env={LEVEL_ENV_VAR: "ERROR"})
        assert logging.getLogger().level == logging.DEBUG

    def test_env_level(self):
        setup_logging(env={LEVEL_ENV_VAR: "info"})
        assert logging.getLogger().level == logging.INFO

    def test_unknown_level_falls_back(self):
        setup_logging("chatty", env={})
        assert logging.getLogger().level == logging.WARNING

    def test_handlers_replaced(self):
        setup_logging(env={})
        setup_logging(env={})
        assert len(logging.getLogger().handlers) == 1

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "orchard.log"
        setup_logging("warning", log_file_level="debug", env={FILE_ENV_VAR: str(log_file)})
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        logging.getLogger("orchard.test").debug("written to the file only")
        for handler in root.handlers:
            handler.flush()
        assert "written to the file only" in log_file.read_text()

    def test_third_party_quieted(self):
        setup_logging("info", env={})
        assert logging.getLogger("urllib3").level == logging.WARNING


# ── Format Tests ───────────────────────────────────────────────────


class TestConsoleFormat:
    def test_debug_includes_thread(self):
        fmt, _ = console_format(logging.DEBUG)
        assert "%(threadName)s" in fmt

    def test_warning_is_message_only(self):
        assert console_format(logging.WARNING) == ("%(message)s", None)
