"""Unit tests for logging configuration module.

Tests verify that ``setup_logging`` installs the expected handlers, levels and
formats, and that module-specific levels are applied.
"""

import logging

import pytest

from planforge_ai.core.logging_config import (
    DETAILED_FORMAT,
    JSON_FORMAT,
    LOG_FILE_NAME,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    before = set(root.handlers)
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _console_handler() -> logging.Handler:
    return next(
        h
        for h in logging.getLogger().handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    )


class TestSetupLoggingLogLevels:
    """Test setup_logging with different log levels."""

    @pytest.mark.parametrize(
        "log_level,expected_level",
        [
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("WARNING", logging.WARNING),
            ("error", logging.ERROR),
        ],
    )
    def test_console_handler_level(self, log_level, expected_level):
        setup_logging(log_level=log_level)

        assert _console_handler().level == expected_level
        assert logging.getLogger().level == logging.DEBUG

    def test_module_levels_are_applied(self):
        setup_logging(log_level="INFO")

        for module_name, module_level in MODULE_LOG_LEVELS.items():
            assert logging.getLogger(module_name).level == logging.getLevelName(module_level)

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging(log_level="INFO")
        setup_logging(log_level="INFO")

        assert len(logging.getLogger().handlers) == 1


class TestSetupLoggingFormats:
    """Test setup_logging format selection."""

    @pytest.mark.parametrize(
        "log_format,expected",
        [("simple", SIMPLE_FORMAT), ("detailed", DETAILED_FORMAT), ("json", JSON_FORMAT), ("other", DETAILED_FORMAT)],
    )
    def test_format_selection(self, log_format, expected):
        setup_logging(log_level="INFO", log_format=log_format)

        assert _console_handler().formatter._fmt == expected


class TestFileLogging:
    """Test optional file logging."""

    def test_file_handler_writes_debug_records(self, tmp_path):
        log_dir = tmp_path / "logs"
        setup_logging(log_level="WARNING", log_format="simple", log_file_dir=str(log_dir))

        get_logger("planforge_ai.engine.runtime").debug("step finished")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = (log_dir / LOG_FILE_NAME).read_text()
        assert "DEBUG - planforge_ai.engine.runtime - step finished" in content

    def test_no_file_handler_without_directory(self):
        setup_logging(log_level="INFO")

        assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)


def test_get_logger_returns_named_logger():
    assert get_logger("planforge_ai.x") is logging.getLogger("planforge_ai.x")
