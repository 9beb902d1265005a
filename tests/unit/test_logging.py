"""Tests for the verbosity logger."""

from __future__ import annotations

import pytest

from agavelink.core.log_bus import LogRecord, get_log_bus
from agavelink.core.logging import (
    VerbosityLevel,
    apply_logging_level,
    get_logger,
    get_verbosity,
    set_colors,
    set_verbosity,
)


@pytest.fixture(autouse=True)
def _restore_verbosity():
    yield
    set_verbosity(VerbosityLevel.NORMAL)
    get_log_bus().clear()


class TestVerbosityLevel:
    def test_verbosity_ordering(self):
        assert VerbosityLevel.QUIET < VerbosityLevel.NORMAL < VerbosityLevel.VERBOSE < VerbosityLevel.DEBUG


class TestLoggingSetup:
    def test_set_get_verbosity(self):
        set_verbosity(2)
        assert get_verbosity() == VerbosityLevel.VERBOSE

        set_verbosity(VerbosityLevel.DEBUG)
        assert get_verbosity() == VerbosityLevel.DEBUG

    def test_apply_logging_level(self):
        apply_logging_level("quiet")
        assert get_verbosity() == VerbosityLevel.QUIET
        with pytest.raises(ValueError):
            apply_logging_level("chatty")

    def test_get_logger_is_cached(self):
        assert get_logger("agavelink.x") is get_logger("agavelink.x")


class TestLogOutput:
    def test_filtered_by_verbosity(self, capsys):
        set_colors(False)
        set_verbosity(VerbosityLevel.NORMAL)
        logger = get_logger("test.output")

        logger.verbose("GET https://agave.test/apps/v2")
        logger.info("Login success.")
        logger.error("FATAL: Request count is less than 0")

        captured = capsys.readouterr()
        assert "GET https://agave.test" not in captured.out
        assert "[info] Login success." in captured.out
        assert "[error] FATAL: Request count is less than 0" in captured.err

    def test_published_to_log_bus(self):
        set_verbosity(VerbosityLevel.VERBOSE)
        records: list[LogRecord] = []
        get_log_bus().subscribe_all(records.append)

        get_logger("test.bus").verbose("authStep1 -> good")
        get_logger("test.bus").debug("hidden at VERBOSE")

        assert [r.plain for r in records] == ["[verbose] authStep1 -> good"]
        assert records[0].logger_name == "test.bus"

    def test_failing_bus_subscriber_is_suppressed(self, capsys):
        def boom(_record: LogRecord) -> None:
            raise RuntimeError("subscriber bug")

        get_log_bus().subscribe("INFO", boom)
        get_logger("test.bus").info("still printed")

        captured = capsys.readouterr()
        assert "still printed" in captured.out
        assert "LogBus subscriber raised" in captured.err
