"""
Tests for timetravel_core.logging_config.
"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from timetravel_core.logging_config import _HumanFormatter, _JSONFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(name="timetravel.solver", level=logging.INFO, msg="mined %d", args=(3,)):
    return logging.LogRecord(name, level, __file__, 1, msg, args, None)


class TestFormatters:
    def test_json(self):
        out = json.loads(_JSONFormatter().format(_record()))
        assert out["level"] == "INFO"
        assert out["target"] == "timetravel.solver"
        assert out["msg"] == "mined 3"
        assert "ts" in out

    def test_json_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("timetravel.x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        out = json.loads(_JSONFormatter().format(record))
        assert "ValueError: boom" in out["exception"]

    def test_human_drops_root_prefix(self):
        line = _HumanFormatter().format(_record())
        assert "solver: mined 3" in line
        assert "timetravel.solver" not in line

    def test_human_keeps_foreign_names(self):
        line = _HumanFormatter().format(_record(name="aiohttp.client"))
        assert "aiohttp.client: mined 3" in line


class TestSetupLogging:
    def test_level_and_console_handler(self, restore_root_logger):
        setup_logging(level="warning")
        root = restore_root_logger
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, _HumanFormatter)

    def test_json_console(self, restore_root_logger):
        setup_logging(fmt="json")
        assert isinstance(restore_root_logger.handlers[0].formatter, _JSONFormatter)

    def test_file_is_json(self, restore_root_logger, tmp_path):
        path = tmp_path / "logs" / "run.log"
        setup_logging(level="INFO", fmt="human", log_file=str(path))
        logging.getLogger("timetravel.test").info("hello %s", "file")
        for h in restore_root_logger.handlers:
            h.flush()
        line = path.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["msg"] == "hello file"

    def test_noisy_loggers_quietened(self, restore_root_logger):
        setup_logging(level="INFO")
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
