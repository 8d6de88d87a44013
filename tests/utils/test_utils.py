"""
Tests for logging setup and schema validation helpers.
"""

import json
import logging

import pytest

from sandcastle.utils import WorkspaceLogFilter, configure_logging, validate_data


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


# =============================================================================
# Logging Tests
# =============================================================================

class TestWorkspaceLogFilter:
    def test_fills_missing_fields(self):
        record = logging.LogRecord("redis", logging.INFO, __file__, 1, "msg", None, None)

        assert WorkspaceLogFilter().filter(record)
        assert record.workspace_id == "-"
        assert record.agent_name == "System"

    def test_keeps_existing_fields(self):
        record = logging.LogRecord("sandcastle", logging.INFO, __file__, 1, "msg", None, None)
        record.workspace_id = "ws-1"
        record.agent_name = "Coder"

        WorkspaceLogFilter().filter(record)

        assert (record.workspace_id, record.agent_name) == ("ws-1", "Coder")


class TestConfigureLogging:
    def test_plain_output(self, restore_root_logger, capsys):
        configure_logging("debug")

        logging.getLogger("sandcastle.test").info("hello", extra={"workspace_id": "ws-1"})

        err = capsys.readouterr().err
        assert "[ws-1]" in err
        assert "hello" in err
        assert restore_root_logger.level == logging.DEBUG

    def test_json_output(self, restore_root_logger, capsys):
        configure_logging(logging.INFO, json_output=True)
        capsys.readouterr()

        logging.getLogger("sandcastle.test").warning("structured", extra={"agent_name": "Coder"})

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["message"] == "structured"
        assert record["level"] == "WARNING"
        assert record["agent_name"] == "Coder"

    def test_no_duplicate_handlers(self, restore_root_logger):
        configure_logging()
        configure_logging()

        assert len(restore_root_logger.handlers) == 1


# =============================================================================
# Schema Validation Tests
# =============================================================================

class TestValidateData:
    SCHEMA = {
        "type": "object",
        "properties": {"items": {"type": "array", "items": {"type": "integer"}}},
        "required": ["items"],
    }

    def test_valid(self):
        assert validate_data({"items": [1, 2]}, self.SCHEMA) == (True, None)

    def test_no_schema(self):
        assert validate_data("anything", None) == (True, None)

    def test_error_path(self):
        ok, error = validate_data({"items": [1, "two"]}, self.SCHEMA)

        assert not ok
        assert "items -> 1" in error

    def test_missing_required(self):
        ok, error = validate_data({}, self.SCHEMA)

        assert not ok
        assert "'items' is a required property" in error

    def test_invalid_schema(self):
        ok, error = validate_data({}, {"type": "not-a-type"})

        assert not ok
        assert error.startswith("Invalid schema")
