"""Unit tests for the structlog wiring."""

import json

import pytest
import structlog

from docgraph.config import Settings
from docgraph.log import configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_renderer(self, capsys) -> None:
        configure_logging(Settings(_env_file=None, log_format="json", log_level="debug"))

        structlog.get_logger("docgraph").info("entities_saved", inserted=2)

        event = json.loads(capsys.readouterr().err.strip())
        assert event["event"] == "entities_saved"
        assert event["inserted"] == 2
        assert event["level"] == "info"

    def test_level_filters_events(self, capsys) -> None:
        configure_logging(Settings(_env_file=None, log_format="json", log_level="warning"))

        structlog.get_logger("docgraph").info("entities_saved")

        assert capsys.readouterr().err == ""

    def test_console_renderer(self, capsys) -> None:
        configure_logging(Settings(_env_file=None, log_format="console"))

        structlog.get_logger("docgraph").warning("relation_detached", relation="images")

        assert "relation_detached" in capsys.readouterr().err
