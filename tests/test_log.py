"""
Tests for logging setup.
"""

import json
import logging

import structlog

from veloca_agent.log import configure_logging


def test_configure_logging_json(capsys):
    """Test events render as JSON lines with their key/value context."""
    configure_logging("DEBUG", json_logs=True)
    try:
        structlog.get_logger("veloca.test").info("Context assembled", session_id="s1", estimated_tokens=12)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        event = json.loads(line)

        assert event["event"] == "Context assembled"
        assert event["session_id"] == "s1"
        assert event["estimated_tokens"] == 12
        assert event["level"] == "info"
        assert "timestamp" in event
    finally:
        structlog.reset_defaults()
        for handler in logging.root.handlers[:]:
            logging.root.removeHandler(handler)
