"""
Tests for the compaction trigger.
"""

import pytest

from veloca_agent.context.threshold import should_compact
from veloca_agent.exceptions import ConfigurationError


def test_below_threshold():
    assert should_compact(79, 100) is False
    assert should_compact(1, 100, 0.8) is False


def test_at_threshold_inclusive():
    """Test reaching the threshold exactly triggers compaction."""
    assert should_compact(80, 100) is True
    assert should_compact(80, 100, 0.8) is True


def test_custom_threshold():
    assert should_compact(50, 100, 0.5) is True
    assert should_compact(49, 100, 0.5) is False


def test_missing_window_raises():
    with pytest.raises(ConfigurationError):
        should_compact(10, 0)
    with pytest.raises(ConfigurationError):
        should_compact(10, None)


def test_missing_usage_raises():
    with pytest.raises(ConfigurationError):
        should_compact(None, 100)
