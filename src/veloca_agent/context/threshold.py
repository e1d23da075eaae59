"""
Compaction trigger check.
"""

from ..exceptions import ConfigurationError

DEFAULT_COMPACTION_THRESHOLD = 0.8  # Compact when 80% of the window is used


def should_compact(
    used_tokens: int | None,
    window_size: int | None,
    threshold: float = DEFAULT_COMPACTION_THRESHOLD,
) -> bool:
    """Return True when ``used_tokens`` reaches ``threshold`` of the window."""
    if used_tokens is None:
        raise ConfigurationError("used_tokens is required")
    if not window_size:
        raise ConfigurationError("window_size is required")

    return used_tokens >= window_size * threshold
