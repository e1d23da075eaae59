"""
Exception hierarchy for Veloca-Agent.

Tool failures are not exceptions: they are captured per call and persisted
as the tool entry's error. Compaction-chain inconsistencies are logged as
warnings and degrade to a full replay.
"""

from typing import Any


class VelocaError(Exception):
    """Base exception carrying structured context."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class ConfigurationError(VelocaError, ValueError):
    """A required field is missing or invalid. Raised before any external call."""


class ProviderError(VelocaError):
    """The model provider returned a malformed or unusable response."""


class IterationLimitError(VelocaError):
    """The agent loop reached its iteration ceiling."""

    def __init__(self, limit: int, *, session_id: str | None = None):
        super().__init__(
            f"Agent loop reached the maximum of {limit} iterations",
            details={"limit": limit, "session_id": session_id},
        )
        self.limit = limit


class CompactionError(VelocaError):
    """A compaction record could not be created safely."""


class StorageError(VelocaError):
    """The storage backend refused an operation."""


class AgentCancelledError(VelocaError):
    """The caller cancelled the agent loop."""
