"""
Persisted records and the session store interface.

A store keeps, per session, an append-only ordered list of entries and an
append-only list of compaction records. The agent loop is the only writer
during its own invocation; stores do not coordinate concurrent invocations
against one session.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..llm.base import MessageContent, Role, ToolCall
from ..tools.base import ToolOutcome


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class SessionStatus(str, Enum):
    """Lifecycle status of a session."""
    ACTIVE = "active"
    DELETED = "deleted"


class Session(BaseModel):
    """A conversation session."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)


class Entry(BaseModel):
    """One persisted conversational turn. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    role: Role
    content: MessageContent = None
    tool_calls: list[ToolCall] | None = None
    tool_result: ToolOutcome | None = None
    thinking: str | None = None
    token_consumption: int | None = None
    created_at: datetime = Field(default_factory=utcnow)


class CompactionRecord(BaseModel):
    """A stored summary standing in for a prefix of a session's entries.

    ``trigger_entry_id`` names the newest entry the summary covers, or
    another compaction record when compactions chain.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    summary: str
    trigger_entry_id: str
    created_at: datetime = Field(default_factory=utcnow)


class SessionData(BaseModel):
    """Everything stored for one session. Empty when the session does not exist."""

    session: Session | None = None
    entries: list[Entry] = Field(default_factory=list)
    compaction_records: list[CompactionRecord] = Field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.session is not None


class SessionStore(ABC):
    """Storage contract used by the agent loop."""

    @abstractmethod
    async def create_session(self, session_id: str | None = None) -> Session:
        """Create a new active session."""
        pass

    @abstractmethod
    async def read_session(self, session_id: str) -> SessionData:
        """Read a session with its entries and compaction records, oldest first."""
        pass

    @abstractmethod
    async def list_sessions(self, include_deleted: bool = False) -> list[Session]:
        """List sessions, oldest first."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Soft-delete a session. Returns False when it does not exist."""
        pass

    @abstractmethod
    async def append_entry(
        self,
        session_id: str,
        role: Role,
        content: MessageContent,
        *,
        tool_calls: list[ToolCall] | None = None,
        tool_result: ToolOutcome | None = None,
        thinking: str | None = None,
        token_consumption: int | None = None,
    ) -> Entry:
        """Append an entry, creating the session if it does not exist yet."""
        pass

    @abstractmethod
    async def append_compaction_record(
        self,
        session_id: str,
        summary: str,
        trigger_entry_id: str,
    ) -> CompactionRecord:
        """Append a compaction record to a session."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


def build_entry(role: Role, content: MessageContent, **fields: Any) -> Entry:
    """Create an entry, dropping unset optional fields."""
    return Entry(role=role, content=content, **{k: v for k, v in fields.items() if v is not None})
