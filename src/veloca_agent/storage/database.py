"""
Database session store.

Uses SQLAlchemy 2.0 async ORM. Entries and compaction records carry an
autoincrement ``seq`` so that insertion order survives identical timestamps.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..exceptions import StorageError
from ..llm.base import MessageContent, Role, ToolCall
from ..tools.base import ToolOutcome
from .base import (
    CompactionRecord,
    Entry,
    Session,
    SessionData,
    SessionStatus,
    SessionStore,
    build_entry,
)

logger = structlog.get_logger()


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""
    pass


class SessionRow(Base):
    """Session table."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class EntryRow(Base):
    """Entry table."""

    __tablename__ = "entries"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), index=True)

    role: Mapped[str] = mapped_column(String(20))
    content: Mapped[Any] = mapped_column(JSON(none_as_null=True), nullable=True)
    tool_calls: Mapped[Any] = mapped_column(JSON(none_as_null=True), nullable=True)
    tool_result: Mapped[Any] = mapped_column(JSON(none_as_null=True), nullable=True)
    thinking: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_consumption: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class CompactionRow(Base):
    """Compaction record table."""

    __tablename__ = "compaction_records"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), index=True)

    summary: Mapped[str] = mapped_column(Text)
    trigger_entry_id: Mapped[str] = mapped_column(String(36))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_session(row: SessionRow) -> Session:
    return Session(id=row.id, status=SessionStatus(row.status), created_at=_as_utc(row.created_at))


def _to_entry(row: EntryRow) -> Entry:
    return Entry.model_validate({
        "id": row.id,
        "role": row.role,
        "content": row.content,
        "tool_calls": row.tool_calls,
        "tool_result": row.tool_result,
        "thinking": row.thinking,
        "token_consumption": row.token_consumption,
        "created_at": _as_utc(row.created_at),
    })


def _to_record(row: CompactionRow) -> CompactionRecord:
    return CompactionRecord(
        id=row.id,
        summary=row.summary,
        trigger_entry_id=row.trigger_entry_id,
        created_at=_as_utc(row.created_at),
    )


class DatabaseStore(SessionStore):
    """Session store backed by an async SQLAlchemy engine."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        url = make_url(database_url)
        if url.drivername.startswith("sqlite") and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_async_engine(database_url, echo=False)
        self.session_maker = async_sessionmaker(self.engine, expire_on_commit=False)
        self._initialized = False

    async def init(self) -> None:
        """Create tables if needed."""
        if self._initialized:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._initialized = True

    async def close(self) -> None:
        await self.engine.dispose()

    async def create_session(self, session_id: str | None = None) -> Session:
        await self.init()
        session = Session(id=session_id) if session_id else Session()

        async with self.session_maker() as db:
            if await db.get(SessionRow, session.id) is not None:
                raise StorageError(f"Session already exists: {session.id}")
            db.add(SessionRow(id=session.id, status=session.status.value, created_at=session.created_at))
            await db.commit()

        logger.info("Created new session", session_id=session.id)
        return session

    async def read_session(self, session_id: str) -> SessionData:
        await self.init()

        async with self.session_maker() as db:
            row = await db.get(SessionRow, session_id)
            if row is None or row.status == SessionStatus.DELETED.value:
                return SessionData()

            entries = await db.execute(
                select(EntryRow)
                .where(EntryRow.session_id == session_id)
                .order_by(EntryRow.seq)
            )
            records = await db.execute(
                select(CompactionRow)
                .where(CompactionRow.session_id == session_id)
                .order_by(CompactionRow.seq)
            )

            return SessionData(
                session=_to_session(row),
                entries=[_to_entry(e) for e in entries.scalars().all()],
                compaction_records=[_to_record(c) for c in records.scalars().all()],
            )

    async def list_sessions(self, include_deleted: bool = False) -> list[Session]:
        await self.init()

        query = select(SessionRow).order_by(SessionRow.created_at)
        if not include_deleted:
            query = query.where(SessionRow.status == SessionStatus.ACTIVE.value)

        async with self.session_maker() as db:
            result = await db.execute(query)
            return [_to_session(row) for row in result.scalars().all()]

    async def delete_session(self, session_id: str) -> bool:
        await self.init()

        async with self.session_maker() as db:
            row = await db.get(SessionRow, session_id)
            if row is None:
                return False
            row.status = SessionStatus.DELETED.value
            await db.commit()

        logger.info("Session deleted", session_id=session_id)
        return True

    async def _ensure_writable(self, db, session_id: str) -> None:
        row = await db.get(SessionRow, session_id)
        if row is None:
            db.add(SessionRow(id=session_id, status=SessionStatus.ACTIVE.value, created_at=datetime.now(timezone.utc)))
            await db.flush()
            logger.info("Created new session", session_id=session_id)
        elif row.status == SessionStatus.DELETED.value:
            raise StorageError(f"Session is deleted: {session_id}", details={"session_id": session_id})

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
        await self.init()
        entry = build_entry(
            role,
            content,
            tool_calls=tool_calls,
            tool_result=tool_result,
            thinking=thinking,
            token_consumption=token_consumption,
        )
        raw = entry.model_dump(mode="json")

        async with self.session_maker() as db:
            await self._ensure_writable(db, session_id)
            db.add(EntryRow(
                id=entry.id,
                session_id=session_id,
                role=entry.role,
                content=raw["content"],
                tool_calls=raw["tool_calls"],
                tool_result=raw["tool_result"],
                thinking=entry.thinking,
                token_consumption=entry.token_consumption,
                created_at=entry.created_at,
            ))
            await db.commit()

        return entry

    async def append_compaction_record(
        self,
        session_id: str,
        summary: str,
        trigger_entry_id: str,
    ) -> CompactionRecord:
        await self.init()
        record = CompactionRecord(summary=summary, trigger_entry_id=trigger_entry_id)

        async with self.session_maker() as db:
            await self._ensure_writable(db, session_id)
            db.add(CompactionRow(
                id=record.id,
                session_id=session_id,
                summary=record.summary,
                trigger_entry_id=record.trigger_entry_id,
                created_at=record.created_at,
            ))
            await db.commit()

        return record
