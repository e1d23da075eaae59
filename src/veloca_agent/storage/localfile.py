"""
Local JSON file session store.

All sessions live in one JSON document. Writes within a process are
serialized by a lock and land through an atomic file replace, so across
processes the last writer wins.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import structlog

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

STORAGE_FILENAME = "veloca-storage.json"


class LocalFileStore(SessionStore):
    """Session store backed by a single JSON document."""

    def __init__(self, storage_dir: str | Path = ".veloca/storage"):
        self.path = Path(storage_dir) / STORAGE_FILENAME
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"sessions": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt storage file: {self.path}", details={"error": str(e)}) from e
        data.setdefault("sessions", [])
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".veloca-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @staticmethod
    def _find(data: dict[str, Any], session_id: str) -> dict[str, Any] | None:
        for raw in data["sessions"]:
            if raw["id"] == session_id:
                return raw
        return None

    @staticmethod
    def _new_session(session_id: str | None = None) -> dict[str, Any]:
        session = Session(id=session_id) if session_id else Session()
        raw = session.model_dump(mode="json")
        raw["entries"] = []
        raw["compaction_records"] = []
        return raw

    def _writable(self, data: dict[str, Any], session_id: str) -> dict[str, Any]:
        raw = self._find(data, session_id)
        if raw is None:
            raw = self._new_session(session_id)
            data["sessions"].append(raw)
            logger.info("Created new session", session_id=session_id)
        elif raw["status"] == SessionStatus.DELETED.value:
            raise StorageError(f"Session is deleted: {session_id}", details={"session_id": session_id})
        return raw

    async def create_session(self, session_id: str | None = None) -> Session:
        async with self._lock:
            data = self._load()
            if session_id and self._find(data, session_id) is not None:
                raise StorageError(f"Session already exists: {session_id}")
            raw = self._new_session(session_id)
            data["sessions"].append(raw)
            self._save(data)

        logger.info("Created new session", session_id=raw["id"])
        return Session.model_validate(raw)

    async def read_session(self, session_id: str) -> SessionData:
        async with self._lock:
            data = self._load()

        raw = self._find(data, session_id)
        if raw is None or raw["status"] == SessionStatus.DELETED.value:
            return SessionData()

        return SessionData(
            session=Session.model_validate(raw),
            entries=[Entry.model_validate(e) for e in raw.get("entries", [])],
            compaction_records=[
                CompactionRecord.model_validate(c) for c in raw.get("compaction_records", [])
            ],
        )

    async def list_sessions(self, include_deleted: bool = False) -> list[Session]:
        async with self._lock:
            data = self._load()

        sessions = [Session.model_validate(raw) for raw in data["sessions"]]
        if not include_deleted:
            sessions = [s for s in sessions if s.status == SessionStatus.ACTIVE]
        return sorted(sessions, key=lambda s: s.created_at)

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            data = self._load()
            raw = self._find(data, session_id)
            if raw is None:
                return False
            raw["status"] = SessionStatus.DELETED.value
            self._save(data)

        logger.info("Session deleted", session_id=session_id)
        return True

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
        entry = build_entry(
            role,
            content,
            tool_calls=tool_calls,
            tool_result=tool_result,
            thinking=thinking,
            token_consumption=token_consumption,
        )

        async with self._lock:
            data = self._load()
            raw = self._writable(data, session_id)
            raw["entries"].append(entry.model_dump(mode="json"))
            self._save(data)

        return entry

    async def append_compaction_record(
        self,
        session_id: str,
        summary: str,
        trigger_entry_id: str,
    ) -> CompactionRecord:
        record = CompactionRecord(summary=summary, trigger_entry_id=trigger_entry_id)

        async with self._lock:
            data = self._load()
            raw = self._writable(data, session_id)
            raw["compaction_records"].append(record.model_dump(mode="json"))
            self._save(data)

        return record
