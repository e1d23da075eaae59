"""
Context assembly - turning a stored session into the messages a model sees.

Reads the session, resolves the compaction chain, drops everything the
active summary already covers, converts the remaining entries into neutral
``LLMMessage`` objects, and prepends the summary. The token count of the
result reuses a count the provider already reported whenever one is recent
enough, so only the tail after it is estimated.
"""

from dataclasses import dataclass, field

import structlog

from ..llm.base import LLMMessage
from ..storage.base import CompactionRecord, Entry, SessionStore
from .chain import resolve_compaction_chain
from .prompts import SUMMARY_PREFIX
from .tokens import estimate_tokens

logger = structlog.get_logger()

# How many assistant entries to look back through for a reported token count
TOKEN_CACHE_LOOKBACK = 3


@dataclass
class AssembledContext:
    """Messages ready for the model plus what is needed to compact them.

    ``anchors`` is aligned with ``messages``: the summary message maps to the
    active compaction record id, every other message to its entry id.
    """

    messages: list[LLMMessage] = field(default_factory=list)
    entries: list[Entry] = field(default_factory=list)
    anchors: list[str] = field(default_factory=list)
    summary: str | None = None
    record: CompactionRecord | None = None
    used_tokens: int = 0


def summary_message(summary: str) -> LLMMessage:
    """The synthetic user message carrying a compaction summary."""
    return LLMMessage(role="user", content=f"{SUMMARY_PREFIX}\n{summary}")


def entry_to_message(entry: Entry) -> LLMMessage:
    """Convert one stored entry into a neutral message."""
    message = LLMMessage(role=entry.role, content=entry.content, thinking=entry.thinking)

    if entry.role == "assistant" and entry.tool_calls:
        message.tool_calls = list(entry.tool_calls)
        if not entry.content:
            # Explicit null: providers reject "" next to tool calls
            message.content = None
    elif entry.role == "tool" and entry.tool_result is not None:
        message.tool_call_id = entry.tool_result.call_id
        message.name = entry.tool_result.function_name
        if entry.content is None:
            message.content = entry.tool_result.content

    return message


def retained_entries(
    entries: list[Entry],
    start_entry_id: str | None,
    inclusive: bool = True,
) -> list[Entry]:
    """Entries from ``start_entry_id`` onward, the entry itself only when ``inclusive``."""
    if start_entry_id is None:
        return list(entries)

    for index, entry in enumerate(entries):
        if entry.id == start_entry_id:
            return entries[index if inclusive else index + 1:]

    logger.warning("Start entry not found, replaying full history", start_entry_id=start_entry_id)
    return list(entries)


def assemble_messages(
    entries: list[Entry],
    start_entry_id: str | None,
    summary: str | None,
) -> list[LLMMessage]:
    """Build the ordered message list for a model call."""
    messages = [entry_to_message(e) for e in retained_entries(entries, start_entry_id)]
    if summary is not None:
        messages.insert(0, summary_message(summary))
    return messages


def count_context_tokens(
    entries: list[Entry],
    messages: list[LLMMessage],
    offset: int = 0,
    since: CompactionRecord | None = None,
) -> int:
    """Token count for ``messages``, built from ``entries`` starting at ``offset``.

    Reuses the reported ``token_consumption`` of one of the last few assistant
    entries and estimates only what came after it. Counts reported before the
    active compaction record was written describe a longer context and are
    ignored.
    """
    checked = 0
    for index in range(len(entries) - 1, -1, -1):
        entry = entries[index]
        if entry.role != "assistant":
            continue

        checked += 1
        fresh = since is None or entry.created_at >= since.created_at
        if entry.token_consumption is not None and fresh:
            return entry.token_consumption + estimate_tokens(messages[offset + index + 1:])
        if checked >= TOKEN_CACHE_LOOKBACK:
            break

    return estimate_tokens(messages)


async def load_context(store: SessionStore, session_id: str) -> AssembledContext:
    """Read a session and assemble its current context."""
    data = await store.read_session(session_id)
    resolution = resolve_compaction_chain(data.entries, data.compaction_records)

    # A compaction trigger is the last entry its summary covers
    entries = retained_entries(data.entries, resolution.start_entry_id, inclusive=False)
    messages = [entry_to_message(e) for e in entries]
    anchors = [e.id for e in entries]

    offset = 0
    if resolution.summary is not None:
        messages.insert(0, summary_message(resolution.summary))
        anchors.insert(0, resolution.record.id)
        offset = 1

    used_tokens = count_context_tokens(entries, messages, offset, resolution.record)

    logger.debug(
        "Context assembled",
        session_id=session_id,
        entries=len(data.entries),
        retained=len(entries),
        has_summary=resolution.summary is not None,
        estimated_tokens=used_tokens,
    )

    return AssembledContext(
        messages=messages,
        entries=entries,
        anchors=anchors,
        summary=resolution.summary,
        record=resolution.record,
        used_tokens=used_tokens,
    )
