"""
Conversation Compaction - summarizing old turns to stay inside the window.

When the context reaches the compaction threshold, the newest messages that
fit in ``compact_ratio`` of the window are kept verbatim and everything
older is summarized by the model into a single synthetic user message. The
cutoff never splits a user turn from the assistant and tool messages that
answer it. Each compaction is persisted as a ``CompactionRecord`` anchored on
the newest entry (or earlier record) the summary covers.

The gap between the default trigger (0.8) and the default retention (0.4)
keeps the loop from compacting again on the very next turn.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from ..exceptions import CompactionError
from ..llm.base import BaseLLM, LLMMessage
from ..storage.base import CompactionRecord, SessionStore
from .assembler import summary_message
from .prompts import (
    COMPACTION_PROMPT,
    COMPACTION_SYSTEM_PROMPT,
    COMPACTION_UPDATE_PROMPT,
    SUMMARY_PREFIX,
)
from .threshold import DEFAULT_COMPACTION_THRESHOLD
from .tokens import estimate_message_tokens, estimate_tokens

logger = structlog.get_logger()

DEFAULT_COMPACT_RATIO = 0.4  # Keep the newest 40% of the window verbatim

ROLE_LABELS = {
    "user": "User",
    "assistant": "Assistant",
    "system": "System",
    "developer": "Developer",
}


@dataclass
class CompactionConfig:
    """Configuration for conversation compaction."""

    context_window: int
    compaction_threshold: float = DEFAULT_COMPACTION_THRESHOLD
    compact_ratio: float = DEFAULT_COMPACT_RATIO
    enabled: bool = True

    @property
    def keep_budget(self) -> float:
        return self.context_window * self.compact_ratio


@dataclass
class CompactionResult:
    """Result of a compaction operation."""

    original_message_count: int
    compacted_message_count: int
    summary: str
    tokens_saved_estimate: int
    record: CompactionRecord | None = None

    @property
    def compacted(self) -> bool:
        return self.record is not None


def find_cutoff(messages: list[LLMMessage], keep_budget: float) -> int:
    """Index of the first message to keep verbatim.

    Messages before the returned index are summarized. 0 means nothing is
    compacted: either everything fits, or not even the newest message does.
    """
    cutoff = len(messages)
    accumulated = 0

    for index in range(len(messages) - 1, -1, -1):
        tokens = estimate_message_tokens(messages[index])
        if accumulated + tokens > keep_budget:
            break
        accumulated += tokens
        cutoff = index

    if cutoff == len(messages):
        return 0

    # Never keep an answer without the user message it answers
    if cutoff > 0 and messages[cutoff].role in ("assistant", "tool"):
        for index in range(cutoff - 1, -1, -1):
            if messages[index].role == "user":
                cutoff = index + 1
                break

    return cutoff


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "text":
                parts.append(part.get("text") or "")
            else:
                parts.append(f"[{part.get('type', 'attachment')}]")
        return " ".join(parts)
    return ""


def messages_to_transcript(messages: list[LLMMessage]) -> str:
    """Render messages as a role-tagged plain-text transcript."""
    blocks = []

    for msg in messages:
        content = _content_text(msg.content)

        if msg.role == "assistant":
            blocks.append(f"[Assistant]: {content or '(no text reply)'}")
            if msg.tool_calls:
                calls = "\n".join(f"  - {tc.name}({tc.arguments})" for tc in msg.tool_calls)
                blocks.append(f"[Tool Calls]:\n{calls}")
        elif msg.role == "tool":
            blocks.append(f"[Tool Result - {msg.name or 'unknown_tool'}]: {content}")
        else:
            label = ROLE_LABELS.get(msg.role, msg.role)
            blocks.append(f"[{label}]: {content}")

    return "\n\n".join(blocks)


def _is_summary_message(message: LLMMessage) -> bool:
    return (
        message.role == "user"
        and isinstance(message.content, str)
        and message.content.startswith(SUMMARY_PREFIX)
    )


async def _generate_summary(
    llm: BaseLLM,
    messages: list[LLMMessage],
    previous_summary: str | None,
) -> str:
    """Use the LLM to generate (or update) a conversation summary."""
    transcript = messages_to_transcript(messages)

    if previous_summary is None:
        prompt = COMPACTION_PROMPT.format(conversation=transcript)
    else:
        prompt = COMPACTION_UPDATE_PROMPT.format(
            conversation=transcript,
            previous_summary=previous_summary,
        )

    response = await llm.generate(
        messages=[LLMMessage(role="user", content=prompt)],
        system_prompt=COMPACTION_SYSTEM_PROMPT,
    )

    return (response.content or "").strip()


async def compact_conversation(
    llm: BaseLLM,
    store: SessionStore,
    session_id: str,
    messages: list[LLMMessage],
    anchors: list[str],
    used_tokens: int,
    config: CompactionConfig,
    previous_summary: str | None = None,
) -> tuple[list[LLMMessage], CompactionResult]:
    """Compact a conversation by summarizing older messages.

    Args:
        llm: LLM to use for summarization
        store: Store the compaction record is written to
        session_id: Session being compacted
        messages: Current context, oldest first
        anchors: Entry or record id behind each message, aligned with ``messages``
        used_tokens: Current context usage
        config: Compaction configuration
        previous_summary: Summary already at the head of ``messages``, if any

    Returns:
        Tuple of (compacted messages, compaction result)
    """
    unchanged = CompactionResult(
        original_message_count=len(messages),
        compacted_message_count=len(messages),
        summary="",
        tokens_saved_estimate=0,
    )

    if not config.enabled:
        return messages, unchanged

    cutoff = find_cutoff(messages, config.keep_budget)
    to_compact = messages[:cutoff]
    to_keep = messages[cutoff:]

    if not to_compact:
        logger.info(
            "Nothing to compact",
            session_id=session_id,
            message_count=len(messages),
            keep_budget=config.keep_budget,
        )
        return messages, unchanged

    new_messages = to_compact
    if previous_summary is not None and _is_summary_message(to_compact[0]):
        new_messages = to_compact[1:]

    if not new_messages:
        # Only the previous summary falls before the cutoff
        logger.info("Nothing new to compact", session_id=session_id, message_count=len(messages))
        return messages, unchanged

    if len(anchors) != len(messages) or not anchors[cutoff - 1]:
        raise CompactionError(
            "Cannot anchor compaction record: no entry id for the last compacted message",
            details={"session_id": session_id, "cutoff": cutoff},
        )
    trigger_id = anchors[cutoff - 1]

    logger.info(
        "Starting conversation compaction",
        session_id=session_id,
        message_count=len(messages),
        compacting=len(to_compact),
        estimated_tokens=used_tokens,
        keep_budget=config.keep_budget,
    )

    summary = await _generate_summary(llm, new_messages, previous_summary)

    if not summary:
        raise CompactionError(
            "Summarization returned an empty summary",
            details={"session_id": session_id},
        )

    record = await store.append_compaction_record(session_id, summary, trigger_id)

    compacted = [summary_message(summary)] + to_keep
    tokens_saved = used_tokens - estimate_tokens(compacted)

    result = CompactionResult(
        original_message_count=len(messages),
        compacted_message_count=len(compacted),
        summary=summary,
        tokens_saved_estimate=max(0, tokens_saved),
        record=record,
    )

    logger.info(
        "Compaction complete",
        session_id=session_id,
        original=result.original_message_count,
        compacted=result.compacted_message_count,
        tokens_saved=result.tokens_saved_estimate,
        trigger_entry_id=trigger_id,
    )

    return compacted, result
