"""
Context management: token budgeting, compaction and message assembly.
"""

from .assembler import (
    AssembledContext,
    assemble_messages,
    count_context_tokens,
    load_context,
    summary_message,
)
from .chain import ChainResolution, resolve_compaction_chain
from .compaction import (
    CompactionConfig,
    CompactionResult,
    compact_conversation,
    find_cutoff,
    messages_to_transcript,
)
from .threshold import should_compact
from .tokens import estimate_message_tokens, estimate_text, estimate_tokens

__all__ = [
    "AssembledContext",
    "ChainResolution",
    "CompactionConfig",
    "CompactionResult",
    "assemble_messages",
    "compact_conversation",
    "count_context_tokens",
    "estimate_message_tokens",
    "estimate_text",
    "estimate_tokens",
    "find_cutoff",
    "load_context",
    "messages_to_transcript",
    "resolve_compaction_chain",
    "should_compact",
    "summary_message",
]
