"""
Token estimation.

A cheap, deterministic, provider-agnostic approximation: no tokenizer call.
CJK ideographs run at about 1.5 characters per token and everything else at
about 4, and non-text parts have fixed costs. Accuracy is not the goal.
Monotonicity is: more content never yields fewer tokens.
"""

import math
import re
from typing import Any

from ..llm.base import LLMMessage

CJK_PATTERN = re.compile(r"[\u4e00-\u9fff]")
CJK_CHARS_PER_TOKEN = 1.5
CHARS_PER_TOKEN = 4

# An image is costed as 5000 characters of text
IMAGE_TOKENS = math.ceil(5000 / CHARS_PER_TOKEN)
# A 5 minute clip at 263 tokens per second
VIDEO_TOKENS = 300 * 263
# An 8 minute clip at 32 tokens per second
AUDIO_TOKENS = 480 * 32

IMAGE_PART_TYPES = {"image", "image_url"}
VIDEO_PART_TYPES = {"video", "video_url"}
AUDIO_PART_TYPES = {"audio", "input_audio"}


def estimate_text(text: Any) -> int:
    """Estimate tokens for a piece of text."""
    if not text or not isinstance(text, str):
        return 0

    cjk_count = len(CJK_PATTERN.findall(text))
    other_count = len(text) - cjk_count

    return math.ceil(cjk_count / CJK_CHARS_PER_TOKEN) + math.ceil(other_count / CHARS_PER_TOKEN)


def _estimate_part(part: Any) -> int:
    if not isinstance(part, dict):
        return 0

    part_type = part.get("type")
    if part_type == "text":
        return estimate_text(part.get("text"))
    if part_type in IMAGE_PART_TYPES:
        return IMAGE_TOKENS
    if part_type in VIDEO_PART_TYPES:
        return VIDEO_TOKENS
    if part_type in AUDIO_PART_TYPES:
        audio = part.get("audio") or part.get(part_type) or {}
        transcript = audio.get("transcript") if isinstance(audio, dict) else None
        return AUDIO_TOKENS + estimate_text(transcript or part.get("transcript"))
    return 0


def _estimate_content(content: Any) -> int:
    if isinstance(content, str):
        return estimate_text(content)
    if isinstance(content, list):
        return sum(_estimate_part(part) for part in content)
    return 0


def estimate_message_tokens(message: LLMMessage) -> int:
    """Estimate tokens for one message, dispatching on its role."""
    if message.role in ("user", "assistant", "tool"):
        tokens = _estimate_content(message.content)
    else:
        # system, developer and anything unrecognised are plain text
        tokens = estimate_text(message.content)

    if message.role == "assistant":
        tokens += estimate_text(message.thinking)
        for call in message.tool_calls or []:
            tokens += estimate_text(call.name)
            tokens += estimate_text(call.arguments)
    elif message.role == "tool":
        tokens += estimate_text(message.name)

    return tokens


def estimate_tokens(messages: list[LLMMessage]) -> int:
    """Estimate token count for a list of messages."""
    return sum(estimate_message_tokens(m) for m in messages)
