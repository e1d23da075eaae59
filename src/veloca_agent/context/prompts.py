"""
Prompts used for conversation compaction.
"""

SUMMARY_PREFIX = "[Previous conversation summary]:"

COMPACTION_SYSTEM_PROMPT = (
    "You are a conversation summarizer. Read a conversation between a user and an "
    "AI assistant that uses tools, then produce a structured summary that another "
    "model will use to continue the conversation.\n\n"
    "Do NOT continue the conversation. Do NOT answer any questions in it. "
    "ONLY output the summary."
)

COMPACTION_PROMPT = """<conversation>
{conversation}
</conversation>

Summarize the conversation above into a context checkpoint. Use this format:

## Goal
[What the user is trying to accomplish]

## Constraints & Preferences
- [Constraints, preferences or requirements the user stated, or "(none)"]

## Progress
- [What has been done, including tool calls and their outcomes]

## Key Facts
- [Names, numbers, identifiers, file paths and decisions that must not be lost]

## Open Threads
- [Questions or tasks still pending]

Keep it concise. Preserve exact values."""

COMPACTION_UPDATE_PROMPT = """<conversation>
{conversation}
</conversation>

<previous-summary>
{previous_summary}
</previous-summary>

The messages above are NEW conversation messages. Fold them into the existing summary in <previous-summary>.

Rules:
- PRESERVE all information from the previous summary that is still relevant
- ADD new progress, facts and decisions from the new messages
- MOVE finished items out of "Open Threads"
- Keep exact values (names, numbers, identifiers, file paths)

Use the same format as the previous summary:

## Goal
## Constraints & Preferences
## Progress
## Key Facts
## Open Threads"""
