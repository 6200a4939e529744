"""
Conversation context management.

Long conversations are bounded by a sliding window: only the most recent
turns are sent verbatim, and older turns are folded into a rolling summary
that rides along as a system message.
"""

from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from quorum.providers.interfaces import Message

DEFAULT_WINDOW_SIZE = 10
DEFAULT_TRIGGER_TURNS = 6
SUMMARY_PREVIEW_CHARS = 500

SUMMARY_PROMPT_TEMPLATE = """Summarize this conversation history into a concise summary. Include:
- User's main goals and requests
- Key decisions made
- Important context and information shared
- Open questions or pending items

Conversation:
{conversation}

Provide a concise summary (2-3 paragraphs max):"""


class ConversationSummary(BaseModel):
    """
    Rolling summary of a conversation's older turns.

    Attributes:
        summary: Summary text
        message_count: Number of conversation messages that existed when
            the summary was produced
    """

    summary: str = Field(..., description="Summary text")
    message_count: int = Field(..., description="Messages covered", ge=0)

    model_config = ConfigDict(frozen=True)


def build_context(
    history: Sequence[Message],
    summary: Optional[ConversationSummary] = None,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> List[Message]:
    """
    Build the messages sent to providers: summary first, then recent turns.

    Example:
        >>> context = build_context(history, ConversationSummary(summary="...", message_count=12))
        >>> context[0].content.startswith("Previous conversation summary:")
        True
    """
    context: List[Message] = []
    if summary is not None and summary.summary:
        context.append(
            Message(role="system", content=f"Previous conversation summary:\n{summary.summary}")
        )
    context.extend(history[-window_size:] if window_size > 0 else [])
    return context


def should_summarize(
    total_messages: int,
    summarized_count: int = 0,
    trigger_turns: int = DEFAULT_TRIGGER_TURNS,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> bool:
    """
    Whether a new summary is due.

    A turn is a user/assistant pair. A summary is due once ``trigger_turns``
    turns have accumulated since the last one and the conversation has
    outgrown the window.
    """
    turns_since_summary = (total_messages - summarized_count) // 2
    return turns_since_summary >= trigger_turns and total_messages > window_size


def build_summary_prompt(history: Sequence[Message], window_size: int = DEFAULT_WINDOW_SIZE) -> str:
    """Prompt summarizing every turn older than the window, each cut to 500 characters."""
    older = history[:-window_size] if window_size > 0 else list(history)
    lines = []
    for message in older:
        speaker = "User" if message.role == "user" else "Assistant"
        content = message.content[:SUMMARY_PREVIEW_CHARS]
        if len(message.content) > SUMMARY_PREVIEW_CHARS:
            content += "..."
        lines.append(f"{speaker}: {content}")
    return SUMMARY_PROMPT_TEMPLATE.format(conversation="\n\n".join(lines))


__all__ = [
    "ConversationSummary",
    "build_context",
    "build_summary_prompt",
    "should_summarize",
]
