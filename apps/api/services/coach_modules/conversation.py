"""
Conversation text helpers for the coach.

Pure functions: titles for new conversations, the running summary stored
on long conversations, and the compact chat summary sent to the LLM.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .intents import ChatHistoryMessage

MAX_TITLE_LENGTH = 50
SUMMARY_FIRST_EXCHANGE_CHARS = 80
SUMMARY_QUESTION_CHARS = 60
SUMMARY_MAX_QUESTIONS = 5
SUMMARY_MESSAGE_THRESHOLD = 10
SUMMARY_REFRESH_EVERY = 4

_ROLE_LABELS = {"user": "User", "coach": "Coach", "system": "System"}


def truncate(text: str, max_length: int) -> str:
    """Cut to `max_length` characters including a trailing '...'."""
    text = text or ""
    if len(text) <= max_length:
        return text
    return f"{text[:max_length - 3]}..."


def generate_title(message: str) -> str:
    return truncate((message or "").strip(), MAX_TITLE_LENGTH)


def role_label(role: str) -> str:
    return _ROLE_LABELS.get(role, "Coach")


def should_refresh_summary(total_messages: int) -> bool:
    """Summaries are regenerated every fourth message once a conversation is long."""
    return total_messages >= SUMMARY_MESSAGE_THRESHOLD and total_messages % SUMMARY_REFRESH_EVERY == 0


def build_conversation_summary(messages: Sequence) -> str:
    """
    Condense a conversation for later context reuse.

    The first exchange is kept as the topic line; from the rest only the
    user's most recent questions are listed.

    `messages` are objects with `role` and `content` attributes
    (CoachMessage rows or ChatHistoryMessage).
    """
    if not messages:
        return ""

    first_exchange = messages[:2]
    remaining = messages[2:]
    topic_line = " | ".join(
        f"{'User' if m.role == 'user' else 'Coach'}: {truncate(m.content, SUMMARY_FIRST_EXCHANGE_CHARS)}"
        for m in first_exchange
    )
    if not remaining:
        return topic_line

    questions = [truncate(m.content, SUMMARY_QUESTION_CHARS) for m in remaining if m.role == "user"]
    if not questions:
        return topic_line
    return f"{topic_line}\nTopics discussed: {'; '.join(questions[-SUMMARY_MAX_QUESTIONS:])}"


def summarize_chat_history(
    chat_history: Optional[Sequence[ChatHistoryMessage]],
    max_pairs: Optional[int] = None,
) -> Optional[str]:
    """The last `max_pairs` exchanges as 'User: ...' / 'Coach: ...' lines; None when empty."""
    if not chat_history:
        return None
    limit = (3 if max_pairs is None else max_pairs) * 2
    if limit <= 0:
        return None
    trimmed: List[ChatHistoryMessage] = list(chat_history)[-limit:]
    return "\n".join(f"{role_label(m.role)}: {m.content}" for m in trimmed)
