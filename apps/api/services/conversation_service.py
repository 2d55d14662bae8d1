"""
Coach conversation persistence.

A conversation is an ordered list of CoachMessage rows plus a running
summary that is refreshed as the conversation grows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from models import CoachMessage, Conversation, utcnow
from services.coach_modules.conversation import (
    build_conversation_summary,
    generate_title,
    should_refresh_summary,
)
from services.coach_modules.intents import ChatHistoryMessage

logger = logging.getLogger(__name__)

MAX_CONVERSATIONS_PER_USER = 50
DEFAULT_CONVERSATION_TITLE = "New conversation"
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50
MAX_PERSISTED_HISTORY_MESSAGES = 10


@dataclass
class NewMessage:
    role: str
    content: str
    intent: Optional[str] = None


def count_conversations(db: Session, user_id: UUID) -> int:
    return db.query(func.count(Conversation.id)).filter(Conversation.user_id == user_id).scalar() or 0


def list_conversations(
    db: Session,
    user_id: UUID,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Conversation], int]:
    """Most recently updated first. Returns (page of conversations, total count)."""
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    conversations = (
        db.query(Conversation)
        .filter(Conversation.user_id == user_id)
        .order_by(Conversation.updated_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return conversations, count_conversations(db, user_id)


def get_owned_conversation(db: Session, conversation_id: UUID, user_id: UUID) -> Conversation:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conversation:
        raise NotFoundError("Conversation", str(conversation_id))
    if conversation.user_id != user_id:
        raise ForbiddenError("Unauthorized access to conversation")
    return conversation


def _add_messages(db: Session, conversation: Conversation, start: int, messages: Sequence[NewMessage]) -> None:
    for offset, m in enumerate(messages):
        db.add(
            CoachMessage(
                conversation_id=conversation.id,
                user_id=conversation.user_id,
                position=start + offset,
                role=m.role,
                content=m.content,
                intent=m.intent,
            )
        )


def create_conversation(
    db: Session,
    user_id: UUID,
    title: Optional[str] = None,
    initial_messages: Sequence[NewMessage] = (),
) -> Conversation:
    if count_conversations(db, user_id) >= MAX_CONVERSATIONS_PER_USER:
        raise BadRequestError(
            f"Maximum of {MAX_CONVERSATIONS_PER_USER} conversations reached. Please delete old conversations."
        )

    conversation = Conversation(user_id=user_id, title=title or DEFAULT_CONVERSATION_TITLE)
    db.add(conversation)
    db.flush()
    _add_messages(db, conversation, 0, initial_messages)
    db.flush()
    db.refresh(conversation)

    logger.info(
        "Coach conversation created",
        extra={"extra_fields": {"user_id": str(user_id), "conversation_id": str(conversation.id)}},
    )
    return conversation


def append_messages(
    db: Session,
    conversation_id: UUID,
    user_id: UUID,
    messages: Sequence[NewMessage],
) -> Conversation:
    conversation = get_owned_conversation(db, conversation_id, user_id)
    existing = db.query(func.count(CoachMessage.id)).filter(
        CoachMessage.conversation_id == conversation.id
    ).scalar() or 0

    _add_messages(db, conversation, existing, messages)
    conversation.updated_at = utcnow()
    db.flush()
    db.refresh(conversation)

    total = existing + len(messages)
    if should_refresh_summary(total):
        conversation.summary = build_conversation_summary(conversation.messages)
        db.flush()
    return conversation


def delete_conversation(db: Session, conversation_id: UUID, user_id: UUID) -> None:
    conversation = get_owned_conversation(db, conversation_id, user_id)
    db.delete(conversation)
    db.flush()


def save_exchange(
    db: Session,
    *,
    user_id: UUID,
    conversation_id: Optional[UUID],
    user_message: str,
    coach_response: str,
    intent: str,
) -> UUID:
    """Store a user/coach message pair, creating a conversation when none is given."""
    pair = [
        NewMessage(role="user", content=user_message, intent=intent),
        NewMessage(role="coach", content=coach_response, intent=intent),
    ]
    if conversation_id:
        append_messages(db, conversation_id, user_id, pair)
        return conversation_id

    conversation = create_conversation(db, user_id, generate_title(user_message), pair)
    return conversation.id


def build_chat_history(db: Session, conversation_id: UUID, user_id: UUID) -> List[ChatHistoryMessage]:
    """
    Recent history of a stored conversation in LLM-context form.

    Only the last messages are kept; longer conversations are prefixed with
    their stored summary. Unknown or foreign conversations give no history.
    """
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conversation or conversation.user_id != user_id:
        return []

    messages = conversation.messages or []
    if not messages:
        return []

    history = [
        ChatHistoryMessage(role=m.role, content=m.content)
        for m in messages[-MAX_PERSISTED_HISTORY_MESSAGES:]
    ]
    if conversation.summary and len(messages) > MAX_PERSISTED_HISTORY_MESSAGES:
        history.insert(
            0,
            ChatHistoryMessage(role="coach", content=f"[Previous conversation summary: {conversation.summary}]"),
        )
    return history
