"""
AI Coach API Router

Streaming chat with the AI strength coach, the weekly quota and stored
conversations.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from typing import AsyncIterator
from uuid import UUID
import json
import logging

from core.auth import get_current_user
from core.database import SessionLocal, get_db
from models import User
from schemas import (
    ChatRequest,
    ConversationDetailResponse,
    ConversationListResponse,
    ConversationSummaryResponse,
    QuotaResponse,
)
from services import coach_access, conversation_service
from services.ai_coach import AICoach
from services.coach_modules import ChatHistoryMessage
from services.llm_client import CoachLLMClient, get_llm_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/coach", tags=["AI Coach"])


def _sse(event_id: int, event: str, data: dict) -> bytes:
    return (
        f"id: {event_id}\nevent: {event}\ndata: {json.dumps(data, default=str)}\n\n"
    ).encode("utf-8")


@router.post("/chat")
async def chat_with_coach(
    request: ChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm: CoachLLMClient = Depends(get_llm_client),
):
    """
    Stream a coach reply over Server-Sent Events.

    Events: `intent` once, `delta` per text fragment, then `done` with the
    conversation id, or `error` if the reply could not be completed.
    Quota and validation errors are returned as plain JSON before streaming.
    """
    user_id = user.id
    coach = AICoach(db, llm)
    coach.check_quota(user_id)

    supplied_history = [
        ChatHistoryMessage(role=m.role, content=m.content) for m in (request.chat_history or [])
    ]
    chat_history = coach.load_chat_history(user_id, request.conversation_id, supplied_history)
    resolution = await coach.resolve_intent(
        user_id=user_id,
        message=request.message,
        supplied_intent=request.intent,
        chat_history=chat_history,
    )

    async def _gen() -> AsyncIterator[bytes]:
        event_id = 0
        full_response = ""
        # Own session: the request-scoped one may be closed while the body streams.
        stream_db = SessionLocal()
        try:
            yield _sse(event_id, "intent", {"intent": resolution.intent.value})
            event_id += 1

            stream_coach = AICoach(stream_db, llm)
            async for delta in stream_coach.stream_reply(
                user_id=user_id,
                message=request.message,
                intent=resolution.intent,
                chat_history=resolution.chat_history,
            ):
                full_response += delta
                yield _sse(event_id, "delta", {"content": delta})
                event_id += 1

            saved_id = stream_coach.persist_exchange(
                user_id=user_id,
                conversation_id=request.conversation_id,
                message=request.message,
                response=full_response,
                intent=resolution.intent,
            )
            stream_db.commit()
            yield _sse(event_id, "done", {"done": True, "conversationId": str(saved_id)})
        except Exception as e:
            stream_db.rollback()
            logger.error(
                f"Coach chat stream failed: {e}",
                extra={"extra_fields": {"user_id": str(user_id), "intent": resolution.intent.value}},
            )
            detail = getattr(e, "detail", None) or str(e) or "An unexpected error occurred"
            yield _sse(event_id, "error", {"error": detail})
        finally:
            stream_db.close()

    return StreamingResponse(
        _gen(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            # Nginx / some proxies buffer by default; disable buffering when present.
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/quota", response_model=QuotaResponse)
def get_coach_quota(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Weekly coach allowance, referral bonus and the user's invitation link."""
    referral_code = coach_access.ensure_user_referral_code(db, user.id)
    quota = coach_access.get_coach_quota(db, user.id)
    return QuotaResponse(
        used_this_week=quota.used_this_week,
        allowed_this_week=quota.allowed_this_week,
        remaining_this_week=quota.remaining_this_week,
        is_unlimited=quota.is_unlimited,
        weekly_base_requests=quota.weekly_base_requests,
        bonus_per_successful_referral=quota.bonus_per_successful_referral,
        successful_referrals=quota.successful_referrals,
        max_referrals=quota.max_referrals,
        referral_code=referral_code,
        invitation_link=coach_access.build_invitation_link(referral_code),
    )


@router.get("/conversations", response_model=ConversationListResponse)
def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(conversation_service.DEFAULT_PAGE_SIZE, ge=1, le=conversation_service.MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversations, total = conversation_service.list_conversations(db, user.id, page=page, limit=limit)
    return ConversationListResponse(
        data=[ConversationSummaryResponse.model_validate(c) for c in conversations],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailResponse)
def get_conversation(
    conversation_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = conversation_service.get_owned_conversation(db, conversation_id, user.id)
    return ConversationDetailResponse.model_validate(conversation)


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_conversation(
    conversation_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation_service.delete_conversation(db, conversation_id, user.id)
