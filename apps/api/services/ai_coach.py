"""
AI Coach Service

Orchestrates one coach chat turn:

1. Quota check (weekly allowance, pioneers unlimited)
2. Chat history (stored conversation or client-supplied)
3. Intent resolution (supplied or LLM-classified, with session-feedback downgrade)
4. Context assembly (profile, workout summary, advice, chat summary)
5. Streamed LLM reply
6. Persistence of the exchange (and optionally of the advice)

The HTTP layer forwards each text increment to the client and hands the
accumulated reply back for persistence.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import QuotaExceededError
from services import coach_access, coach_advice, conversation_service, workout_log_service
from services.coach_modules import (
    ChatHistoryMessage,
    CoachContext,
    CoachContextAssembler,
    CoachIntent,
    ExerciseMatcher,
    IntentResolution,
    IntentResolver,
    build_llm_messages,
)
from services.llm_client import CoachLLMClient

logger = logging.getLogger(__name__)


class AICoach:
    """
    Coach chat orchestration bound to one database session and the shared
    LLM client.
    """

    def __init__(self, db: Session, llm: CoachLLMClient):
        self.db = db
        self.llm = llm
        self.resolver = IntentResolver(
            llm,
            lambda user_id, now: workout_log_service.has_logs_today(db, user_id, now),
        )
        self.assembler = CoachContextAssembler(db, ExerciseMatcher(llm))
        self.last_context: Optional[CoachContext] = None

    def check_quota(self, user_id: UUID) -> coach_access.CoachQuota:
        quota = coach_access.get_coach_quota(self.db, user_id)
        if not coach_access.can_use_coach(quota):
            logger.info(
                "Coach quota exhausted",
                extra={"extra_fields": {"user_id": str(user_id), "used": quota.used_this_week}},
            )
            raise QuotaExceededError()
        return quota

    def load_chat_history(
        self,
        user_id: UUID,
        conversation_id: Optional[UUID],
        supplied: Optional[Sequence[ChatHistoryMessage]] = None,
    ) -> List[ChatHistoryMessage]:
        """
        A stored conversation takes precedence over history sent by the client.
        Unknown (404) and foreign (403) conversations are rejected here, before
        any reply is streamed.
        """
        if conversation_id:
            conversation_service.get_owned_conversation(self.db, conversation_id, user_id)
            return conversation_service.build_chat_history(self.db, conversation_id, user_id)
        return list(supplied or [])

    async def resolve_intent(
        self,
        *,
        user_id: UUID,
        message: str,
        supplied_intent: Optional[CoachIntent],
        chat_history: Sequence[ChatHistoryMessage],
        now: Optional[datetime] = None,
    ) -> IntentResolution:
        return await self.resolver.resolve(
            user_id=user_id,
            message=message,
            supplied_intent=supplied_intent,
            chat_history=list(chat_history),
            now=now,
        )

    async def build_messages(
        self,
        *,
        user_id: UUID,
        message: str,
        intent: CoachIntent,
        chat_history: Sequence[ChatHistoryMessage],
        now: Optional[datetime] = None,
    ):
        context = await self.assembler.assemble(
            user_id=user_id,
            message=message,
            intent=intent,
            chat_history=chat_history,
            now=now,
        )
        self.last_context = context
        return build_llm_messages(context, message)

    async def stream_reply(
        self,
        *,
        user_id: UUID,
        message: str,
        intent: CoachIntent,
        chat_history: Sequence[ChatHistoryMessage],
        now: Optional[datetime] = None,
    ) -> AsyncIterator[str]:
        """Yield the coach reply as text increments."""
        messages = await self.build_messages(
            user_id=user_id,
            message=message,
            intent=intent,
            chat_history=chat_history,
            now=now,
        )
        async for delta in self.llm.stream_chat(messages):
            yield delta

    def persist_exchange(
        self,
        *,
        user_id: UUID,
        conversation_id: Optional[UUID],
        message: str,
        response: str,
        intent: CoachIntent,
    ) -> UUID:
        saved_id = conversation_service.save_exchange(
            self.db,
            user_id=user_id,
            conversation_id=conversation_id,
            user_message=message,
            coach_response=response,
            intent=intent.value,
        )
        coach_advice.maybe_save_response_as_advice(
            self.db,
            user_id=user_id,
            focused_exercise=self.last_context.focused_exercise if self.last_context else None,
            response=response,
            intent=intent.value,
            user_message=message,
        )
        return saved_id
