"""
Coach intent routing.

Resolves the intent of an incoming chat message: a supplied intent is
trusted, anything else is classified by the LLM. Session feedback is
downgraded to past-session feedback when nothing was logged today.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Protocol
from uuid import UUID

from .intents import DEFAULT_INTENT, ChatHistoryMessage, CoachIntent

logger = logging.getLogger(__name__)


NO_SESSION_TODAY_NOTE = (
    "Note for the coach: the user asked for feedback on today's session, but no workout "
    "has been logged today (UTC). Briefly explain that no session was logged today and "
    "that you are reviewing their recent sessions instead, then give that feedback."
)


class IntentClassifier(Protocol):
    async def classify_intent(self, message: str) -> CoachIntent:
        ...


@dataclass
class IntentResolution:
    intent: CoachIntent
    downgraded: bool = False
    chat_history: List[ChatHistoryMessage] = field(default_factory=list)


class IntentResolver:
    """
    Maps a message (plus optional explicit intent) to a CoachIntent.

    `has_logs_today` is a callable (user_id, now) -> bool so the resolver
    stays independent of the persistence layer.
    """

    def __init__(
        self,
        classifier: Optional[IntentClassifier],
        has_logs_today: Callable[[UUID, Optional[datetime]], bool],
    ):
        self.classifier = classifier
        self.has_logs_today = has_logs_today

    async def classify(self, message: str) -> CoachIntent:
        """Classify via the LLM. Any failure falls back to general coaching."""
        if self.classifier is None:
            return DEFAULT_INTENT
        try:
            intent = await self.classifier.classify_intent(message)
        except Exception as e:
            logger.warning(f"Intent classification failed, using {DEFAULT_INTENT.value}: {e}")
            return DEFAULT_INTENT
        if not isinstance(intent, CoachIntent):
            return CoachIntent.parse(str(intent)) or DEFAULT_INTENT
        return intent

    async def resolve(
        self,
        *,
        user_id: UUID,
        message: str,
        supplied_intent: Optional[CoachIntent] = None,
        chat_history: Optional[List[ChatHistoryMessage]] = None,
        now: Optional[datetime] = None,
    ) -> IntentResolution:
        history = list(chat_history or [])
        intent = supplied_intent or await self.classify(message)

        # Applies to supplied intents as well as classified ones
        if intent == CoachIntent.SESSION_FEEDBACK and not self.has_logs_today(user_id, now):
            logger.info(
                "No workout logged today; downgrading session feedback",
                extra={"extra_fields": {"user_id": str(user_id)}},
            )
            history.append(ChatHistoryMessage(role="system", content=NO_SESSION_TODAY_NOTE))
            return IntentResolution(
                intent=CoachIntent.PAST_SESSION_FEEDBACK,
                downgraded=True,
                chat_history=history,
            )

        return IntentResolution(intent=intent, chat_history=history)
