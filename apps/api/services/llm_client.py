"""
OpenAI client for the coach.

One instance is built at application startup and handed to the coach via
dependency injection. Three calls are made against the chat completions
API: intent classification, exercise extraction (matcher fallback) and
the streamed coach reply.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Sequence

from fastapi import Request
from openai import AsyncOpenAI

from core.config import settings
from core.exceptions import LLMUnavailableError
from services.coach_modules.intents import DEFAULT_INTENT, CoachIntent

logger = logging.getLogger(__name__)

CLASSIFICATION_MAX_TOKENS = 20
EXTRACTION_MAX_TOKENS = 20

INTENT_CLASSIFICATION_PROMPT = """Classify the user's fitness coaching question into exactly ONE of these intents:
- NEXT_WORKOUT: Asking what to do in upcoming workout, next session planning
- SESSION_FEEDBACK: Asking about today's performance, how they did
- PROGRESS_CHECK: Asking about long-term progress, trends, improvements
- DIFFICULTY_ANALYSIS: Asking why something was hard, fatigue, struggle
- TIPS: Asking for general advice, form tips, recovery tips
- GENERAL_COACHING: Any other fitness question that doesn't fit above

Respond with ONLY the intent name, nothing else."""

EXERCISE_EXTRACTION_PROMPT = """The user is asking a fitness coach about their training.
Which ONE of the user's exercises listed below is the message about?

Exercises:
{exercises}

Respond with the exercise name exactly as listed, or NONE if the message is not about one of them."""


class CoachLLMClient:
    """Thin async wrapper around the chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        chat_model: Optional[str] = None,
        classification_model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.chat_model = chat_model or settings.COACH_CHAT_MODEL
        self.classification_model = classification_model or settings.COACH_CLASSIFICATION_MODEL
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncOpenAI(api_key=api_key, timeout=timeout or settings.EXTERNAL_API_TIMEOUT)

    @classmethod
    def from_settings(cls) -> "CoachLLMClient":
        if not settings.OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY not set; coach chat will report errors until it is configured")
        return cls(api_key=settings.OPENAI_API_KEY)

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise LLMUnavailableError("OPENAI_API_KEY environment variable is not set")
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def classify_intent(self, message: str) -> CoachIntent:
        """Out-of-vocabulary replies map to the default intent; API errors propagate."""
        client = self._require_client()
        response = await client.chat.completions.create(
            model=self.classification_model,
            max_tokens=CLASSIFICATION_MAX_TOKENS,
            temperature=0,
            messages=[
                {"role": "system", "content": INTENT_CLASSIFICATION_PROMPT},
                {"role": "user", "content": message},
            ],
        )
        raw = (response.choices[0].message.content or "").strip() if response.choices else ""
        intent = CoachIntent.parse(raw)
        if intent is None:
            logger.info(f"Unrecognised intent from classifier: {raw!r}")
            return DEFAULT_INTENT
        return intent

    async def extract_exercise(self, message: str, known_exercises: Sequence[str]) -> Optional[str]:
        if not known_exercises:
            return None
        client = self._require_client()
        response = await client.chat.completions.create(
            model=self.classification_model,
            max_tokens=EXTRACTION_MAX_TOKENS,
            temperature=0,
            messages=[
                {
                    "role": "system",
                    "content": EXERCISE_EXTRACTION_PROMPT.format(
                        exercises="\n".join(f"- {name}" for name in known_exercises)
                    ),
                },
                {"role": "user", "content": message},
            ],
        )
        raw = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not raw or raw.upper() == "NONE":
            return None
        return raw

    async def stream_chat(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield text deltas of the coach reply as they arrive."""
        client = self._require_client()
        stream = await client.chat.completions.create(
            model=self.chat_model,
            max_tokens=settings.COACH_CHAT_MAX_TOKENS,
            temperature=settings.COACH_CHAT_TEMPERATURE,
            stream=True,
            messages=messages,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content


def get_llm_client(request: Request) -> CoachLLMClient:
    """FastAPI dependency: the client built once in main.lifespan."""
    client = getattr(request.app.state, "llm_client", None)
    if client is None:
        raise RuntimeError("LLM client not initialised; the application lifespan has not run")
    return client
