"""
Coach context assembly.

Builds the structured context the LLM sees for one chat turn: profile,
aggregated workout summary, recent advice and chat summary, each included
according to the intent's configuration. Then renders the message list
for the completion call.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from models import User
from services import coach_advice, workout_log_service

from .aggregation import (
    ExerciseSummary,
    aggregate_exercise_summaries,
    average_rpe,
    filter_logs_to_today_exercises,
    identify_plateaus,
    map_experience_level,
    map_goal,
)
from .conversation import summarize_chat_history
from .exercise_matcher import ExerciseMatcher, ExerciseMatchResult, exercise_names_from_logs
from .intents import ChatHistoryMessage, CoachIntent, get_intent_config

logger = logging.getLogger(__name__)

PROFILE_LOOKBACK_DAYS = 14
MAX_SESSIONS_PER_EXERCISE = 5

COACH_SYSTEM_PROMPT = """You are a professional strength and fitness coach with a science-based approach.

Your job is to read the user's training data and give practical, evidence-informed guidance that helps them train consistently and recover well.

Communication style:
- Calm, confident and supportive. Never dramatic or judgmental.
- Evidence-based and objective; avoid fitness myths and hype.
- Clear and concise, 3 to 5 sentences when possible.
- Practical and actionable, focused on what to do next.
- Plain language; explain a concept briefly when it is needed.

Coaching principles:
- Training close to failure is normal and productive when it is managed well.
- Progress is non-linear; short plateaus and fatigue are expected.
- Favour sustainability, recovery and long-term consistency.
- Avoid absolutes such as "always" or "never".

Safety and scope:
- Do NOT give medical advice or diagnose injuries.
- If pain, injury or a medical concern comes up, recommend a qualified professional.
- Answer ONLY fitness, training, recovery and general nutrition questions.
- Politely decline anything unrelated.

Do not repeat earlier coaching replies verbatim. Every reply should be a fresh reading of the data."""


@dataclass
class CoachContext:
    intent: CoachIntent
    coach_profile: Dict[str, Any]
    workout_summary: Optional[Dict[str, ExerciseSummary]] = None
    chat_summary: Optional[str] = None
    recent_advice: List[Dict[str, Any]] = field(default_factory=list)
    is_new_conversation: bool = True
    focused_exercise: Optional[str] = None
    exercise_match: Optional[ExerciseMatchResult] = None


def _drop_empty(value: Any) -> Any:
    """Recursively remove None values and empty containers from dicts and lists."""
    if isinstance(value, dict):
        cleaned = {k: _drop_empty(v) for k, v in value.items()}
        return {k: v for k, v in cleaned.items() if v is not None and v != {} and v != [] and v != ""}
    if isinstance(value, list):
        return [_drop_empty(v) for v in value]
    return value


def _summary_to_dict(summary: ExerciseSummary) -> Dict[str, Any]:
    return {
        "rpe": summary.average_rpe,
        "trend": summary.trend,
        "volumeChangePercent": summary.volume_change_percent,
        "sessions": [
            {
                "date": s.date.date().isoformat(),
                "sets": s.sets,
                "volume": s.volume,
                "notes": s.notes,
            }
            for s in summary.sessions[:MAX_SESSIONS_PER_EXERCISE]
        ],
    }


def context_to_payload(context: CoachContext) -> Dict[str, Any]:
    """Wire form of the context: camelCase keys, sessions capped, empty fields omitted."""
    payload = {
        "coachProfile": context.coach_profile,
        "intent": context.intent.value,
        "workoutSummary": (
            {name: _summary_to_dict(s) for name, s in context.workout_summary.items()}
            if context.workout_summary
            else None
        ),
        "chatSummary": context.chat_summary,
        "recentAdvice": context.recent_advice,
        "focusedExercise": context.focused_exercise,
    }
    payload = _drop_empty(payload)
    payload["isNewConversation"] = context.is_new_conversation
    return payload


def serialize_context(context: CoachContext) -> str:
    return json.dumps(context_to_payload(context), separators=(",", ":"), default=str)


def build_llm_messages(context: CoachContext, user_message: str) -> List[Dict[str, str]]:
    messages = [
        {"role": "system", "content": COACH_SYSTEM_PROMPT},
        {"role": "system", "content": f"Here is the user's context:\n{serialize_context(context)}"},
    ]
    if context.chat_summary:
        messages.append({"role": "system", "content": f"Recent conversation:\n{context.chat_summary}"})
    messages.append({"role": "user", "content": user_message})
    return messages


class CoachContextAssembler:
    """
    Assembles a CoachContext for one chat turn.

    Bound to a database session; the exercise matcher carries the optional
    LLM fallback.
    """

    def __init__(self, db: Session, matcher: Optional[ExerciseMatcher] = None):
        self.db = db
        self.matcher = matcher or ExerciseMatcher()

    async def build_full_profile(self, user_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        user = self.db.query(User).filter(User.id == user_id).first()
        recent = workout_log_service.find_recent(self.db, user_id, PROFILE_LOOKBACK_DAYS, now)
        return {
            "goal": map_goal(user.fitness_goal if user else None),
            "experienceLevel": map_experience_level(user.activity_level if user else None),
            "preferredIntensityRPE": average_rpe(recent),
            "activePlateaus": identify_plateaus(recent),
        }

    async def build_minimal_profile(self, user_id: UUID) -> Dict[str, Any]:
        user = self.db.query(User).filter(User.id == user_id).first()
        return {
            "goal": map_goal(user.fitness_goal if user else None),
            "experienceLevel": map_experience_level(user.activity_level if user else None),
        }

    async def build_workout_summary(
        self, logs: Sequence, exercise_filter: Optional[str] = None
    ) -> Dict[str, ExerciseSummary]:
        return aggregate_exercise_summaries(logs, exercise_filter)

    async def fetch_recent_advice(self, user_id: UUID, exercise_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Recent advice for the context. A failure here only degrades the context."""
        try:
            rows = coach_advice.find_recent_advice(self.db, user_id, exercise_name)
        except Exception as e:
            logger.warning(
                f"Could not load recent coach advice: {e}",
                extra={"extra_fields": {"user_id": str(user_id)}},
            )
            return []
        return [
            {
                "exercise": row.exercise_name,
                "advice": row.advice,
                "date": row.created_at.date().isoformat() if row.created_at else None,
            }
            for row in rows
        ]

    async def assemble(
        self,
        *,
        user_id: UUID,
        message: str,
        intent: CoachIntent,
        chat_history: Optional[Sequence[ChatHistoryMessage]] = None,
        now: Optional[datetime] = None,
    ) -> CoachContext:
        config = get_intent_config(intent)
        now = now or datetime.now(timezone.utc)

        window_logs: list = []
        if config.needs_workout_summary:
            window_logs = workout_log_service.find_recent(
                self.db, user_id, config.workout_summary_depth_days, now
            )
            if intent == CoachIntent.SESSION_FEEDBACK and window_logs:
                today_logs = workout_log_service.find_today(self.db, user_id, now)
                window_logs = filter_logs_to_today_exercises(window_logs, today_logs)

        match: Optional[ExerciseMatchResult] = None
        focused: Optional[str] = None
        if config.needs_workout_summary and window_logs:
            match = await self.matcher.match(message, exercise_names_from_logs(window_logs))
            focused = match.matched_exercise

        profile_task = (
            self.build_full_profile(user_id, now)
            if config.needs_full_profile
            else self.build_minimal_profile(user_id)
        )
        summary_task = (
            self.build_workout_summary(window_logs, focused)
            if config.needs_workout_summary
            else _none()
        )
        profile, workout_summary, advice = await asyncio.gather(
            profile_task,
            summary_task,
            self.fetch_recent_advice(user_id, focused),
        )

        chat_summary = (
            summarize_chat_history(chat_history, config.max_chat_history_pairs)
            if config.needs_chat_history
            else None
        )

        return CoachContext(
            intent=intent,
            coach_profile=profile,
            workout_summary=workout_summary,
            chat_summary=chat_summary,
            recent_advice=advice,
            is_new_conversation=not any(m.role != "system" for m in chat_history or []),
            focused_exercise=focused,
            exercise_match=match,
        )


async def _none() -> None:
    return None
