"""
Coach intent catalogue.

Each intent declares how much context the coach needs to answer it:
full vs minimal profile, how many days of workout history, and how much
of the chat history to summarize.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Literal


MAX_MESSAGE_LENGTH = 300

ChatRole = Literal["user", "coach", "system"]


class CoachIntent(str, Enum):
    """What the user is asking the coach for."""
    NEXT_WORKOUT = "NEXT_WORKOUT"
    SESSION_FEEDBACK = "SESSION_FEEDBACK"
    PAST_SESSION_FEEDBACK = "PAST_SESSION_FEEDBACK"
    PROGRESS_CHECK = "PROGRESS_CHECK"
    DIFFICULTY_ANALYSIS = "DIFFICULTY_ANALYSIS"
    TIPS = "TIPS"
    GENERAL_COACHING = "GENERAL_COACHING"

    @classmethod
    def parse(cls, value: str) -> "CoachIntent | None":
        """Exact (case-sensitive after trimming) lookup; None for anything else."""
        try:
            return cls((value or "").strip())
        except ValueError:
            return None


DEFAULT_INTENT = CoachIntent.GENERAL_COACHING


@dataclass(frozen=True)
class IntentContextConfig:
    needs_full_profile: bool
    needs_workout_summary: bool
    workout_summary_depth_days: int
    needs_chat_history: bool
    max_chat_history_pairs: int


INTENT_CONTEXT_CONFIG: Dict[CoachIntent, IntentContextConfig] = {
    CoachIntent.NEXT_WORKOUT: IntentContextConfig(
        needs_full_profile=True,
        needs_workout_summary=True,
        workout_summary_depth_days=14,
        needs_chat_history=False,
        max_chat_history_pairs=0,
    ),
    CoachIntent.SESSION_FEEDBACK: IntentContextConfig(
        needs_full_profile=False,
        needs_workout_summary=True,
        workout_summary_depth_days=1,
        needs_chat_history=True,
        max_chat_history_pairs=2,
    ),
    CoachIntent.PAST_SESSION_FEEDBACK: IntentContextConfig(
        needs_full_profile=False,
        needs_workout_summary=True,
        workout_summary_depth_days=14,
        needs_chat_history=True,
        max_chat_history_pairs=2,
    ),
    CoachIntent.PROGRESS_CHECK: IntentContextConfig(
        needs_full_profile=True,
        needs_workout_summary=True,
        workout_summary_depth_days=14,
        needs_chat_history=False,
        max_chat_history_pairs=0,
    ),
    CoachIntent.DIFFICULTY_ANALYSIS: IntentContextConfig(
        needs_full_profile=False,
        needs_workout_summary=True,
        workout_summary_depth_days=7,
        needs_chat_history=True,
        max_chat_history_pairs=1,
    ),
    CoachIntent.TIPS: IntentContextConfig(
        needs_full_profile=False,
        needs_workout_summary=False,
        workout_summary_depth_days=0,
        needs_chat_history=True,
        max_chat_history_pairs=3,
    ),
    CoachIntent.GENERAL_COACHING: IntentContextConfig(
        needs_full_profile=False,
        needs_workout_summary=True,
        workout_summary_depth_days=7,
        needs_chat_history=True,
        max_chat_history_pairs=5,
    ),
}


@dataclass
class ChatHistoryMessage:
    role: ChatRole
    content: str


def get_intent_config(intent: CoachIntent) -> IntentContextConfig:
    return INTENT_CONTEXT_CONFIG[intent]
