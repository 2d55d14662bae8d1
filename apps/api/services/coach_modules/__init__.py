"""
Coach Modules Package

Building blocks of the AI coach chat turn.

Modules:
- intents: Intent catalogue and per-intent context configuration
- routing: Intent resolution (supplied, classified, session-feedback downgrade)
- exercise_matcher: Deterministic + LLM exercise matching
- aggregation: Workout log summaries, trends and profile signals
- context: Context assembly and LLM message rendering
- conversation: Conversation titles and summaries

Usage:
    from services.coach_modules import CoachIntent, IntentResolver, CoachContextAssembler
    from services.coach_modules.aggregation import aggregate_exercise_summaries
"""

from .intents import (
    CoachIntent,
    ChatHistoryMessage,
    IntentContextConfig,
    INTENT_CONTEXT_CONFIG,
    MAX_MESSAGE_LENGTH,
    get_intent_config,
)
from .routing import (
    IntentResolver,
    IntentResolution,
    NO_SESSION_TODAY_NOTE,
)
from .exercise_matcher import (
    ExerciseMatcher,
    ExerciseMatchResult,
    match_exercise_deterministic,
)
from .aggregation import (
    ExerciseSummary,
    aggregate_exercise_summaries,
)
from .context import (
    COACH_SYSTEM_PROMPT,
    CoachContext,
    CoachContextAssembler,
    build_llm_messages,
    context_to_payload,
)
from .conversation import (
    build_conversation_summary,
    generate_title,
    summarize_chat_history,
)

__all__ = [
    # Intents
    "CoachIntent",
    "ChatHistoryMessage",
    "IntentContextConfig",
    "INTENT_CONTEXT_CONFIG",
    "MAX_MESSAGE_LENGTH",
    "get_intent_config",
    # Routing
    "IntentResolver",
    "IntentResolution",
    "NO_SESSION_TODAY_NOTE",
    # Exercise matching
    "ExerciseMatcher",
    "ExerciseMatchResult",
    "match_exercise_deterministic",
    # Aggregation
    "ExerciseSummary",
    "aggregate_exercise_summaries",
    # Context
    "COACH_SYSTEM_PROMPT",
    "CoachContext",
    "CoachContextAssembler",
    "build_llm_messages",
    "context_to_payload",
    # Conversation
    "build_conversation_summary",
    "generate_title",
    "summarize_chat_history",
]
