"""
Exercise Matcher

Works out which of the user's exercises (if any) a chat message is about.

Resolution order, first hit wins:
1. Deterministic: synonym table, substring and Levenshtein similarity
   against the user's known exercise names (accepted at >= 0.6).
2. LLM fallback: ask the completion API to pick one of the known names
   (fixed confidence 0.85).
3. No match.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


FUZZY_MATCH_THRESHOLD = 0.6
SYNONYM_CONFIDENCE = 0.95
SYNONYM_FUZZY_PENALTY = 0.9
LLM_MATCH_CONFIDENCE = 0.85

# Keys are normalized; values are canonical exercise names.
EXERCISE_SYNONYMS = {
    # Dumbbell abbreviations
    "incline db press": "Incline Dumbbell Press",
    "flat db press": "Dumbbell Bench Press",
    "db press": "Dumbbell Bench Press",
    "db bench": "Dumbbell Bench Press",
    "db curl": "Dumbbell Curl",
    "db row": "Dumbbell Row",
    "db fly": "Dumbbell Fly",
    "db flyes": "Dumbbell Fly",
    "db shoulder press": "Dumbbell Shoulder Press",
    "db lateral raise": "Dumbbell Lateral Raise",
    "db lunge": "Dumbbell Lunge",
    # Barbell abbreviations
    "bb curl": "Barbell Curl",
    "bb row": "Barbell Row",
    "bb bench": "Barbell Bench Press",
    "bb squat": "Barbell Squat",
    # Short forms
    "bench": "Barbell Bench Press",
    "bench press": "Barbell Bench Press",
    "incline bench": "Incline Barbell Bench Press",
    "incline press": "Incline Barbell Bench Press",
    "decline bench": "Decline Barbell Bench Press",
    "squat": "Barbell Squat",
    "squats": "Barbell Squat",
    "back squat": "Barbell Squat",
    "front squat": "Barbell Front Squat",
    "deadlift": "Barbell Deadlift",
    "deadlifts": "Barbell Deadlift",
    "conventional deadlift": "Barbell Deadlift",
    "sumo deadlift": "Sumo Deadlift",
    "rdl": "Romanian Deadlift",
    "romanian deadlift": "Romanian Deadlift",
    "ohp": "Overhead Press",
    "overhead press": "Overhead Press",
    "military press": "Overhead Press",
    "shoulder press": "Overhead Press",
    "lat pulldown": "Lat Pulldown",
    "pulldown": "Lat Pulldown",
    "pull up": "Pull Up",
    "pullup": "Pull Up",
    "pullups": "Pull Up",
    "chin up": "Chin Up",
    "chinup": "Chin Up",
    "chinups": "Chin Up",
    "dip": "Dip",
    "dips": "Dip",
    "tricep dip": "Dip",
    "tricep pushdown": "Tricep Pushdown",
    "pushdown": "Tricep Pushdown",
    "cable fly": "Cable Fly",
    "cable flyes": "Cable Fly",
    "face pull": "Face Pull",
    "face pulls": "Face Pull",
    "leg press": "Leg Press",
    "leg curl": "Leg Curl",
    "leg extension": "Leg Extension",
    "calf raise": "Calf Raise",
    "calf raises": "Calf Raise",
    "hip thrust": "Hip Thrust",
    "hip thrusts": "Hip Thrust",
    "bicep curl": "Bicep Curl",
    "hammer curl": "Hammer Curl",
    "hammer curls": "Hammer Curl",
    "preacher curl": "Preacher Curl",
    "skull crusher": "Skull Crusher",
    "skull crushers": "Skull Crusher",
    "tricep extension": "Tricep Extension",
    "cable row": "Cable Row",
    "seated row": "Seated Cable Row",
    "pendlay row": "Pendlay Row",
    "t bar row": "T-Bar Row",
    "shrug": "Barbell Shrug",
    "shrugs": "Barbell Shrug",
}

# Words that never name an exercise on their own
_NON_EXERCISE_PATTERNS = (
    re.compile(
        r"^(how|what|why|when|can|should|is|are|my|the|a|an|i|you|do|did|have|has|been|was|were|will"
        r"|would|could|about|with|for|from|this|that|these|those)$"
    ),
    re.compile(r"^(progress|workout|session|today|yesterday|last|next|week|month|help|advice|tips|feedback)$"),
)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ExerciseMatchResult:
    matched_exercise: Optional[str]
    confidence: float
    method: str  # 'deterministic' | 'llm' | 'none'


class ExerciseExtractor(Protocol):
    async def extract_exercise(self, message: str, known_exercises: Sequence[str]) -> Optional[str]:
        ...


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    lowered = (text or "").lower()
    return _WHITESPACE_RE.sub(" ", _PUNCTUATION_RE.sub("", lowered)).strip()


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - distance / longest length, on normalized text. 1.0 is identical."""
    s1 = normalize_text(a)
    s2 = normalize_text(b)
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return 1 - levenshtein_distance(s1, s2) / max(len(s1), len(s2))


def _match_synonym(normalized_message: str) -> Optional[str]:
    for synonym, canonical in EXERCISE_SYNONYMS.items():
        if synonym in normalized_message:
            return canonical
    return None


def _best_fuzzy_match(normalized_message: str, known_exercises: Sequence[str]) -> Optional[Tuple[str, float]]:
    words = normalized_message.split(" ")
    best: Optional[Tuple[str, float]] = None

    for exercise in known_exercises:
        normalized_exercise = normalize_text(exercise)
        if not normalized_exercise:
            continue
        if normalized_exercise in normalized_message:
            return exercise, 1.0

        # Windows one word wider than the name tolerate a stray word ("bench the press")
        word_count = len(normalized_exercise.split(" "))
        for i in range(0, len(words) - word_count + 1):
            window = " ".join(words[i:i + word_count + 1])
            score = similarity(window, normalized_exercise)
            if score > (best[1] if best else 0):
                best = (exercise, score)

        full_score = similarity(normalized_message, normalized_exercise)
        if full_score > (best[1] if best else 0):
            best = (exercise, full_score)

    return best


def match_exercise_deterministic(message: str, known_exercises: Sequence[str]) -> ExerciseMatchResult:
    """
    Match without any network call.

    A synonym hit is trusted when its canonical name is one of the user's
    exercises; otherwise the canonical name is fuzzy-matched against the
    known list and the score is discounted.
    """
    normalized_message = normalize_text(message)

    canonical = _match_synonym(normalized_message)
    if canonical:
        normalized_canonical = normalize_text(canonical)
        for known in known_exercises:
            if normalize_text(known) == normalized_canonical:
                return ExerciseMatchResult(known, SYNONYM_CONFIDENCE, "deterministic")

        fuzzy = _best_fuzzy_match(normalized_canonical, known_exercises)
        if fuzzy and fuzzy[1] >= FUZZY_MATCH_THRESHOLD:
            return ExerciseMatchResult(fuzzy[0], fuzzy[1] * SYNONYM_FUZZY_PENALTY, "deterministic")

    fuzzy = _best_fuzzy_match(normalized_message, known_exercises)
    if fuzzy and fuzzy[1] >= FUZZY_MATCH_THRESHOLD:
        return ExerciseMatchResult(fuzzy[0], fuzzy[1], "deterministic")

    return ExerciseMatchResult(None, 0.0, "none")


def extract_potential_exercise_phrases(message: str) -> List[str]:
    """1-4 word phrases from the message that could name an exercise, in order of first appearance."""
    words = normalize_text(message).split(" ")
    phrases: List[str] = []
    seen = set()
    for size in range(1, 5):
        for i in range(0, len(words) - size + 1):
            phrase = " ".join(words[i:i + size])
            if len(phrase) <= 2 or phrase in seen:
                continue
            if any(p.match(phrase) for p in _NON_EXERCISE_PATTERNS):
                continue
            seen.add(phrase)
            phrases.append(phrase)
    return phrases


def exercise_names_from_logs(logs: Iterable) -> List[str]:
    """Unique exercise names referenced by the logs, preserving first-seen order."""
    names: List[str] = []
    for log in logs:
        exercise = getattr(log, "exercise", None)
        name = getattr(exercise, "name", None) if exercise is not None else None
        if name and name not in names:
            names.append(name)
    return names


class ExerciseMatcher:
    """
    Two-stage exercise matcher.

    The LLM stage is optional; without an extractor only the
    deterministic stage runs.
    """

    def __init__(self, extractor: Optional[ExerciseExtractor] = None):
        self.extractor = extractor

    async def match(self, message: str, known_exercises: Sequence[str]) -> ExerciseMatchResult:
        if not known_exercises:
            return ExerciseMatchResult(None, 0.0, "none")

        result = match_exercise_deterministic(message, known_exercises)
        if result.matched_exercise and result.confidence >= FUZZY_MATCH_THRESHOLD:
            return result

        if self.extractor is None:
            return ExerciseMatchResult(None, 0.0, "none")

        try:
            extracted = await self.extractor.extract_exercise(message, known_exercises)
        except Exception as e:
            logger.warning(f"LLM exercise extraction failed: {e}")
            extracted = None

        if extracted:
            lookup = {normalize_text(name): name for name in known_exercises}
            known = lookup.get(normalize_text(extracted))
            if known:
                return ExerciseMatchResult(known, LLM_MATCH_CONFIDENCE, "llm")

        return ExerciseMatchResult(None, 0.0, "none")
