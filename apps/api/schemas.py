from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from uuid import UUID
from typing import Optional, List, Literal

from services.coach_modules.intents import CoachIntent, MAX_MESSAGE_LENGTH


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names; snake_case is accepted too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Coach chat ---

class ChatHistoryItem(CamelModel):
    role: Literal["user", "coach"]
    content: str


class ChatRequest(CamelModel):
    message: str
    intent: Optional[CoachIntent] = None
    conversation_id: Optional[UUID] = None
    chat_history: Optional[List[ChatHistoryItem]] = None

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Message cannot be empty")
        if len(trimmed) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message must be {MAX_MESSAGE_LENGTH} characters or fewer")
        return trimmed

    @field_validator("intent", "conversation_id", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class QuotaResponse(CamelModel):
    used_this_week: int
    allowed_this_week: int
    remaining_this_week: int
    is_unlimited: bool
    weekly_base_requests: int
    bonus_per_successful_referral: int
    successful_referrals: int
    max_referrals: int
    referral_code: Optional[str] = None
    invitation_link: Optional[str] = None


# --- Conversations ---

class CoachMessageResponse(CamelModel):
    role: str
    content: str
    intent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ConversationSummaryResponse(CamelModel):
    id: UUID
    title: str
    summary: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ConversationDetailResponse(ConversationSummaryResponse):
    messages: List[CoachMessageResponse] = []


class ConversationListResponse(CamelModel):
    data: List[ConversationSummaryResponse]
    total: int
    page: int
    limit: int


# --- Workout logs ---

class WorkoutSetIn(CamelModel):
    reps: int = Field(ge=0)
    weight: float = Field(ge=0)  # kg
    notes: Optional[str] = None


class WorkoutLogCreate(CamelModel):
    exercise_id: UUID
    sets: List[WorkoutSetIn] = Field(min_length=1)
    rpe: Optional[float] = Field(default=None, ge=1, le=10)
    notes: Optional[str] = None


class WorkoutLogResponse(CamelModel):
    id: UUID
    exercise_id: UUID
    sets: List[dict]
    rpe: Optional[float] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
