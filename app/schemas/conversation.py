import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.clock import ensure_utc


class ConversationType(str, enum.Enum):
    RESERVATION = "reservation"


class ParticipantRole(str, enum.Enum):
    USER = "user"
    RESTAURANT = "restaurant"


class Participants(BaseModel):
    user_id: str
    restaurant_id: str

    model_config = ConfigDict(frozen=True)


# Request body for getOrCreateConversation
class ConversationCreateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    restaurant_id: str = Field(min_length=1)
    reservation_id: str = Field(min_length=1)


class ConversationIdResponse(BaseModel):
    conversation_id: UUID


class ConversationRead(BaseModel):
    id: UUID
    type: ConversationType
    reservation_id: str
    participants: Participants
    participant_roles: dict[str, ParticipantRole]
    last_message: str = ""
    last_message_at: datetime
    created_at: datetime
    is_active: bool

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("last_message_at", "created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# Read-side projection; never persisted
class EnrichedConversation(ConversationRead):
    # "Just now", "5m ago", ... as shown in the conversations list
    last_message_age: str | None = None
    restaurant_name: str | None = None
    restaurant_image: str | None = None
    reservation_date: str | None = None
    reservation_time: str | None = None
