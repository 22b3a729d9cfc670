import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.clock import ensure_utc


class SenderRole(str, enum.Enum):
    USER = "USER"
    RESTAURANT = "RESTAURANT"
    ADMIN = "ADMIN"


class MessageCreateRequest(BaseModel):
    sender_id: str = Field(min_length=1)
    sender_role: SenderRole
    # Blank text is rejected by the service, not here, so it maps to EmptyMessageError
    text: str


class MarkReadRequest(BaseModel):
    message_ids: list[uuid.UUID]


class MarkReadResponse(BaseModel):
    updated: int


class MessageRead(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: str
    sender_role: SenderRole
    text: str
    created_at: datetime
    is_read: bool

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TranscriptEntry(BaseModel):
    message: MessageRead
    is_own: bool
    time_label: str


class TranscriptGroup(BaseModel):
    label: str
    entries: list[TranscriptEntry]


class TranscriptResponse(BaseModel):
    conversation_id: uuid.UUID
    is_active: bool
    groups: list[TranscriptGroup]
    placeholder: str | None = None
