from sqlalchemy import Boolean, Column, DateTime, Enum as SQLAlchemyEnum, Index, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import true

from app.schemas.conversation import ConversationType, ParticipantRole

from .base import BaseModel


class Conversation(BaseModel):
    __tablename__ = "conversations"

    # id, created_at, updated_at are inherited from BaseModel
    type = Column(
        SQLAlchemyEnum(ConversationType),
        nullable=False,
        default=ConversationType.RESERVATION,
    )
    reservation_id = Column(Text, unique=True, nullable=False)
    user_id = Column(Text, nullable=False)
    restaurant_id = Column(Text, nullable=False)
    last_message = Column(Text, nullable=False, default="")
    last_message_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
    )

    __table_args__ = (Index("ix_conversations_user_id", "user_id"),)

    @property
    def participants(self) -> dict[str, str]:
        return {"user_id": self.user_id, "restaurant_id": self.restaurant_id}

    @property
    def participant_roles(self) -> dict[str, ParticipantRole]:
        return {
            self.user_id: ParticipantRole.USER,
            self.restaurant_id: ParticipantRole.RESTAURANT,
        }
