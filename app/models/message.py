from sqlalchemy import Boolean, Column, Enum as SQLAlchemyEnum, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import false
from sqlalchemy.types import Uuid

from app.schemas.message import SenderRole

from .base import BaseModel


class Message(BaseModel):
    __tablename__ = "messages"

    # id, created_at are inherited from BaseModel; created_at is always set
    # explicitly from the server clock so it can serve as the ordering key.
    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False
    )
    sender_id = Column(Text, nullable=False)
    sender_role = Column(SQLAlchemyEnum(SenderRole), nullable=False)
    text = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, server_default=false())

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )
