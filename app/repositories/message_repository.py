import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Message
from app.repositories.base import BaseRepository
from app.schemas.message import SenderRole


class MessageRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def create_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: str,
        sender_role: SenderRole,
        text: str,
        created_at: datetime,
    ) -> Message:
        """Creates and adds a new unread message to the session."""
        new_message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            sender_role=sender_role,
            text=text,
            created_at=created_at,
            is_read=False,
        )
        self.session.add(new_message)
        await self.session.flush()
        return new_message

    async def get_messages_by_conversation(
        self, conversation_id: uuid.UUID
    ) -> list[Message]:
        """Retrieves all messages for a given conversation, ordered by creation time."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_messages_read(
        self, conversation_id: uuid.UUID, message_ids: Iterable[uuid.UUID]
    ) -> int:
        """Flips unread messages to read. Returns the number of rows changed."""
        ids = list(message_ids)
        if not ids:
            return 0
        stmt = (
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.id.in_(ids),
                Message.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
