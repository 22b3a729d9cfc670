from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Conversation
from app.schemas.conversation import ConversationType

from .base import BaseRepository


class ConversationRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_conversation_by_id(
        self, conversation_id: UUID
    ) -> Conversation | None:
        """Retrieves a specific conversation by its ID."""
        stmt = select(Conversation).filter(Conversation.id == conversation_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_conversation_by_reservation_id(
        self, reservation_id: str
    ) -> Conversation | None:
        """Retrieves the conversation linked to a reservation, if any."""
        stmt = select(Conversation).filter(
            Conversation.reservation_id == reservation_id
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_conversation(
        self,
        user_id: str,
        restaurant_id: str,
        reservation_id: str,
        created_at: datetime,
    ) -> Conversation:
        """Adds a new active conversation for a reservation. Does not commit."""
        new_conversation = Conversation(
            type=ConversationType.RESERVATION,
            reservation_id=reservation_id,
            user_id=user_id,
            restaurant_id=restaurant_id,
            last_message="",
            last_message_at=created_at,
            created_at=created_at,
            is_active=True,
        )
        self.session.add(new_conversation)
        await self.session.flush()
        return new_conversation

    async def list_user_conversations(self, user_id: str) -> Sequence[Conversation]:
        """Lists conversations where the user is the guest participant (unordered)."""
        stmt = select(Conversation).filter(Conversation.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def update_last_message(
        self, conversation_id: UUID, text: str, sent_at: datetime
    ) -> bool:
        """
        Updates the denormalized last-message cache.

        Only applies when ``sent_at`` is not older than the cached value, so
        last_message_at never moves backwards. Returns whether a row changed.
        """
        stmt = (
            update(Conversation)
            .where(
                Conversation.id == conversation_id,
                Conversation.last_message_at <= sent_at,
            )
            .values(last_message=text, last_message_at=sent_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def deactivate_conversation(self, conversation: Conversation) -> bool:
        """Closes a conversation. Returns False if it was already closed."""
        if not conversation.is_active:
            return False
        conversation.is_active = False
        self.session.add(conversation)
        await self.session.flush()
        return True
