import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import MonotonicClock
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.schemas.message import MessageRead, SenderRole

from .exceptions import (
    ConversationNotFoundError,
    EmptyMessageError,
    StorageUnavailableError,
)
from .subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)


class MessageService:
    """
    Message store adapter: the only writer of conversation messages.

    The conversation's lifecycle flag is deliberately not consulted here;
    send paths run the lifecycle gate before calling ``send_message``.
    """

    def __init__(
        self,
        message_repository: MessageRepository,
        conversation_repository: ConversationRepository,
        subscription_manager: SubscriptionManager,
        clock: MonotonicClock,
    ):
        self.msg_repo = message_repository
        self.conv_repo = conversation_repository
        self.subscriptions = subscription_manager
        self.clock = clock
        self.session = message_repository.session

    async def send_message(
        self,
        conversation_id: UUID,
        sender_id: str,
        sender_role: SenderRole,
        text: str,
    ) -> MessageRead:
        """
        Appends a message and refreshes the conversation's last-message cache
        in one transaction, then notifies live subscribers.
        """
        text = (text or "").strip()
        if not text:
            raise EmptyMessageError()

        try:
            conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
            if not conversation:
                raise ConversationNotFoundError(
                    f"Conversation with id '{conversation_id}' not found."
                )
            user_id = conversation.user_id

            sent_at = self.clock.now()
            message = await self.msg_repo.create_message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                sender_role=sender_role,
                text=text,
                created_at=sent_at,
            )
            await self.conv_repo.update_last_message(conversation_id, text, sent_at)
            sent = MessageRead.model_validate(message)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Database error sending message to {conversation_id}: {e}",
                exc_info=True,
            )
            raise StorageUnavailableError("Failed to send the message.")

        logger.info(f"Message {sent.id} stored in conversation {conversation_id}")
        await self.subscriptions.publish_message_change(conversation_id)
        await self.subscriptions.publish_conversation_change(user_id)
        return sent

    async def mark_messages_as_read(
        self, conversation_id: UUID, message_ids: Sequence[UUID]
    ) -> int:
        """Marks messages read. Already-read or unknown ids are no-ops."""
        if not message_ids:
            return 0
        try:
            changed = await self.msg_repo.mark_messages_read(
                conversation_id, message_ids
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Database error marking messages read in {conversation_id}: {e}",
                exc_info=True,
            )
            raise StorageUnavailableError("Failed to mark messages as read.")

        if changed:
            logger.debug(f"Marked {changed} message(s) read in {conversation_id}")
            await self.subscriptions.publish_message_change(conversation_id)
        return changed

    async def list_messages(self, conversation_id: UUID) -> list[MessageRead]:
        """One-shot ordered read of a conversation's messages."""
        try:
            conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
            if not conversation:
                raise ConversationNotFoundError(
                    f"Conversation with id '{conversation_id}' not found."
                )
            messages = await self.msg_repo.get_messages_by_conversation(
                conversation_id
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error listing messages: {e}", exc_info=True)
            raise StorageUnavailableError("Failed to load messages.")
        return [MessageRead.model_validate(m) for m in messages]
