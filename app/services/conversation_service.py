import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.clock import MonotonicClock
from app.models import Conversation
from app.repositories.conversation_repository import ConversationRepository
from app.schemas.conversation import ConversationRead

from .exceptions import ConversationNotFoundError, StorageUnavailableError
from .subscription_manager import SubscriptionManager, sort_by_recent_activity

logger = logging.getLogger(__name__)


class ConversationService:
    """Conversation registry: one conversation per reservation."""

    def __init__(
        self,
        conversation_repository: ConversationRepository,
        subscription_manager: SubscriptionManager,
        clock: MonotonicClock,
    ):
        self.conv_repo = conversation_repository
        self.subscriptions = subscription_manager
        self.clock = clock
        self.session = conversation_repository.session

    async def get_or_create_conversation(
        self, user_id: str, restaurant_id: str, reservation_id: str
    ) -> UUID:
        """
        Returns the id of the reservation's conversation, creating it on first use.

        Repeated calls for the same reservation never create a second record:
        the reservation_id column is unique, and losing an insert race is
        treated as "already exists" and answered with the winner's id.
        """
        try:
            existing = await self.conv_repo.get_conversation_by_reservation_id(
                reservation_id
            )
        except SQLAlchemyError as e:
            logger.error(
                f"Database error looking up conversation for reservation {reservation_id}: {e}",
                exc_info=True,
            )
            raise StorageUnavailableError("Failed to look up the conversation.")
        if existing:
            return existing.id

        try:
            new_conversation = await self.conv_repo.create_conversation(
                user_id=user_id,
                restaurant_id=restaurant_id,
                reservation_id=reservation_id,
                created_at=self.clock.now(),
            )
            conversation_id = new_conversation.id
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.info(
                f"Conversation for reservation {reservation_id} was created concurrently; re-fetching"
            )
            return await self._refetch_after_conflict(reservation_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error creating conversation: {e}", exc_info=True)
            raise StorageUnavailableError("Failed to create the conversation.")

        logger.info(
            f"Created conversation {conversation_id} for reservation {reservation_id}"
        )
        await self.subscriptions.publish_conversation_change(user_id)
        return conversation_id

    async def _refetch_after_conflict(self, reservation_id: str) -> UUID:
        try:
            existing = await self.conv_repo.get_conversation_by_reservation_id(
                reservation_id
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error re-fetching conversation: {e}", exc_info=True)
            raise StorageUnavailableError("Failed to look up the conversation.")
        if not existing:
            raise StorageUnavailableError(
                "Conversation creation conflicted but no conversation was found."
            )
        return existing.id

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        try:
            conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching conversation: {e}", exc_info=True)
            raise StorageUnavailableError("Failed to load the conversation.")
        if not conversation:
            raise ConversationNotFoundError(
                f"Conversation with id '{conversation_id}' not found."
            )
        return conversation

    async def list_user_conversations(self, user_id: str) -> list[ConversationRead]:
        """One-shot read of a user's conversations, most recently active first."""
        try:
            conversations = await self.conv_repo.list_user_conversations(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error listing conversations: {e}", exc_info=True)
            raise StorageUnavailableError("Failed to list conversations.")
        return sort_by_recent_activity(
            [ConversationRead.model_validate(c) for c in conversations]
        )

    async def close_conversation_for_reservation(self, reservation_id: str) -> Conversation:
        """
        Integration hook for the reservation collaborator: a completed or
        cancelled reservation closes its conversation. Closing is terminal
        and idempotent.
        """
        try:
            conversation = await self.conv_repo.get_conversation_by_reservation_id(
                reservation_id
            )
            if not conversation:
                raise ConversationNotFoundError(
                    f"No conversation for reservation '{reservation_id}'."
                )
            changed = await self.conv_repo.deactivate_conversation(conversation)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error closing conversation: {e}", exc_info=True)
            raise StorageUnavailableError("Failed to close the conversation.")

        if changed:
            logger.info(
                f"Closed conversation {conversation.id} for reservation {reservation_id}"
            )
            await self.subscriptions.publish_conversation_change(conversation.user_id)
            await self.subscriptions.publish_message_change(conversation.id)
        return conversation
