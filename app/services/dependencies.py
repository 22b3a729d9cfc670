from fastapi import Depends

from app.core.clock import server_clock
from app.core.config import settings
from app.db import async_session_maker
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.dependencies import (
    get_conversation_repository,
    get_message_repository,
)
from app.repositories.message_repository import MessageRepository

from .collaborators import HttpReservationStore, HttpRestaurantDirectory
from .conversation_service import ConversationService
from .enrichment_service import EnrichmentService
from .message_service import MessageService
from .provider import ServiceProvider
from .subscription_manager import SubscriptionManager


def get_subscription_manager() -> SubscriptionManager:
    """Provides the process-wide SubscriptionManager."""
    return ServiceProvider.get_service(
        SubscriptionManager, session_factory=async_session_maker
    )


def get_enrichment_service() -> EnrichmentService:
    """Provides the EnrichmentService wired to the HTTP collaborators."""
    timeout = settings.COLLABORATOR_TIMEOUT_SECONDS
    return ServiceProvider.get_service(
        EnrichmentService,
        reservation_store=HttpReservationStore(
            settings.RESERVATION_SERVICE_URL, timeout
        ),
        restaurant_directory=HttpRestaurantDirectory(
            settings.RESTAURANT_SERVICE_URL, timeout
        ),
    )


def get_conversation_service(
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    subscriptions: SubscriptionManager = Depends(get_subscription_manager),
) -> ConversationService:
    """Provides an instance of the ConversationService with its dependencies."""
    return ConversationService(
        conversation_repository=conv_repo,
        subscription_manager=subscriptions,
        clock=server_clock,
    )


def get_message_service(
    msg_repo: MessageRepository = Depends(get_message_repository),
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    subscriptions: SubscriptionManager = Depends(get_subscription_manager),
) -> MessageService:
    """Provides an instance of the MessageService."""
    return MessageService(
        message_repository=msg_repo,
        conversation_repository=conv_repo,
        subscription_manager=subscriptions,
        clock=server_clock,
    )
