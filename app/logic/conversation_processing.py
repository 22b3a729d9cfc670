import logging
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Logic related to processing conversation actions, decoupled from API routes.
# This helps in testing the core business logic independently.
from app.core.config import settings
from app.models import Conversation
from app.schemas.conversation import (
    ConversationCreateRequest,
    ConversationRead,
    EnrichedConversation,
)
from app.schemas.message import (
    MarkReadRequest,
    MessageCreateRequest,
    MessageRead,
    TranscriptResponse,
)
from app.services.conversation_service import ConversationService
from app.services.enrichment_service import EnrichmentService
from app.services.exceptions import (
    ConversationClosedError,
    EmptyMessageError,
    InvalidTimezoneError,
    ServiceError,
)
from app.services.lifecycle import ensure_conversation_open
from app.services.message_service import MessageService
from app.services.transcript import build_transcript

logger = logging.getLogger(__name__)


def resolve_timezone(tz_name: str | None) -> ZoneInfo:
    name = tz_name or settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidTimezoneError(f"Unknown time zone '{name}'.")


async def handle_get_or_create_conversation(
    request_data: ConversationCreateRequest,
    conv_service: ConversationService,
) -> UUID:
    """Handles the 'message this reservation' action."""
    return await conv_service.get_or_create_conversation(
        user_id=request_data.user_id,
        restaurant_id=request_data.restaurant_id,
        reservation_id=request_data.reservation_id,
    )


async def handle_get_conversation(
    conversation_id: UUID,
    conv_service: ConversationService,
) -> Conversation:
    return await conv_service.get_conversation(conversation_id)


async def handle_send_message(
    conversation_id: UUID,
    request_data: MessageCreateRequest,
    conv_service: ConversationService,
    msg_service: MessageService,
) -> MessageRead:
    """
    Handles a send from a chat composer.

    Blank text is rejected first, then the lifecycle gate runs; a closed
    conversation never reaches the message store.

    Raises:
        EmptyMessageError: If the text is blank after trimming.
        ConversationNotFoundError: If the conversation does not exist.
        ConversationClosedError: If the conversation is no longer active.
        StorageUnavailableError: If the read or the write cannot complete.
    """
    if not request_data.text.strip():
        raise EmptyMessageError()

    try:
        conversation = await conv_service.get_conversation(conversation_id)
        ensure_conversation_open(conversation)
        return await msg_service.send_message(
            conversation_id=conversation_id,
            sender_id=request_data.sender_id,
            sender_role=request_data.sender_role,
            text=request_data.text,
        )
    except ConversationClosedError as e:
        logger.info(f"Handler: Send rejected for {conversation_id}: {e}")
        raise
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in handle_send_message: {e}", exc_info=True)
        raise ServiceError("An unexpected error occurred while sending the message.")


async def handle_mark_messages_read(
    conversation_id: UUID,
    request_data: MarkReadRequest,
    msg_service: MessageService,
) -> int:
    return await msg_service.mark_messages_as_read(
        conversation_id, request_data.message_ids
    )


async def handle_list_messages(
    conversation_id: UUID,
    msg_service: MessageService,
) -> list[MessageRead]:
    return await msg_service.list_messages(conversation_id)


async def handle_get_transcript(
    conversation_id: UUID,
    viewer_id: str | None,
    tz_name: str | None,
    conv_service: ConversationService,
    msg_service: MessageService,
) -> TranscriptResponse:
    """Builds the date-grouped transcript as seen by ``viewer_id`` in ``tz_name``."""
    tz = resolve_timezone(tz_name)
    conversation = await conv_service.get_conversation(conversation_id)
    messages = await msg_service.list_messages(conversation_id)
    return build_transcript(
        conversation_id=conversation.id,
        is_active=bool(conversation.is_active),
        messages=messages,
        viewer_id=viewer_id,
        tz=tz,
    )


async def handle_list_user_conversations(
    user_id: str,
    tz_name: str | None,
    conv_service: ConversationService,
    enrichment_service: EnrichmentService,
) -> list[EnrichedConversation]:
    """Lists a user's conversations, most recent first, with display details."""
    tz = resolve_timezone(tz_name)
    conversations: list[ConversationRead] = await conv_service.list_user_conversations(
        user_id
    )
    return await enrichment_service.enrich(conversations, user_id, tz=tz)


async def handle_close_reservation_conversation(
    reservation_id: str,
    conv_service: ConversationService,
) -> Conversation:
    logger.info(f"Handler: Reservation {reservation_id} ended; closing its conversation")
    return await conv_service.close_conversation_for_reservation(reservation_id)
