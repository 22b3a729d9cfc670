import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.common import BaseRouter
from app.core.config import settings
from app.core.sse import stream
from app.logic.conversation_processing import (
    handle_get_conversation,
    handle_get_or_create_conversation,
    handle_get_transcript,
    handle_list_messages,
    handle_mark_messages_read,
    handle_send_message,
)
from app.logic.streaming import open_snapshot_stream
from app.schemas.conversation import (
    ConversationCreateRequest,
    ConversationIdResponse,
    ConversationRead,
)
from app.schemas.message import (
    MarkReadRequest,
    MarkReadResponse,
    MessageCreateRequest,
    MessageRead,
    TranscriptResponse,
)
from app.services.conversation_service import ConversationService
from app.services.dependencies import (
    get_conversation_service,
    get_message_service,
    get_subscription_manager,
)
from app.services.message_service import MessageService
from app.services.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)
conversations_router_instance = APIRouter()
router = BaseRouter(router=conversations_router_instance, default_tags=["conversations"])


@router.post("/conversations", response_model=ConversationIdResponse)
async def get_or_create_conversation(
    request_data: ConversationCreateRequest,
    conv_service: ConversationService = Depends(get_conversation_service),
):
    """Returns the reservation's conversation id, creating the conversation on first use."""
    conversation_id = await handle_get_or_create_conversation(
        request_data=request_data, conv_service=conv_service
    )
    return ConversationIdResponse(conversation_id=conversation_id)


@router.get("/conversations/{conversation_id}", response_model=ConversationRead)
async def get_conversation(
    conversation_id: UUID,
    conv_service: ConversationService = Depends(get_conversation_service),
):
    conversation = await handle_get_conversation(
        conversation_id=conversation_id, conv_service=conv_service
    )
    return ConversationRead.model_validate(conversation)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=list[MessageRead],
    tags=["messages"],
)
async def list_messages(
    conversation_id: UUID,
    msg_service: MessageService = Depends(get_message_service),
):
    return await handle_list_messages(
        conversation_id=conversation_id, msg_service=msg_service
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
    tags=["messages"],
)
async def send_message(
    conversation_id: UUID,
    request_data: MessageCreateRequest,
    conv_service: ConversationService = Depends(get_conversation_service),
    msg_service: MessageService = Depends(get_message_service),
):
    """Sends a message; closed conversations answer 409 and nothing is stored."""
    return await handle_send_message(
        conversation_id=conversation_id,
        request_data=request_data,
        conv_service=conv_service,
        msg_service=msg_service,
    )


@router.post(
    "/conversations/{conversation_id}/messages/read",
    response_model=MarkReadResponse,
    tags=["messages"],
)
async def mark_messages_read(
    conversation_id: UUID,
    request_data: MarkReadRequest,
    msg_service: MessageService = Depends(get_message_service),
):
    updated = await handle_mark_messages_read(
        conversation_id=conversation_id,
        request_data=request_data,
        msg_service=msg_service,
    )
    return MarkReadResponse(updated=updated)


@router.get("/conversations/{conversation_id}/messages/stream", tags=["messages"])
async def stream_messages(
    conversation_id: UUID,
    conv_service: ConversationService = Depends(get_conversation_service),
    subscriptions: SubscriptionManager = Depends(get_subscription_manager),
):
    """Server-sent snapshots of the conversation's ordered messages."""
    await handle_get_conversation(
        conversation_id=conversation_id, conv_service=conv_service
    )
    events = await open_snapshot_stream(
        lambda on_update: subscriptions.subscribe_messages(conversation_id, on_update),
        keepalive_seconds=settings.SSE_KEEPALIVE_SECONDS,
    )
    return stream(events)


@router.get(
    "/conversations/{conversation_id}/transcript", response_model=TranscriptResponse
)
async def get_transcript(
    conversation_id: UUID,
    viewer_id: str | None = Query(default=None),
    tz: str | None = Query(default=None),
    conv_service: ConversationService = Depends(get_conversation_service),
    msg_service: MessageService = Depends(get_message_service),
):
    return await handle_get_transcript(
        conversation_id=conversation_id,
        viewer_id=viewer_id,
        tz_name=tz,
        conv_service=conv_service,
        msg_service=msg_service,
    )
