import logging

from fastapi import APIRouter, Depends, Query

from app.api.common import BaseRouter
from app.core.config import settings
from app.core.sse import stream
from app.logic.conversation_processing import (
    handle_list_user_conversations,
    resolve_timezone,
)
from app.logic.streaming import enriching_transform, open_snapshot_stream
from app.schemas.conversation import EnrichedConversation
from app.services.conversation_service import ConversationService
from app.services.dependencies import (
    get_conversation_service,
    get_enrichment_service,
    get_subscription_manager,
)
from app.services.enrichment_service import EnrichmentService
from app.services.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)
users_api_router = APIRouter(prefix="/users")
router = BaseRouter(router=users_api_router, default_tags=["users"])


@router.get("/{user_id}/conversations", response_model=list[EnrichedConversation])
async def list_user_conversations(
    user_id: str,
    tz: str | None = Query(default=None),
    conv_service: ConversationService = Depends(get_conversation_service),
    enrichment_service: EnrichmentService = Depends(get_enrichment_service),
):
    """The user's conversations, most recently active first, with restaurant details."""
    return await handle_list_user_conversations(
        user_id=user_id,
        tz_name=tz,
        conv_service=conv_service,
        enrichment_service=enrichment_service,
    )


@router.get("/{user_id}/conversations/stream")
async def stream_user_conversations(
    user_id: str,
    tz: str | None = Query(default=None),
    subscriptions: SubscriptionManager = Depends(get_subscription_manager),
    enrichment_service: EnrichmentService = Depends(get_enrichment_service),
):
    viewer_tz = resolve_timezone(tz)
    events = await open_snapshot_stream(
        lambda on_update: subscriptions.subscribe_conversations(user_id, on_update),
        keepalive_seconds=settings.SSE_KEEPALIVE_SECONDS,
        transform=enriching_transform(enrichment_service, user_id, viewer_tz),
    )
    return stream(events)
