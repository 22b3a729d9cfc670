import logging

from fastapi import APIRouter, Depends

from app.api.common import BaseRouter
from app.logic.conversation_processing import handle_close_reservation_conversation
from app.schemas.conversation import ConversationRead
from app.services.conversation_service import ConversationService
from app.services.dependencies import get_conversation_service

logger = logging.getLogger(__name__)
reservations_api_router = APIRouter(prefix="/reservations")
router = BaseRouter(router=reservations_api_router, default_tags=["reservations"])


@router.post("/{reservation_id}/close", response_model=ConversationRead)
async def close_reservation_conversation(
    reservation_id: str,
    conv_service: ConversationService = Depends(get_conversation_service),
):
    """
    Called by the reservation system when a reservation completes or is
    cancelled. Closing is idempotent; later sends to the conversation get 409.
    """
    conversation = await handle_close_reservation_conversation(
        reservation_id=reservation_id, conv_service=conv_service
    )
    return ConversationRead.model_validate(conversation)
