import asyncio
import logging
from datetime import datetime, timezone, tzinfo
from typing import Sequence

from app.schemas.conversation import ConversationRead, EnrichedConversation

from .collaborators import (
    Reservation,
    ReservationStore,
    Restaurant,
    RestaurantDirectory,
)
from .exceptions import CollaboratorError, EnrichmentDegraded
from .transcript import format_relative_timestamp

logger = logging.getLogger(__name__)

UNKNOWN_RESTAURANT = "Unknown Restaurant"


class EnrichmentService:
    """
    Joins conversations with reservation and restaurant read models for display.

    Purely a read-side projection: nothing is written back. A failed lookup
    degrades only the conversations that needed it.
    """

    def __init__(
        self,
        reservation_store: ReservationStore,
        restaurant_directory: RestaurantDirectory,
    ):
        self.reservations = reservation_store
        self.restaurants = restaurant_directory

    async def enrich(
        self,
        conversations: Sequence[ConversationRead],
        user_id: str,
        *,
        now: datetime | None = None,
        tz: tzinfo | None = None,
    ) -> list[EnrichedConversation]:
        """
        Adds restaurant and reservation display fields plus a list-style
        ``last_message_age`` label, computed against one ``now`` for the batch.
        """
        if not conversations:
            return []
        now = now or datetime.now(timezone.utc)

        reservations = await self._prefetch_reservations(user_id)
        restaurant_ids = {c.participants.restaurant_id for c in conversations}
        fetched = await asyncio.gather(
            *(self._fetch_restaurant(rid) for rid in restaurant_ids)
        )
        restaurants = dict(zip(restaurant_ids, fetched))

        return list(
            await asyncio.gather(
                *(
                    self._enrich_one(
                        conversation, reservations, restaurants, now, tz
                    )
                    for conversation in conversations
                )
            )
        )

    async def _prefetch_reservations(self, user_id: str) -> dict[str, Reservation]:
        try:
            return {
                r.id: r
                for r in await self.reservations.list_reservations_for_user(user_id)
            }
        except CollaboratorError as e:
            logger.warning(
                f"Could not prefetch reservations for user {user_id}, falling back to single lookups: {e}"
            )
            return {}

    async def _fetch_restaurant(
        self, restaurant_id: str
    ) -> Restaurant | CollaboratorError | None:
        try:
            return await self.restaurants.get_restaurant(restaurant_id)
        except CollaboratorError as e:
            return e

    async def _lookup(
        self,
        conversation: ConversationRead,
        reservations: dict[str, Reservation],
        restaurants: dict[str, Restaurant | CollaboratorError | None],
    ) -> tuple[Reservation | None, Restaurant | None]:
        try:
            reservation = reservations.get(conversation.reservation_id)
            if reservation is None:
                reservation = await self.reservations.get_reservation(
                    conversation.reservation_id
                )
            restaurant = restaurants.get(conversation.participants.restaurant_id)
            if isinstance(restaurant, CollaboratorError):
                raise restaurant
        except CollaboratorError as e:
            raise EnrichmentDegraded(
                f"Conversation {conversation.id} shown without display details: {e.message}"
            ) from e
        return reservation, restaurant

    async def _enrich_one(
        self,
        conversation: ConversationRead,
        reservations: dict[str, Reservation],
        restaurants: dict[str, Restaurant | CollaboratorError | None],
        now: datetime,
        tz: tzinfo | None,
    ) -> EnrichedConversation:
        age = format_relative_timestamp(conversation.last_message_at, now=now, tz=tz)
        try:
            reservation, restaurant = await self._lookup(
                conversation, reservations, restaurants
            )
        except EnrichmentDegraded as e:
            logger.warning(e.message)
            return EnrichedConversation(
                **conversation.model_dump(), last_message_age=age
            )

        return EnrichedConversation(
            **conversation.model_dump(),
            last_message_age=age,
            restaurant_name=(
                (restaurant.name if restaurant else None)
                or (reservation.restaurant_name if reservation else None)
                or UNKNOWN_RESTAURANT
            ),
            restaurant_image=(
                (restaurant.images[0] if restaurant and restaurant.images else None)
                or (reservation.restaurant_image if reservation else None)
            ),
            reservation_date=reservation.date if reservation else None,
            reservation_time=reservation.time if reservation else None,
        )
