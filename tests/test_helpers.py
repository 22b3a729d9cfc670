import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Conversation, Message
from app.schemas.conversation import ConversationType
from app.schemas.message import SenderRole
from app.services.collaborators import Reservation, Restaurant
from app.services.exceptions import CollaboratorError


def create_test_conversation(
    id: Optional[UUID] = None,
    user_id: str = "user-1",
    restaurant_id: str = "resto-1",
    reservation_id: Optional[str] = None,
    last_message: str = "",
    last_message_at: Optional[datetime] = None,
    is_active: bool = True,
) -> Conversation:
    """Creates a Conversation instance with default values for testing."""
    now = last_message_at or datetime.now(timezone.utc)
    return Conversation(
        id=id or uuid.uuid4(),
        type=ConversationType.RESERVATION,
        reservation_id=reservation_id or f"res-{uuid.uuid4()}",
        user_id=user_id,
        restaurant_id=restaurant_id,
        last_message=last_message,
        last_message_at=now,
        created_at=now,
        is_active=is_active,
    )


def create_test_message(
    conversation_id: UUID,
    text: str = "hello",
    sender_id: str = "user-1",
    sender_role: SenderRole = SenderRole.USER,
    created_at: Optional[datetime] = None,
    is_read: bool = False,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        sender_role=sender_role,
        text=text,
        created_at=created_at or datetime.now(timezone.utc),
        is_read=is_read,
    )


async def persist(session: AsyncSession, *objects) -> None:
    async with session.begin():
        session.add_all(objects)


class FakeReservationStore:
    """In-memory ReservationStore; ``fail`` makes every call raise."""

    def __init__(self):
        self.reservations: dict[str, Reservation] = {}
        self.fail = False
        self.fail_list = False
        self.single_lookups: list[str] = []

    def add(self, reservation: Reservation) -> None:
        self.reservations[reservation.id] = reservation

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        self.single_lookups.append(reservation_id)
        if self.fail:
            raise CollaboratorError("reservation store down")
        return self.reservations.get(reservation_id)

    async def list_reservations_for_user(self, user_id: str) -> list[Reservation]:
        if self.fail or self.fail_list:
            raise CollaboratorError("reservation store down")
        return list(self.reservations.values())


class FakeRestaurantDirectory:
    def __init__(self):
        self.restaurants: dict[str, Restaurant] = {}
        self.failing_ids: set[str] = set()
        self.lookups: list[str] = []

    def add(self, restaurant: Restaurant) -> None:
        self.restaurants[restaurant.id] = restaurant

    async def get_restaurant(self, restaurant_id: str) -> Restaurant | None:
        self.lookups.append(restaurant_id)
        if restaurant_id in self.failing_ids:
            raise CollaboratorError("restaurant directory down")
        return self.restaurants.get(restaurant_id)
