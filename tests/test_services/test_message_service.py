# Tests for the message store adapter
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import ensure_utc
from app.models import Conversation, Message
from app.schemas.message import SenderRole
from app.services.conversation_service import ConversationService
from app.services.exceptions import ConversationNotFoundError, EmptyMessageError
from app.services.message_service import MessageService
from app.services.subscription_manager import SubscriptionManager

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def conversation_id(conversation_service: ConversationService) -> uuid.UUID:
    return await conversation_service.get_or_create_conversation(
        user_id="user-1", restaurant_id="resto-1", reservation_id="res-1"
    )


async def test_send_message_round_trip_through_subscription(
    message_service: MessageService,
    subscription_manager: SubscriptionManager,
    conversation_id: uuid.UUID,
):
    snapshots = []
    unsubscribe = await subscription_manager.subscribe_messages(
        conversation_id, snapshots.append
    )

    await message_service.send_message(
        conversation_id, "user-1", SenderRole.USER, "hello"
    )
    unsubscribe()

    assert snapshots[0] == []
    latest = snapshots[-1]
    assert len(latest) == 1
    assert latest[0].text == "hello"
    assert latest[0].sender_role == SenderRole.USER
    assert latest[0].is_read is False


async def test_send_message_trims_text(
    message_service: MessageService, conversation_id: uuid.UUID
):
    sent = await message_service.send_message(
        conversation_id, "user-1", SenderRole.USER, "  see you at 8  "
    )
    assert sent.text == "see you at 8"


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_send_message_rejects_blank_text_without_writing(
    message_service: MessageService,
    conversation_id: uuid.UUID,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    text: str,
):
    with pytest.raises(EmptyMessageError):
        await message_service.send_message(
            conversation_id, "user-1", SenderRole.USER, text
        )

    async with db_test_session_manager() as session:
        rows = (await session.execute(select(Message))).scalars().all()
    assert rows == []


async def test_send_message_unknown_conversation(message_service: MessageService):
    with pytest.raises(ConversationNotFoundError):
        await message_service.send_message(
            uuid.uuid4(), "user-1", SenderRole.USER, "hello"
        )


async def test_messages_are_listed_in_send_order(
    message_service: MessageService, conversation_id: uuid.UUID
):
    for text in ["one", "two", "three"]:
        await message_service.send_message(
            conversation_id, "user-1", SenderRole.USER, text
        )
    await message_service.send_message(
        conversation_id, "resto-1", SenderRole.RESTAURANT, "four"
    )

    messages = await message_service.list_messages(conversation_id)

    assert [m.text for m in messages] == ["one", "two", "three", "four"]
    timestamps = [m.created_at for m in messages]
    assert timestamps == sorted(timestamps)
    assert len(set(timestamps)) == len(timestamps)


async def test_send_message_updates_last_message_cache(
    message_service: MessageService,
    conversation_id: uuid.UUID,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    sent = await message_service.send_message(
        conversation_id, "resto-1", SenderRole.RESTAURANT, "Table is ready"
    )

    async with db_test_session_manager() as session:
        conversation = await session.get(Conversation, conversation_id)
    assert conversation.last_message == "Table is ready"
    assert ensure_utc(conversation.last_message_at) == sent.created_at


async def test_last_message_cache_never_moves_backwards(
    message_service: MessageService,
    conversation_id: uuid.UUID,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    sent = await message_service.send_message(
        conversation_id, "user-1", SenderRole.USER, "latest"
    )

    changed = await message_service.conv_repo.update_last_message(
        conversation_id, "stale", sent.created_at - timedelta(seconds=5)
    )
    await message_service.session.commit()

    assert changed is False
    async with db_test_session_manager() as session:
        conversation = await session.get(Conversation, conversation_id)
    assert conversation.last_message == "latest"


async def test_mark_messages_as_read_is_idempotent(
    message_service: MessageService,
    subscription_manager: SubscriptionManager,
    conversation_id: uuid.UUID,
):
    first = await message_service.send_message(
        conversation_id, "resto-1", SenderRole.RESTAURANT, "Confirmed"
    )
    second = await message_service.send_message(
        conversation_id, "resto-1", SenderRole.RESTAURANT, "See you"
    )

    snapshots = []
    unsubscribe = await subscription_manager.subscribe_messages(
        conversation_id, snapshots.append
    )
    changed = await message_service.mark_messages_as_read(
        conversation_id, [first.id]
    )
    changed_again = await message_service.mark_messages_as_read(
        conversation_id, [first.id, uuid.uuid4()]
    )
    unsubscribe()

    assert changed == 1
    assert changed_again == 0
    # initial snapshot plus one push for the single real change
    assert len(snapshots) == 2
    read_flags = {m.id: m.is_read for m in snapshots[-1]}
    assert read_flags == {first.id: True, second.id: False}


async def test_mark_messages_as_read_empty_list(
    message_service: MessageService, conversation_id: uuid.UUID
):
    assert await message_service.mark_messages_as_read(conversation_id, []) == 0
