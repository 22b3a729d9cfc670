# Tests for the conversation and message routes
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import Message

pytestmark = pytest.mark.asyncio

CREATE_PAYLOAD = {
    "user_id": "user-1",
    "restaurant_id": "resto-1",
    "reservation_id": "res-1",
}


async def create_conversation(client: AsyncClient, **overrides) -> str:
    response = await client.post("/conversations", json={**CREATE_PAYLOAD, **overrides})
    assert response.status_code == 200
    return response.json()["conversation_id"]


async def send(client: AsyncClient, conversation_id: str, text: str, sender_id="user-1", role="USER"):
    return await client.post(
        f"/conversations/{conversation_id}/messages",
        json={"sender_id": sender_id, "sender_role": role, "text": text},
    )


async def test_get_or_create_conversation_is_idempotent(test_client: AsyncClient):
    first = await create_conversation(test_client)
    second = await create_conversation(test_client)

    assert first == second


async def test_get_or_create_conversation_validates_ids(test_client: AsyncClient):
    response = await test_client.post(
        "/conversations", json={**CREATE_PAYLOAD, "reservation_id": ""}
    )
    assert response.status_code == 422


async def test_get_conversation(test_client: AsyncClient):
    conversation_id = await create_conversation(test_client)

    response = await test_client.get(f"/conversations/{conversation_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == conversation_id
    assert body["type"] == "reservation"
    assert body["is_active"] is True
    assert body["last_message"] == ""
    assert body["participants"] == {"user_id": "user-1", "restaurant_id": "resto-1"}
    assert body["participant_roles"] == {"user-1": "user", "resto-1": "restaurant"}


async def test_get_conversation_not_found(test_client: AsyncClient):
    response = await test_client.get(f"/conversations/{uuid.uuid4()}")
    assert response.status_code == 404


async def test_send_and_list_messages(test_client: AsyncClient):
    conversation_id = await create_conversation(test_client)

    response = await send(test_client, conversation_id, "  Running 10 minutes late  ")
    assert response.status_code == 201
    sent = response.json()
    assert sent["text"] == "Running 10 minutes late"
    assert sent["is_read"] is False

    await send(test_client, conversation_id, "No problem", sender_id="resto-1", role="RESTAURANT")

    listed = (await test_client.get(f"/conversations/{conversation_id}/messages")).json()
    assert [m["text"] for m in listed] == ["Running 10 minutes late", "No problem"]
    assert [m["sender_role"] for m in listed] == ["USER", "RESTAURANT"]

    conversation = (await test_client.get(f"/conversations/{conversation_id}")).json()
    assert conversation["last_message"] == "No problem"


async def test_send_blank_message_rejected(test_client: AsyncClient):
    conversation_id = await create_conversation(test_client)

    response = await send(test_client, conversation_id, "   ")

    assert response.status_code == 422


async def test_send_to_unknown_conversation(test_client: AsyncClient):
    response = await send(test_client, str(uuid.uuid4()), "hello")
    assert response.status_code == 404


async def test_send_after_reservation_closed_is_rejected(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    conversation_id = await create_conversation(test_client)

    close = await test_client.post("/reservations/res-1/close")
    assert close.status_code == 200
    assert close.json()["is_active"] is False

    response = await send(test_client, conversation_id, "hello?")

    assert response.status_code == 409
    async with db_test_session_manager() as session:
        count = (
            await session.execute(select(func.count()).select_from(Message))
        ).scalar_one()
    assert count == 0


async def test_close_unknown_reservation(test_client: AsyncClient):
    response = await test_client.post("/reservations/nope/close")
    assert response.status_code == 404


async def test_mark_messages_read(test_client: AsyncClient):
    conversation_id = await create_conversation(test_client)
    message = (await send(test_client, conversation_id, "Table for two", "resto-1", "RESTAURANT")).json()

    response = await test_client.post(
        f"/conversations/{conversation_id}/messages/read",
        json={"message_ids": [message["id"]]},
    )
    again = await test_client.post(
        f"/conversations/{conversation_id}/messages/read",
        json={"message_ids": [message["id"]]},
    )

    assert response.json() == {"updated": 1}
    assert again.json() == {"updated": 0}
    listed = (await test_client.get(f"/conversations/{conversation_id}/messages")).json()
    assert listed[0]["is_read"] is True


async def test_transcript(test_client: AsyncClient):
    conversation_id = await create_conversation(test_client)

    empty = (await test_client.get(f"/conversations/{conversation_id}/transcript")).json()
    assert empty["groups"] == []
    assert empty["placeholder"] == "No messages yet"

    await send(test_client, conversation_id, "mine")
    await send(test_client, conversation_id, "theirs", "resto-1", "RESTAURANT")

    response = await test_client.get(
        f"/conversations/{conversation_id}/transcript",
        params={"viewer_id": "user-1", "tz": "Europe/Paris"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["placeholder"] is None
    assert len(body["groups"]) == 1
    assert body["groups"][0]["label"] == "Today"
    entries = body["groups"][0]["entries"]
    assert [(e["message"]["text"], e["is_own"]) for e in entries] == [
        ("mine", True),
        ("theirs", False),
    ]


async def test_transcript_unknown_time_zone(test_client: AsyncClient):
    conversation_id = await create_conversation(test_client)

    response = await test_client.get(
        f"/conversations/{conversation_id}/transcript", params={"tz": "Nowhere/Land"}
    )

    assert response.status_code == 400


async def test_message_stream_unknown_conversation(test_client: AsyncClient):
    response = await test_client.get(f"/conversations/{uuid.uuid4()}/messages/stream")
    assert response.status_code == 404


async def test_health(test_client: AsyncClient):
    response = await test_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
