import os
from typing import AsyncGenerator

# Settings are read at import time; tests never touch a real database.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SKIP_MIGRATIONS", "true")

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.clock import MonotonicClock
from app.db import get_db_session
from app.main import app
from app.models import metadata
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.services.conversation_service import ConversationService
from app.services.dependencies import (
    get_enrichment_service,
    get_subscription_manager,
)
from app.services.enrichment_service import EnrichmentService
from app.services.message_service import MessageService
from app.services.provider import ServiceProvider
from app.services.subscription_manager import SubscriptionManager
from test_helpers import FakeReservationStore, FakeRestaurantDirectory

# Use an in-memory SQLite database for testing. StaticPool keeps every
# session on the one connection so they all see the same database.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Master fixture: a fresh engine per test, created on the test's own event loop
@pytest.fixture(scope="function")
async def db_test_session_manager() -> (
    AsyncGenerator[async_sessionmaker[AsyncSession], None]
):
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(test_engine, expire_on_commit=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture(scope="function")
async def db_session(
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with db_test_session_manager() as session:
        yield session


@pytest.fixture(scope="function")
def subscription_manager(
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> SubscriptionManager:
    return SubscriptionManager(session_factory=db_test_session_manager)


@pytest.fixture(scope="function")
def reservation_store() -> FakeReservationStore:
    return FakeReservationStore()


@pytest.fixture(scope="function")
def restaurant_directory() -> FakeRestaurantDirectory:
    return FakeRestaurantDirectory()


@pytest.fixture(scope="function")
def enrichment_service(
    reservation_store: FakeReservationStore,
    restaurant_directory: FakeRestaurantDirectory,
) -> EnrichmentService:
    return EnrichmentService(
        reservation_store=reservation_store,
        restaurant_directory=restaurant_directory,
    )


# Fixture for the FastAPI app with overridden dependencies
@pytest.fixture(scope="function")
def test_app(
    # Explicitly depend on the manager fixture to ensure tables exist
    db_test_session_manager: async_sessionmaker[AsyncSession],
    subscription_manager: SubscriptionManager,
    enrichment_service: EnrichmentService,
) -> FastAPI:
    # Override for the raw AsyncSession dependency
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with db_test_session_manager() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_subscription_manager] = lambda: subscription_manager
    app.dependency_overrides[get_enrichment_service] = lambda: enrichment_service
    yield app
    app.dependency_overrides.clear()
    ServiceProvider.clear()


# Fixture for the async test client
@pytest.fixture(scope="function")
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client


# Service fixtures share the test session and the subscription manager above
@pytest.fixture(scope="function")
def clock() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture(scope="function")
def conversation_service(
    db_session: AsyncSession,
    subscription_manager: SubscriptionManager,
    clock: MonotonicClock,
) -> ConversationService:
    return ConversationService(
        conversation_repository=ConversationRepository(db_session),
        subscription_manager=subscription_manager,
        clock=clock,
    )


@pytest.fixture(scope="function")
def message_service(
    db_session: AsyncSession,
    subscription_manager: SubscriptionManager,
    clock: MonotonicClock,
) -> MessageService:
    return MessageService(
        message_repository=MessageRepository(db_session),
        conversation_repository=ConversationRepository(db_session),
        subscription_manager=subscription_manager,
        clock=clock,
    )
