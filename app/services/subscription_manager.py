import inspect
import itertools
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Sequence, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.schemas.conversation import ConversationRead
from app.schemas.message import MessageRead

from .exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[list[Any]], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]
SnapshotLoader = Callable[[Any], Awaitable[list[Any]]]


def sort_by_recent_activity(
    conversations: Sequence[ConversationRead],
) -> list[ConversationRead]:
    """Most recently active first; storage order is never relied upon."""
    return sorted(conversations, key=lambda c: c.last_message_at, reverse=True)


@dataclass(eq=False)
class _Channel:
    id: UUID
    on_update: UpdateCallback
    active: bool = True
    # Publishes that land while the initial snapshot is in flight set dirty
    # instead of delivering, so a subscriber never sees an older list after a newer one.
    ready: bool = False
    dirty: bool = False
    # Generation of the newest snapshot handed to on_update; older loads are dropped.
    delivered_generation: int = 0


class SubscriptionManager:
    """
    In-process fan-out of full snapshots to live subscribers.

    Writers call ``publish_*`` after they commit; the manager reloads the
    current result set once per publish and hands the same immutable list
    to every live channel on that key. Every delivery is the complete
    ordered list, never a diff.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._message_channels: dict[UUID, dict[UUID, _Channel]] = {}
        self._conversation_channels: dict[str, dict[UUID, _Channel]] = {}
        # Taken before every snapshot load, so a higher number never reflects older data.
        self._generations = itertools.count(1)

    async def subscribe_messages(
        self, conversation_id: UUID, on_update: UpdateCallback
    ) -> Unsubscribe:
        """Attach a live feed of a conversation's messages, ordered by created_at."""
        return await self._subscribe(
            self._message_channels, conversation_id, self._load_messages, on_update
        )

    async def subscribe_conversations(
        self, user_id: str, on_update: UpdateCallback
    ) -> Unsubscribe:
        """Attach a live feed of a user's conversations, most recent first."""
        return await self._subscribe(
            self._conversation_channels,
            user_id,
            self._load_conversations,
            on_update,
        )

    async def publish_message_change(self, conversation_id: UUID) -> None:
        await self._publish(
            self._message_channels, conversation_id, self._load_messages
        )

    async def publish_conversation_change(self, user_id: str) -> None:
        await self._publish(
            self._conversation_channels, user_id, self._load_conversations
        )

    def active_channel_count(self) -> int:
        return sum(len(channels) for channels in self._message_channels.values()) + sum(
            len(channels) for channels in self._conversation_channels.values()
        )

    async def _subscribe(
        self,
        registry: dict[Hashable, dict[UUID, _Channel]],
        key: Hashable,
        loader: SnapshotLoader,
        on_update: UpdateCallback,
    ) -> Unsubscribe:
        channel = _Channel(id=uuid.uuid4(), on_update=on_update)
        registry.setdefault(key, {})[channel.id] = channel

        def unsubscribe() -> None:
            if not channel.active:
                return
            channel.active = False
            channels = registry.get(key)
            if channels is not None:
                channels.pop(channel.id, None)
                if not channels:
                    registry.pop(key, None)
            logger.debug(f"Channel {channel.id} on {key} unsubscribed")

        generation = next(self._generations)
        try:
            snapshot = await loader(key)
        except SQLAlchemyError as e:
            unsubscribe()
            logger.error(f"Failed to load initial snapshot for {key}: {e}", exc_info=True)
            raise StorageUnavailableError("Could not attach the live feed.")

        await self._deliver(channel, snapshot, generation)
        while channel.dirty and channel.active:
            channel.dirty = False
            generation = next(self._generations)
            try:
                snapshot = await loader(key)
            except SQLAlchemyError as e:
                logger.error(f"Failed to reload snapshot for {key}: {e}", exc_info=True)
                break
            await self._deliver(channel, snapshot, generation)
        channel.ready = True

        logger.debug(f"Channel {channel.id} subscribed to {key}")
        return unsubscribe

    async def _publish(
        self,
        registry: dict[Hashable, dict[UUID, _Channel]],
        key: Hashable,
        loader: SnapshotLoader,
    ) -> None:
        if not registry.get(key):
            return
        generation = next(self._generations)
        try:
            snapshot = await loader(key)
        except SQLAlchemyError as e:
            # The write already committed; subscribers catch up on the next change.
            logger.error(f"Failed to load snapshot for {key}: {e}", exc_info=True)
            return

        for channel in list(registry.get(key, {}).values()):
            if not channel.ready:
                channel.dirty = True
                continue
            await self._deliver(channel, snapshot, generation)

    async def _deliver(
        self, channel: _Channel, snapshot: list[Any], generation: int
    ) -> None:
        if not channel.active:
            return
        if generation <= channel.delivered_generation:
            # A load that started later has already been delivered
            logger.debug(
                f"Dropping superseded snapshot {generation} for channel {channel.id}"
            )
            return
        channel.delivered_generation = generation
        try:
            result = channel.on_update(list(snapshot))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"Subscriber callback for channel {channel.id} failed: {e}",
                exc_info=True,
            )

    async def _load_messages(self, conversation_id: UUID) -> list[MessageRead]:
        async with self.session_factory() as session:
            messages = await MessageRepository(
                session
            ).get_messages_by_conversation(conversation_id)
            return [MessageRead.model_validate(m) for m in messages]

    async def _load_conversations(self, user_id: str) -> list[ConversationRead]:
        async with self.session_factory() as session:
            conversations = await ConversationRepository(
                session
            ).list_user_conversations(user_id)
            snapshot = [ConversationRead.model_validate(c) for c in conversations]
        return sort_by_recent_activity(snapshot)
