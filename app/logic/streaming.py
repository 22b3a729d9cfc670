import asyncio
import json
import logging
from datetime import tzinfo
from typing import Any, AsyncGenerator, Awaitable, Callable, Sequence

from pydantic import BaseModel

from app.core.sse import KEEPALIVE_COMMENT, format_sse
from app.schemas.conversation import ConversationRead
from app.services.enrichment_service import EnrichmentService
from app.services.subscription_manager import Unsubscribe, UpdateCallback

logger = logging.getLogger(__name__)

Subscribe = Callable[[UpdateCallback], Awaitable[Unsubscribe]]
SnapshotTransform = Callable[[list[Any]], Awaitable[Sequence[BaseModel]]]

SNAPSHOT_EVENT = "snapshot"


def serialize_snapshot(snapshot: Sequence[BaseModel]) -> str:
    return json.dumps([item.model_dump(mode="json") for item in snapshot])


class SnapshotStream:
    """
    Async iterator of SSE frames that owns its subscription.

    ``aclose()`` releases the channel even when iteration never started,
    which a bare async generator cannot do: its ``finally`` only runs once
    the body has been entered.
    """

    def __init__(self, frames: AsyncGenerator[str, None], unsubscribe: Unsubscribe):
        self._frames = frames
        self._unsubscribe = unsubscribe

    def __aiter__(self) -> "SnapshotStream":
        return self

    async def __anext__(self) -> str:
        return await self._frames.__anext__()

    async def aclose(self) -> None:
        self._unsubscribe()
        await self._frames.aclose()


async def open_snapshot_stream(
    subscribe: Subscribe,
    keepalive_seconds: float,
    transform: SnapshotTransform | None = None,
) -> SnapshotStream:
    """
    Subscribes now and returns the SSE stream for the channel.

    Subscribing before the response starts lets a storage failure surface
    as an error status instead of a broken stream. Each delivered snapshot
    becomes one ``snapshot`` event carrying the full JSON list. Only the
    newest undelivered snapshot is kept: each one supersedes the last.
    """
    queue: asyncio.Queue[list[Any]] = asyncio.Queue(maxsize=1)

    def on_update(snapshot: list[Any]) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(snapshot)

    unsubscribe = await subscribe(on_update)
    return SnapshotStream(
        _drain(queue, unsubscribe, keepalive_seconds, transform), unsubscribe
    )


async def _drain(
    queue: asyncio.Queue,
    unsubscribe: Unsubscribe,
    keepalive_seconds: float,
    transform: SnapshotTransform | None,
) -> AsyncGenerator[str, None]:
    try:
        while True:
            try:
                snapshot = await asyncio.wait_for(
                    queue.get(), timeout=keepalive_seconds
                )
            except asyncio.TimeoutError:
                yield KEEPALIVE_COMMENT
                continue
            if transform is not None:
                snapshot = await transform(snapshot)
            yield format_sse(serialize_snapshot(snapshot), event=SNAPSHOT_EVENT)
    finally:
        unsubscribe()
        logger.debug("Snapshot stream closed")


def enriching_transform(
    enrichment_service: EnrichmentService, user_id: str, tz: tzinfo | None = None
) -> SnapshotTransform:
    async def transform(snapshot: list[ConversationRead]) -> Sequence[BaseModel]:
        return await enrichment_service.enrich(snapshot, user_id, tz=tz)

    return transform
