"""Server-sent event helpers for streaming snapshots."""

from typing import AsyncIterator

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Content-Type": "text/event-stream",
    "Connection": "keep-alive",
}

# Comment line; EventSource clients ignore it, proxies see traffic.
KEEPALIVE_COMMENT = ": keepalive\n\n"


def format_sse(data: str, event: str | None = None) -> str:
    """Return a properly formatted SSE payload."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    for chunk in data.splitlines() or [""]:
        lines.append(f"data: {chunk}")
    lines.append("\n")
    return "\n".join(lines)


def stream(events: AsyncIterator[str]) -> StreamingResponse:
    """Create a streaming response that calls ``events.aclose()`` once the response ends."""
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(events.aclose),
    )
