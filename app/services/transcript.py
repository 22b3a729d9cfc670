"""
Transcript assembly for chat views.

Everything here is pure: no I/O, no clock reads unless ``now`` is omitted,
and inputs are never mutated or re-sorted. Snapshots from the subscription
manager are regrouped from scratch every time.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Protocol, Sequence, TypeVar
from uuid import UUID

from app.core.clock import ensure_utc
from app.schemas.message import (
    MessageRead,
    TranscriptEntry,
    TranscriptGroup,
    TranscriptResponse,
)

EMPTY_TRANSCRIPT_PLACEHOLDER = "No messages yet"

_MONTHS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


class Timestamped(Protocol):
    created_at: datetime


T = TypeVar("T", bound=Timestamped)


def _local(value: datetime, tz: tzinfo) -> datetime:
    return ensure_utc(value).astimezone(tz)


def _short_date(value: datetime) -> str:
    return f"{_MONTHS[value.month - 1]} {value.day}"


def format_message_date(
    timestamp: datetime, *, now: datetime | None = None, tz: tzinfo | None = None
) -> str:
    """'Today', 'Yesterday', 'Oct 5', or 'Oct 5, 2024' outside the current year."""
    tz = tz or timezone.utc
    today = _local(now or datetime.now(timezone.utc), tz).date()
    day = _local(timestamp, tz).date()

    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    label = _short_date(day)
    if day.year != today.year:
        label = f"{label}, {day.year}"
    return label


def format_message_time(timestamp: datetime, *, tz: tzinfo | None = None) -> str:
    """12-hour clock, e.g. '3:05 PM'."""
    local = _local(timestamp, tz or timezone.utc)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def format_relative_timestamp(
    timestamp: datetime, *, now: datetime | None = None, tz: tzinfo | None = None
) -> str:
    """Conversation-list style age: 'Just now', '5m ago', '3h ago', '2d ago', 'Oct 5'."""
    now = ensure_utc(now or datetime.now(timezone.utc))
    elapsed = now - ensure_utc(timestamp)
    minutes = int(elapsed.total_seconds() // 60)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 7:
        return f"{days}d ago"
    return _short_date(_local(timestamp, tz or timezone.utc))


def group_messages_by_date(
    messages: Sequence[T], *, now: datetime | None = None, tz: tzinfo | None = None
) -> dict[str, list[T]]:
    """
    Buckets messages by local calendar day.

    Keys keep first-seen order, so iterating the mapping walks the days in
    the same order as the input.
    """
    now = now or datetime.now(timezone.utc)
    grouped: dict[str, list[T]] = {}
    for message in messages:
        label = format_message_date(message.created_at, now=now, tz=tz)
        grouped.setdefault(label, []).append(message)
    return grouped


def build_transcript(
    conversation_id: UUID,
    is_active: bool,
    messages: Sequence[MessageRead],
    viewer_id: str | None,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> TranscriptResponse:
    """Date-grouped transcript with each message tagged as the viewer's own or not."""
    groups = [
        TranscriptGroup(
            label=label,
            entries=[
                TranscriptEntry(
                    message=message,
                    is_own=viewer_id is not None and message.sender_id == viewer_id,
                    time_label=format_message_time(message.created_at, tz=tz),
                )
                for message in bucket
            ],
        )
        for label, bucket in group_messages_by_date(messages, now=now, tz=tz).items()
    ]
    return TranscriptResponse(
        conversation_id=conversation_id,
        is_active=is_active,
        groups=groups,
        placeholder=None if groups else EMPTY_TRANSCRIPT_PLACEHOLDER,
    )
