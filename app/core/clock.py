import threading
from datetime import datetime, timedelta, timezone

_TICK = timedelta(microseconds=1)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MonotonicClock:
    """
    Server-side timestamp authority for message and conversation ordering.

    Every call returns a UTC datetime strictly greater than the previous one,
    even if the wall clock stalls or steps backwards, so two messages written
    by this process can never share a created_at.
    """

    def __init__(self):
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + _TICK
            self._last = current
            return current


server_clock = MonotonicClock()
