import asyncio
from datetime import datetime, timezone as dt_timezone
from typing import Iterator, List, Sequence

from django.utils import timezone

from .constants import ROLE_GUEST, ROLE_HOST


def parse_role(value):
    """Map a participant role onto the media service's vocabulary."""
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    if value in {"initiator", "guest", "caller"}:
        return ROLE_GUEST
    if value in {"responder", "host", "doctor"}:
        return ROLE_HOST
    return None


def run_async(coro):
    """Helper to run async code in sync Django views."""
    return asyncio.run(coro)


def generate_room_id(call_id: str) -> str:
    """Use callId as the room id: one room per call."""
    return call_id


def chunked(items: Sequence, size: int) -> Iterator[List]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def normalize_datetime(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return timezone.make_aware(value, dt_timezone.utc)
        return value
    if hasattr(value, "timestamp"):
        return datetime.fromtimestamp(value.timestamp(), tz=dt_timezone.utc)
    return None


def format_timestamp(value):
    value = normalize_datetime(value)
    return value.isoformat() if value else None
