from .health import health
from .token import token, call_room
from .calls import (
    call_create,
    call_notify,
    call_answer,
    call_end,
    call_status,
    call_timeout_sweep,
)
from .notifications import broadcast, doctor_availability

__all__ = [
    "health",
    "token",
    "call_room",
    "call_create",
    "call_notify",
    "call_answer",
    "call_end",
    "call_status",
    "call_timeout_sweep",
    "broadcast",
    "doctor_availability",
]
