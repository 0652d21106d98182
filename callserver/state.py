"""
Call lifecycle state machine.

    ringing --accept--> connected --end--> ended
    ringing --decline--> declined
    ringing --end--> ended        (caller hangs up before answer)
    ringing --timeout--> missed   (sweeper)

Terminal statuses accept no further events.
"""
from enum import Enum

from .errors import FailedPrecondition


class CallStatus(str, Enum):
    RINGING = "ringing"
    CONNECTED = "connected"
    ENDED = "ended"
    MISSED = "missed"
    DECLINED = "declined"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class CallEvent(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    END = "end"
    TIMEOUT = "timeout"


TERMINAL_STATUSES = frozenset({CallStatus.ENDED, CallStatus.MISSED, CallStatus.DECLINED})

_TRANSITIONS = {
    (CallStatus.RINGING, CallEvent.ACCEPT): CallStatus.CONNECTED,
    (CallStatus.RINGING, CallEvent.DECLINE): CallStatus.DECLINED,
    (CallStatus.RINGING, CallEvent.END): CallStatus.ENDED,
    (CallStatus.RINGING, CallEvent.TIMEOUT): CallStatus.MISSED,
    (CallStatus.CONNECTED, CallEvent.END): CallStatus.ENDED,
}


def transition(status, event) -> CallStatus:
    """Return the status reached by applying ``event`` to ``status``.

    Raises FailedPrecondition when the call is already terminal or the event
    is not valid from the current status.
    """
    status = CallStatus(status)
    event = CallEvent(event)
    if status.is_terminal:
        raise FailedPrecondition(
            f"call already {status.value}", code="call_not_active"
        )
    try:
        return _TRANSITIONS[(status, event)]
    except KeyError:
        raise FailedPrecondition(
            f"cannot {event.value} a call that is {status.value}",
            code="invalid_transition",
        ) from None
