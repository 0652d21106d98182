"""
Client-driven call lifecycle: create, answer, end, read.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from django.utils import timezone

from .errors import Internal, InvalidArgument, NotFound, PermissionDenied
from .models import CallRecord
from .state import CallEvent, CallStatus
from .stores import CallStore, ProfileStore, SignalingStore
from .utils import format_timestamp

logger = logging.getLogger("callserver")


class CallService:
    def __init__(
        self,
        calls: CallStore,
        signaling: SignalingStore,
        profiles: Optional[ProfileStore] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.calls = calls
        self.signaling = signaling
        self.profiles = profiles
        self.clock = clock

    def create_call(self, caller_id: str, callee_id: str, call_id: Optional[str] = None) -> CallRecord:
        if not callee_id:
            raise InvalidArgument("doctorId is required", code="missing_fields")
        if callee_id == caller_id:
            raise InvalidArgument("cannot call yourself", code="invalid_callee")

        record = CallRecord(
            call_id=call_id or str(uuid.uuid4()),
            caller_id=caller_id,
            callee_id=callee_id,
            status=CallStatus.RINGING,
            started_at=self.clock(),
        )
        return self.calls.create(record)

    def get_for_participant(self, call_id: str, uid: str) -> CallRecord:
        record = self.calls.get(call_id)
        if record is None:
            raise NotFound(f"call {call_id} not found", code="call_not_found")
        if not record.is_participant(uid):
            raise PermissionDenied("Only call participants can access this call")
        return record

    def answer(self, call_id: str, uid: str, action: str) -> CallRecord:
        if action not in ("accept", "decline"):
            raise InvalidArgument("action must be accept or decline", code="invalid_action")
        record = self.get_for_participant(call_id, uid)
        if uid != record.callee_id:
            raise PermissionDenied("Only the callee can answer a call")

        event = CallEvent.ACCEPT if action == "accept" else CallEvent.DECLINE
        updated = self.calls.apply_event(call_id, event, self.clock())
        logger.info(f"[CALL/ANSWER] Call {call_id} -> {updated.status.value}")
        if updated.status.is_terminal:
            self.release_signaling(call_id)
        return updated

    def end(self, call_id: str, uid: str) -> CallRecord:
        self.get_for_participant(call_id, uid)
        updated = self.calls.apply_event(call_id, CallEvent.END, self.clock())
        logger.info(f"[CALL/END] Call {call_id} ended by {uid}")
        self.release_signaling(call_id)
        return updated

    def release_signaling(self, call_id: str) -> bool:
        """Best-effort delete of the call's signaling entry."""
        try:
            self.signaling.delete(call_id)
        except Exception as e:
            logger.warning(f"[CALL] Could not clean signaling for {call_id}: {e}")
            return False
        return True

    def set_availability(self, uid: str, accepting) -> None:
        if not isinstance(accepting, bool):
            raise InvalidArgument("acceptingInstantCalls must be a boolean", code="invalid_argument")
        try:
            self.profiles.set_availability(uid, accepting)
        except NotFound:
            raise
        except Exception as e:
            logger.error(f"[AVAILABILITY] Error updating availability for {uid}: {e}")
            raise Internal("Failed to update availability") from e


def call_view(record: CallRecord, uid: str) -> Dict[str, Any]:
    """Call record as seen by one participant: only their own room token."""
    data = {
        "callId": record.call_id,
        "callerId": record.caller_id,
        "calleeId": record.callee_id,
        "status": record.status.value,
        "roomId": record.room_id,
        "startedAt": format_timestamp(record.started_at),
        "endedAt": format_timestamp(record.ended_at),
    }
    if not record.status.is_terminal:
        data["token"] = record.caller_token if uid == record.caller_id else record.callee_token
    return data
