"""
Incoming-call alerts and operator broadcasts.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .auth import AdmissionGate
from .constants import BROADCAST_BATCH_SIZE, INCOMING_CALL_TTL_SECONDS, RINGING_TIMEOUT_SECONDS
from .errors import DeliveryError, InvalidArgument
from .models import BroadcastRecord
from .push_service import BatchResult
from .stores import NotificationLog, ProfileStore, PushSender
from .utils import chunked

logger = logging.getLogger("callserver")

INCOMING_CALL_TYPE = "incoming_call"
NO_DELIVERY_ADDRESS = "no_fcm_token"

# Broadcast target -> users.role filter (None = everyone)
AUDIENCES = {
    "all": None,
    "doctors": "doctor",
    "parents": "user",
}


@dataclass
class NotifyResult:
    success: bool
    reason: Optional[str] = None
    platform: Optional[str] = None
    message_id: Optional[str] = None

    def as_response(self) -> Dict[str, Any]:
        response = {"success": self.success}
        if self.reason:
            response["reason"] = self.reason
        return response


@dataclass
class BroadcastSummary:
    recipients: int = 0
    batches: List[BatchResult] = field(default_factory=list)
    notification_id: Optional[str] = None

    @property
    def sent_count(self) -> int:
        return sum(batch.success_count for batch in self.batches)

    @property
    def failed_count(self) -> int:
        return sum(batch.failure_count for batch in self.batches)

    def as_response(self) -> Dict[str, Any]:
        response = {"success": True, "sentCount": self.sent_count, "notificationId": self.notification_id}
        if self.recipients == 0:
            response["message"] = "No tokens found"
        return response


def build_incoming_call_data(call_id: str, caller_id: str, caller_name: str, caller_photo: str) -> Dict[str, str]:
    """Data-only payload understood by CallKit-style incoming call handlers."""
    return {
        "type": INCOMING_CALL_TYPE,
        "callerId": caller_id,
        "id": call_id,
        "nameCaller": caller_name or "Unknown",
        "avatar": caller_photo or "",
        "handle": "Incoming Video Consultation",
        "callType": "1",  # 1 = video, 0 = audio
        "duration": str(RINGING_TIMEOUT_SECONDS * 1000),
        "textAccept": "Accept",
        "textDecline": "Decline",
        "extra": json.dumps({"callId": call_id, "type": INCOMING_CALL_TYPE}),
    }


class Notifier:
    def __init__(
        self,
        profiles: ProfileStore,
        push: PushSender,
        history: NotificationLog,
        gate: AdmissionGate,
        batch_size: int = BROADCAST_BATCH_SIZE,
    ):
        self.profiles = profiles
        self.push = push
        self.history = history
        self.gate = gate
        self.batch_size = batch_size

    async def notify_incoming_call(
        self,
        callee_id: str,
        call_id: str,
        caller_id: str,
        caller_name: str = "",
        caller_photo: str = "",
    ) -> NotifyResult:
        if not call_id or not callee_id:
            raise InvalidArgument("callId and doctorId are required", code="missing_fields")

        profile = self.profiles.get_profile(callee_id)
        if profile is None or not self.push.can_deliver(profile):
            logger.info(f"[NOTIFY] Callee {callee_id} has no push address")
            return NotifyResult(success=False, reason=NO_DELIVERY_ADDRESS)

        data = build_incoming_call_data(call_id, caller_id, caller_name, caller_photo)
        try:
            result = await self.push.send_incoming_call(profile, data, call_id, INCOMING_CALL_TTL_SECONDS)
        except Exception as e:
            logger.error(f"[NOTIFY] Transport error for call {call_id}: {e}")
            raise DeliveryError("Failed to send call notification") from e
        if not result.success:
            logger.warning(f"[NOTIFY] Push failed for call {call_id}: {result.error_code} {result.error}")
            raise DeliveryError(f"Failed to send call notification: {result.error}")

        logger.info(f"[NOTIFY] Call notification sent to {callee_id} via {result.platform}")
        return NotifyResult(success=True, platform=result.platform, message_id=result.message_id)

    async def broadcast(
        self,
        actor_id: str,
        title: str,
        body: str,
        target: Optional[str] = None,
        image_url: Optional[str] = None,
        notification_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> BroadcastSummary:
        if not title or not body:
            raise InvalidArgument("title and body are required", code="missing_fields")

        target = target or "all"
        if target not in AUDIENCES:
            raise InvalidArgument(f"unknown target: {target}", code="invalid_target")

        actor = self.gate.require_operator(actor_id)

        recipients = self.profiles.list_addressable(role=AUDIENCES[target])
        tokens = [profile.fcm_token for profile in recipients]
        summary = BroadcastSummary(recipients=len(tokens))
        logger.info(f"[BROADCAST] target={target} recipients={len(tokens)}")

        if not tokens:
            return summary

        data = {
            "type": notification_type or "general",
            "click_action": "FLUTTER_NOTIFICATION_CLICK",
        }
        if reference_id:
            data["referenceId"] = reference_id
        if reference_type:
            data["referenceType"] = reference_type

        for number, batch in enumerate(chunked(tokens, self.batch_size), start=1):
            try:
                result = await self.push.send_multicast(batch, title, body, data, image_url=image_url)
            except Exception as e:
                logger.error(f"[BROADCAST] Batch {number} failed: {e}")
                result = BatchResult(size=len(batch), failure_count=len(batch), error=str(e))
            logger.info(
                f"[BROADCAST] Batch {number}: size={result.size} "
                f"success={result.success_count} failure={result.failure_count}"
            )
            summary.batches.append(result)

        summary.notification_id = self.history.save_broadcast(BroadcastRecord(
            title=title,
            body=body,
            target=target,
            type=notification_type or "general",
            sent_count=summary.sent_count,
            sent_by=actor.uid,
            sent_by_name=actor.name or "Admin",
            image_url=image_url,
            reference_id=reference_id,
            reference_type=reference_type,
            extra_data=extra_data,
        ))
        logger.info(
            f"[BROADCAST] Sent to {summary.sent_count}/{summary.recipients} users, "
            f"notificationId: {summary.notification_id}"
        )
        return summary
