# Records are stored in Firebase, not the Django DB.
#
# Firestore Collections:
# - users/{uid}: profile with push addresses (fcmToken, voipToken, platform) and role
# - doctor_profiles/{uid}: doctor availability (acceptingInstantCalls)
# - calls/{callId}: call records with status, participants, room binding, timestamps
# - admin_notifications/{id}: broadcast history
#
# Realtime Database:
# - calls/{callId}: transient signaling (offer/answer/candidates), owned by the clients
#
# See firebase_service.py for the store implementations.
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .state import CallStatus


@dataclass
class CallRecord:
    call_id: str
    caller_id: str
    callee_id: str
    status: CallStatus = CallStatus.RINGING
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    room_id: Optional[str] = None
    caller_token: Optional[str] = field(default=None, repr=False)
    callee_token: Optional[str] = field(default=None, repr=False)

    def is_participant(self, uid: str) -> bool:
        return uid in (self.caller_id, self.callee_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "callId": self.call_id,
            "callerId": self.caller_id,
            "calleeId": self.callee_id,
            "status": CallStatus(self.status).value,
            "roomId": self.room_id,
            "hmsCallerToken": self.caller_token,
            "hmsDoctorToken": self.callee_token,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
        }

    @classmethod
    def from_dict(cls, call_id: str, data: Dict[str, Any]) -> "CallRecord":
        # Client-written documents carry the id only as the document key.
        return cls(
            call_id=data.get("callId") or call_id,
            caller_id=data.get("callerId"),
            callee_id=data.get("calleeId") or data.get("doctorId"),
            status=CallStatus(data.get("status", CallStatus.RINGING.value)),
            started_at=data.get("startedAt"),
            ended_at=data.get("endedAt"),
            room_id=data.get("roomId"),
            caller_token=data.get("hmsCallerToken"),
            callee_token=data.get("hmsDoctorToken"),
        )


@dataclass
class UserProfile:
    uid: str
    role: Optional[str] = None
    name: Optional[str] = None
    fcm_token: Optional[str] = field(default=None, repr=False)
    voip_token: Optional[str] = field(default=None, repr=False)
    platform: Optional[str] = None

    @classmethod
    def from_dict(cls, uid: str, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            uid=uid,
            role=data.get("role"),
            name=data.get("name") or data.get("displayName"),
            fcm_token=data.get("fcmToken") or None,
            voip_token=data.get("voipToken") or None,
            platform=data.get("platform"),
        )


@dataclass
class BroadcastRecord:
    title: str
    body: str
    target: str
    type: str
    sent_count: int
    sent_by: str
    sent_by_name: str
    image_url: Optional[str] = None
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "imageUrl": self.image_url,
            "target": self.target,
            "type": self.type,
            "referenceId": self.reference_id,
            "referenceType": self.reference_type,
            "extraData": self.extra_data,
            "sentCount": self.sent_count,
            "sentBy": self.sent_by,
            "sentByName": self.sent_by_name,
        }
