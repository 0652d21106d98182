"""
Capabilities the call services depend on.

Production implementations live in firebase_service.py (Firestore, Realtime
Database) and push_service.py (FCM / APNs). Tests substitute in-memory fakes.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .models import BroadcastRecord, CallRecord, UserProfile
from .state import CallEvent


class CallStore(Protocol):
    def create(self, record: CallRecord) -> CallRecord: ...

    def get(self, call_id: str) -> Optional[CallRecord]: ...

    def apply_event(self, call_id: str, event: CallEvent, now: datetime) -> CallRecord:
        """Guarded transition; raises NotFound / FailedPrecondition."""

    def bind_room(
        self,
        call_id: str,
        room_id: str,
        caller_id: str,
        callee_id: str,
        caller_token: str,
        callee_token: str,
    ) -> CallRecord:
        """Persist the room binding and both tokens onto a non-terminal call.

        caller_id/callee_id must match the stored participants (PermissionDenied).
        """

    def find_stale_ringing(self, cutoff: datetime) -> List[str]: ...

    def mark_missed(self, call_ids: Sequence[str], now: datetime) -> List[str]:
        """Atomically move still-ringing calls to missed; returns ids changed."""

    def find_aged_terminal(self, cutoff: datetime, limit: int) -> List[str]: ...


class SignalingStore(Protocol):
    def delete(self, call_id: str) -> None:
        """Remove the signaling entry; absence is not an error."""


class ProfileStore(Protocol):
    def get_profile(self, uid: str) -> Optional[UserProfile]: ...

    def list_addressable(self, role: Optional[str] = None) -> List[UserProfile]: ...

    def set_availability(self, uid: str, accepting: bool) -> None: ...


class NotificationLog(Protocol):
    def save_broadcast(self, record: BroadcastRecord) -> str: ...


class TokenSigner(Protocol):
    def sign(self, claims: Dict[str, Any]) -> str: ...


class PushSender(Protocol):
    def can_deliver(self, profile: UserProfile) -> bool:
        """True when some configured route can reach this profile."""

    async def send_incoming_call(
        self, profile: UserProfile, data: Dict[str, str], call_id: str, ttl: int
    ): ...

    async def send_multicast(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Dict[str, str],
        image_url: Optional[str] = None,
    ): ...
