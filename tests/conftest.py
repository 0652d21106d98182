"""Shared test fixtures: in-memory stores and a service container."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from callserver.auth import AdmissionGate, Identity
from callserver.calls import CallService
from callserver.errors import FailedPrecondition, NotFound, PermissionDenied, Unauthenticated
from callserver.models import CallRecord, UserProfile
from callserver.notifier import Notifier
from callserver.push_service import BatchResult, PushResult
from callserver.services import Services, set_services
from callserver.state import CallEvent, CallStatus, transition
from callserver.sweeper import LifecycleSweeper
from callserver.tokens import HmsTokenSigner, RoomService, TokenIssuer

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
ISSUED_AT = 1_772_366_400

ACCESS_KEY = "test-access-key"
APP_SECRET = "test-app-secret-0123456789abcdef0123"


class FakeCallStore:
    def __init__(self) -> None:
        self.records: dict[str, CallRecord] = {}
        self.fail_bind = False
        self.mark_missed_calls: list[list[str]] = []

    def add(self, call_id: str, status=CallStatus.RINGING, started_ago=0, ended_ago=None,
            caller_id="caller-1", callee_id="doctor-1") -> CallRecord:
        record = CallRecord(
            call_id=call_id,
            caller_id=caller_id,
            callee_id=callee_id,
            status=CallStatus(status),
            started_at=NOW - timedelta(seconds=started_ago),
            ended_at=NOW - timedelta(seconds=ended_ago) if ended_ago is not None else None,
        )
        self.records[call_id] = record
        return record

    def create(self, record: CallRecord) -> CallRecord:
        if record.call_id in self.records:
            raise FailedPrecondition("exists", code="call_exists")
        self.records[record.call_id] = record
        return record

    def get(self, call_id):
        return self.records.get(call_id)

    def apply_event(self, call_id, event: CallEvent, now):
        record = self.records.get(call_id)
        if record is None:
            raise NotFound("missing", code="call_not_found")
        record.status = transition(record.status, event)
        if record.status.is_terminal:
            record.ended_at = now
        return record

    def bind_room(self, call_id, room_id, caller_id, callee_id, caller_token, callee_token):
        if self.fail_bind:
            raise RuntimeError("firestore unavailable")
        record = self.records.get(call_id)
        if record is None:
            raise NotFound("missing", code="call_not_found")
        if (record.caller_id, record.callee_id) != (caller_id, callee_id):
            raise PermissionDenied("not the participants")
        if record.status.is_terminal:
            raise FailedPrecondition("terminal", code="call_not_active")
        if record.room_id and record.room_id != room_id:
            raise FailedPrecondition("bound", code="room_already_bound")
        record.room_id = room_id
        record.caller_token = caller_token
        record.callee_token = callee_token
        return record

    def find_stale_ringing(self, cutoff):
        return [
            r.call_id for r in self.records.values()
            if r.status == CallStatus.RINGING and r.started_at < cutoff
        ]

    def mark_missed(self, call_ids, now):
        self.mark_missed_calls.append(list(call_ids))
        changed = []
        for call_id in call_ids:
            record = self.records.get(call_id)
            if record is None or record.status != CallStatus.RINGING:
                continue
            record.status = CallStatus.MISSED
            record.ended_at = now
            changed.append(call_id)
        return changed

    def find_aged_terminal(self, cutoff, limit):
        ids = [
            r.call_id for r in self.records.values()
            if r.status.is_terminal and r.ended_at is not None and r.ended_at < cutoff
        ]
        return ids[:limit]


class FakeSignalingStore:
    def __init__(self) -> None:
        self.entries: dict[str, dict] = {}
        self.deleted: list[str] = []
        self.fail_for: set[str] = set()

    def delete(self, call_id: str) -> None:
        if call_id in self.fail_for:
            raise RuntimeError("rtdb unavailable")
        self.deleted.append(call_id)
        self.entries.pop(call_id, None)


class FakeProfileStore:
    def __init__(self) -> None:
        self.profiles: dict[str, UserProfile] = {}
        self.doctor_profiles: dict[str, dict] = {}
        self.reads: list[tuple] = []

    def add(self, uid, role="user", fcm_token=None, name=None, **kwargs) -> UserProfile:
        profile = UserProfile(uid=uid, role=role, fcm_token=fcm_token, name=name, **kwargs)
        self.profiles[uid] = profile
        return profile

    def get_profile(self, uid):
        self.reads.append(("get_profile", uid))
        return self.profiles.get(uid)

    def list_addressable(self, role=None):
        self.reads.append(("list_addressable", role))
        return [
            p for p in self.profiles.values()
            if p.fcm_token and (role is None or p.role == role)
        ]

    def set_availability(self, uid, accepting):
        if uid not in self.doctor_profiles:
            raise NotFound("Doctor profile not found", code="profile_not_found")
        self.doctor_profiles[uid]["acceptingInstantCalls"] = accepting


class FakeNotificationLog:
    def __init__(self) -> None:
        self.records = []

    def save_broadcast(self, record) -> str:
        self.records.append(record)
        return f"notification-{len(self.records)}"


class FakePushSender:
    def __init__(self) -> None:
        self.incoming: list[tuple] = []
        self.batches: list[list[str]] = []
        self.incoming_result = PushResult(success=True, platform="android", message_id="msg-1")
        self.batch_handler: Callable[[list[str]], BatchResult] | None = None
        self.apns_configured = False

    def can_deliver(self, profile) -> bool:
        if profile.platform == "ios" and profile.voip_token and self.apns_configured:
            return True
        return bool(profile.fcm_token)

    async def send_incoming_call(self, profile, data, call_id, ttl):
        self.incoming.append((profile, data, call_id, ttl))
        return self.incoming_result

    async def send_multicast(self, tokens, title, body, data, image_url=None):
        tokens = list(tokens)
        self.batches.append(tokens)
        if self.batch_handler is not None:
            return self.batch_handler(tokens)
        return BatchResult(size=len(tokens), success_count=len(tokens))


class FakeAuthenticator:
    """``Authorization: Bearer <uid>`` authenticates as <uid>."""

    def authenticate(self, request) -> Identity:
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header.startswith("Bearer "):
            raise Unauthenticated("User must be authenticated")
        return Identity(uid=header[len("Bearer "):])


@pytest.fixture
def call_store() -> FakeCallStore:
    return FakeCallStore()


@pytest.fixture
def signaling() -> FakeSignalingStore:
    return FakeSignalingStore()


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def history() -> FakeNotificationLog:
    return FakeNotificationLog()


@pytest.fixture
def push() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(ACCESS_KEY, HmsTokenSigner(APP_SECRET), clock=lambda: ISSUED_AT)


@pytest.fixture
def gate(profiles) -> AdmissionGate:
    return AdmissionGate(profiles)


@pytest.fixture
def notifier(profiles, push, history, gate) -> Notifier:
    return Notifier(profiles, push, history, gate)


@pytest.fixture
def sweeper(call_store, signaling) -> LifecycleSweeper:
    return LifecycleSweeper(call_store, signaling, clock=lambda: NOW)


@pytest.fixture
def services(call_store, signaling, profiles, issuer, gate, notifier, sweeper):
    container = Services(
        authenticator=FakeAuthenticator(),
        gate=gate,
        issuer=issuer,
        rooms=RoomService(issuer, call_store),
        calls=CallService(call_store, signaling, profiles, clock=lambda: NOW),
        notifier=notifier,
        sweeper=sweeper,
    )
    set_services(container)
    yield container
    set_services(None)


def auth(uid: str) -> dict:
    return {"HTTP_AUTHORIZATION": f"Bearer {uid}"}
