"""
Firebase-backed stores.

Firestore Collections:
- users/{uid}: profile, role and push addresses (fcmToken, voipToken, platform)
- doctor_profiles/{uid}: instant-call availability
- calls/{callId}: call records with status, room binding, timestamps
- admin_notifications/{id}: broadcast history

Realtime Database:
- calls/{callId}: transient signaling entries
"""
import json
import logging
import os
from datetime import datetime
from typing import List, Optional, Sequence

from .config import CallServerConfig
from .constants import (
    ADMIN_NOTIFICATIONS_COLLECTION,
    CALLS_COLLECTION,
    DOCTOR_PROFILES_COLLECTION,
    SIGNALING_ROOT,
    USERS_COLLECTION,
)
from .errors import FailedPrecondition, NotFound, PermissionDenied
from .models import BroadcastRecord, CallRecord, UserProfile
from .state import TERMINAL_STATUSES, CallEvent, CallStatus, transition
from .utils import chunked

logger = logging.getLogger("callserver")

# Firestore caps a transaction at 500 writes.
MAX_TRANSACTION_WRITES = 500


def init_firebase_app(config: CallServerConfig):
    """Initialize (or reuse) the Firebase Admin app for this process."""
    import firebase_admin
    from firebase_admin import credentials

    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {}
    if config.firebase_project_id:
        options["projectId"] = config.firebase_project_id
    if config.firebase_database_url:
        options["databaseURL"] = config.firebase_database_url

    logger.info(f"Firebase init: use_emulator={config.firebase_use_emulator}, project_id={config.firebase_project_id}")

    if config.firebase_use_emulator:
        # Emulator mode - environment variable must be set BEFORE initializing
        firestore_host = os.environ.get("FIRESTORE_EMULATOR_HOST", "localhost:8080")
        os.environ["FIRESTORE_EMULATOR_HOST"] = firestore_host
        options.setdefault("projectId", "demo-project")
        app = firebase_admin.initialize_app(credential=None, options=options)
        logger.info(f"Firebase Admin initialized with EMULATOR (Firestore: {firestore_host})")
        return app

    cred = None
    if config.firebase_service_account:
        try:
            cred = credentials.Certificate(json.loads(config.firebase_service_account))
            logger.info("Using FIREBASE_SERVICE_ACCOUNT env var")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid FIREBASE_SERVICE_ACCOUNT JSON: {e}")
    elif config.firebase_service_account_path and os.path.exists(config.firebase_service_account_path):
        cred = credentials.Certificate(config.firebase_service_account_path)
        logger.info(f"Using service account from {config.firebase_service_account_path}")

    if cred is None:
        # Fall back to application default credentials (e.g. on GCP)
        logger.warning("Firebase service account not found - using application default credentials")
        return firebase_admin.initialize_app(options=options)

    app = firebase_admin.initialize_app(cred, options=options)
    logger.info("Firebase Admin initialized (production)")
    return app


def get_firestore(app, database_id: Optional[str] = None):
    from firebase_admin import firestore

    if database_id:
        return firestore.client(app=app, database_id=database_id)
    return firestore.client(app=app)


class FirestoreCallStore:
    """Call records in calls/{callId}. All status changes go through transition()."""

    def __init__(self, db):
        self.db = db

    def _doc(self, call_id: str):
        return self.db.collection(CALLS_COLLECTION).document(call_id)

    def create(self, record: CallRecord) -> CallRecord:
        from google.api_core.exceptions import AlreadyExists

        try:
            self._doc(record.call_id).create(record.to_dict())
        except AlreadyExists:
            raise FailedPrecondition(f"call {record.call_id} already exists", code="call_exists") from None
        logger.info(f"Created call record: {record.call_id}")
        return record

    def get(self, call_id: str) -> Optional[CallRecord]:
        doc = self._doc(call_id).get()
        if not doc.exists:
            return None
        return CallRecord.from_dict(doc.id, doc.to_dict())

    def apply_event(self, call_id: str, event: CallEvent, now: datetime) -> CallRecord:
        from firebase_admin import firestore

        doc_ref = self._doc(call_id)

        @firestore.transactional
        def _txn(transaction):
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFound(f"call {call_id} not found", code="call_not_found")
            record = CallRecord.from_dict(snapshot.id, snapshot.to_dict())
            new_status = transition(record.status, event)
            update = {"status": new_status.value}
            if new_status.is_terminal:
                update["endedAt"] = now
                record.ended_at = now
            transaction.update(doc_ref, update)
            record.status = new_status
            return record

        return _txn(self.db.transaction())

    def bind_room(
        self,
        call_id: str,
        room_id: str,
        caller_id: str,
        callee_id: str,
        caller_token: str,
        callee_token: str,
    ) -> CallRecord:
        from firebase_admin import firestore

        doc_ref = self._doc(call_id)

        @firestore.transactional
        def _txn(transaction):
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFound(f"call {call_id} not found", code="call_not_found")
            record = CallRecord.from_dict(snapshot.id, snapshot.to_dict())
            if (record.caller_id, record.callee_id) != (caller_id, callee_id):
                raise PermissionDenied(f"{caller_id}/{callee_id} are not the participants of call {call_id}")
            if record.status.is_terminal:
                raise FailedPrecondition(f"call already {record.status.value}", code="call_not_active")
            if record.room_id and record.room_id != room_id:
                raise FailedPrecondition(f"call {call_id} already bound to another room", code="room_already_bound")
            transaction.update(doc_ref, {
                "roomId": room_id,
                "hmsCallerToken": caller_token,
                "hmsDoctorToken": callee_token,
            })
            record.room_id = room_id
            record.caller_token = caller_token
            record.callee_token = callee_token
            return record

        return _txn(self.db.transaction())

    def find_stale_ringing(self, cutoff: datetime) -> List[str]:
        query = (
            self.db.collection(CALLS_COLLECTION)
            .where("status", "==", CallStatus.RINGING.value)
            .where("startedAt", "<", cutoff)
        )
        return [doc.id for doc in query.stream()]

    def mark_missed(self, call_ids: Sequence[str], now: datetime) -> List[str]:
        from firebase_admin import firestore

        changed = []
        for chunk in chunked(list(call_ids), MAX_TRANSACTION_WRITES):
            refs = [self._doc(call_id) for call_id in chunk]

            @firestore.transactional
            def _txn(transaction):
                # Firestore requires every read before the first write.
                snapshots = [ref.get(transaction=transaction) for ref in refs]
                updated = []
                for ref, snapshot in zip(refs, snapshots):
                    if not snapshot.exists:
                        continue
                    data = snapshot.to_dict() or {}
                    if data.get("status") != CallStatus.RINGING.value:
                        continue
                    transaction.update(ref, {
                        "status": transition(CallStatus.RINGING, CallEvent.TIMEOUT).value,
                        "endedAt": now,
                    })
                    updated.append(ref.id)
                return updated

            changed.extend(_txn(self.db.transaction()))
        return changed

    def find_aged_terminal(self, cutoff: datetime, limit: int) -> List[str]:
        query = (
            self.db.collection(CALLS_COLLECTION)
            .where("status", "in", [status.value for status in TERMINAL_STATUSES])
            .where("endedAt", "<", cutoff)
            .limit(limit)
        )
        return [doc.id for doc in query.stream()]


class FirestoreProfileStore:
    def __init__(self, db):
        self.db = db

    def get_profile(self, uid: str) -> Optional[UserProfile]:
        doc = self.db.collection(USERS_COLLECTION).document(uid).get()
        if not doc.exists:
            logger.info(f"User document not found: {uid}")
            return None
        return UserProfile.from_dict(uid, doc.to_dict() or {})

    def list_addressable(self, role: Optional[str] = None) -> List[UserProfile]:
        query = self.db.collection(USERS_COLLECTION)
        if role:
            query = query.where("role", "==", role)
        profiles = []
        for doc in query.stream():
            profile = UserProfile.from_dict(doc.id, doc.to_dict() or {})
            if profile.fcm_token:
                profiles.append(profile)
        return profiles

    def set_availability(self, uid: str, accepting: bool) -> None:
        from firebase_admin import firestore

        doc_ref = self.db.collection(DOCTOR_PROFILES_COLLECTION).document(uid)
        if not doc_ref.get().exists:
            raise NotFound("Doctor profile not found", code="profile_not_found")
        doc_ref.update({
            "acceptingInstantCalls": accepting,
            "statusUpdatedAt": firestore.SERVER_TIMESTAMP,
        })


class FirestoreNotificationLog:
    def __init__(self, db):
        self.db = db

    def save_broadcast(self, record: BroadcastRecord) -> str:
        from firebase_admin import firestore

        doc_ref = self.db.collection(ADMIN_NOTIFICATIONS_COLLECTION).document()
        doc_ref.set({**record.to_dict(), "sentAt": firestore.SERVER_TIMESTAMP})
        return doc_ref.id


class RealtimeSignalingStore:
    """Signaling entries under calls/{callId} in the Realtime Database."""

    def __init__(self, app=None):
        self.app = app

    def delete(self, call_id: str) -> None:
        from firebase_admin import db as rtdb

        rtdb.reference(f"{SIGNALING_ROOT}/{call_id}", app=self.app).delete()
