"""
Wires the call services to their Firebase-backed collaborators.

Built lazily on first use; tests install their own container with
set_services().
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .auth import AdmissionGate, FirebaseAuthenticator
from .calls import CallService
from .config import CallServerConfig, get_config
from .notifier import Notifier
from .sweeper import LifecycleSweeper
from .tokens import RoomService, TokenIssuer

logger = logging.getLogger("callserver")


@dataclass
class Services:
    authenticator: object
    gate: AdmissionGate
    issuer: TokenIssuer
    rooms: RoomService
    calls: CallService
    notifier: Notifier
    sweeper: LifecycleSweeper


def build_services(config: CallServerConfig) -> Services:
    from .firebase_service import (
        FirestoreCallStore,
        FirestoreNotificationLog,
        FirestoreProfileStore,
        RealtimeSignalingStore,
        get_firestore,
        init_firebase_app,
    )
    from .push_service import APNsVoIPService, FCMService, PushNotificationService

    app = init_firebase_app(config)
    db = get_firestore(app, config.firestore_database_id)

    call_store = FirestoreCallStore(db)
    profiles = FirestoreProfileStore(db)
    signaling = RealtimeSignalingStore(app)
    gate = AdmissionGate(profiles)
    issuer = TokenIssuer.from_config(config)
    push = PushNotificationService(FCMService(app), APNsVoIPService(config.apns))

    if not config.has_signing_credentials:
        logger.warning("HMS credentials not configured - token issuance will fail")

    return Services(
        authenticator=FirebaseAuthenticator(app),
        gate=gate,
        issuer=issuer,
        rooms=RoomService(issuer, call_store),
        calls=CallService(call_store, signaling, profiles),
        notifier=Notifier(profiles, push, FirestoreNotificationLog(db), gate),
        sweeper=LifecycleSweeper(call_store, signaling),
    )


_services: Optional[Services] = None
_services_lock = threading.Lock()


def get_services() -> Services:
    global _services
    if _services is None:
        with _services_lock:
            if _services is None:
                _services = build_services(get_config())
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    with _services_lock:
        _services = services
