"""
Room token issuance for the external media service (100ms).

Tokens are HS256 JWTs scoped to one room and one user:
{access_key, room_id, user_id, role, type, version, iat, nbf, exp, jti}
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import jwt

from .config import CallServerConfig
from .constants import (
    ROLE_GUEST,
    ROLE_HOST,
    TOKEN_ALGORITHM,
    TOKEN_TTL_SECONDS,
    TOKEN_TYPE,
    TOKEN_VERSION,
)
from .errors import (
    ConfigurationError,
    FailedPrecondition,
    Internal,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from .stores import CallStore
from .utils import generate_room_id, parse_role

logger = logging.getLogger("callserver")


class HmsTokenSigner:
    """Signs claim sets with the app secret."""

    def __init__(self, app_secret: str):
        self._app_secret = app_secret

    def sign(self, claims: Dict[str, Any]) -> str:
        return jwt.encode(claims, self._app_secret, algorithm=TOKEN_ALGORITHM)


@dataclass
class IssuedToken:
    token: str = field(repr=False)
    room_id: str
    user_id: str
    role: str
    jwt_id: str
    issued_at: int
    expires_at: int


class TokenIssuer:
    def __init__(
        self,
        access_key: Optional[str],
        signer=None,
        clock: Callable[[], float] = time.time,
    ):
        self.access_key = access_key
        self.signer = signer
        self.clock = clock

    @classmethod
    def from_config(cls, config: CallServerConfig) -> "TokenIssuer":
        signer = HmsTokenSigner(config.hms_app_secret) if config.hms_app_secret else None
        return cls(config.hms_access_key, signer)

    def issue_token(self, room_id: str, subject_user_id: str, role: str) -> IssuedToken:
        if not room_id or not subject_user_id or not role:
            raise InvalidArgument("roomId, role, and userId are required", code="missing_fields")

        hms_role = parse_role(role)
        if hms_role is None:
            raise InvalidArgument(f"unsupported role: {role}", code="invalid_role")

        if not self.access_key or self.signer is None:
            raise ConfigurationError("100ms credentials not configured")

        now = int(self.clock())
        jwt_id = str(uuid.uuid4())
        claims = {
            "access_key": self.access_key,
            "room_id": room_id,
            "user_id": subject_user_id,
            "role": hms_role,
            "type": TOKEN_TYPE,
            "version": TOKEN_VERSION,
            "iat": now,
            "nbf": now,
            "exp": now + TOKEN_TTL_SECONDS,
            "jti": jwt_id,
        }

        try:
            token = self.signer.sign(claims)
        except Exception as e:
            logger.error(f"[TOKEN] Signing failed for room {room_id}: {type(e).__name__}")
            raise Internal("Failed to generate video call token", code="signing_failed") from e

        logger.info(f"[TOKEN] Issued token for user {subject_user_id} in room {room_id} with role {hms_role}")
        return IssuedToken(
            token=token,
            room_id=room_id,
            user_id=subject_user_id,
            role=hms_role,
            jwt_id=jwt_id,
            issued_at=now,
            expires_at=now + TOKEN_TTL_SECONDS,
        )


@dataclass
class RoomPair:
    room_id: str
    caller_token: IssuedToken
    callee_token: IssuedToken

    def as_response(self) -> Dict[str, str]:
        return {
            "roomId": self.room_id,
            "callerToken": self.caller_token.token,
            "doctorToken": self.callee_token.token,
        }


class RoomService:
    """Mints a caller/callee token pair for a call and persists it on the record.

    Minting happens before persisting; if the write fails the pair is unusable
    and the caller is expected to retry the whole request.
    """

    def __init__(self, issuer: TokenIssuer, calls: CallStore):
        self.issuer = issuer
        self.calls = calls

    def create_room_and_issue_pair(self, call_id: str, caller_id: str, callee_id: str) -> RoomPair:
        if not call_id or not caller_id or not callee_id:
            raise InvalidArgument("callId, callerId, and doctorId are required", code="missing_fields")

        room_id = generate_room_id(call_id)
        caller_token = self.issuer.issue_token(room_id, caller_id, ROLE_GUEST)
        callee_token = self.issuer.issue_token(room_id, callee_id, ROLE_HOST)

        try:
            self.calls.bind_room(call_id, room_id, caller_id, callee_id, caller_token.token, callee_token.token)
        except (FailedPrecondition, PermissionDenied):
            raise
        except NotFound as e:
            logger.error(f"[ROOM] Call record missing for {call_id}")
            raise Internal("Failed to create video call room", code="room_persist_failed") from e
        except Exception as e:
            logger.error(f"[ROOM] Failed to persist room binding for {call_id}: {e}")
            raise Internal("Failed to create video call room", code="room_persist_failed") from e

        logger.info(f"[ROOM] Created room {room_id} for call between {caller_id} and {callee_id}")
        return RoomPair(room_id=room_id, caller_token=caller_token, callee_token=callee_token)
