"""
Caller identity (Firebase ID tokens) and privilege checks.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .constants import OPERATOR_ROLES
from .errors import PermissionDenied, Unauthenticated
from .models import UserProfile
from .stores import ProfileStore

logger = logging.getLogger("callserver")


@dataclass(frozen=True)
class Identity:
    uid: str


def bearer_token(request) -> Optional[str]:
    header = request.META.get("HTTP_AUTHORIZATION", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


class FirebaseAuthenticator:
    """Verifies ``Authorization: Bearer <Firebase ID token>``."""

    def __init__(self, app=None, check_revoked: bool = False):
        self.app = app
        self.check_revoked = check_revoked

    def authenticate(self, request) -> Identity:
        from firebase_admin import auth

        id_token = bearer_token(request)
        if not id_token:
            raise Unauthenticated("User must be authenticated")

        try:
            decoded = auth.verify_id_token(id_token, app=self.app, check_revoked=self.check_revoked)
        except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError, ValueError) as e:
            logger.warning(f"[AUTH] Rejected ID token: {type(e).__name__}")
            raise Unauthenticated("User must be authenticated") from None
        except auth.CertificateFetchError as e:
            logger.error(f"[AUTH] Could not fetch verification certificates: {e}")
            raise Unauthenticated("Unable to verify credentials") from None

        uid = decoded.get("uid")
        if not uid:
            raise Unauthenticated("User must be authenticated")
        return Identity(uid=uid)


class AdmissionGate:
    def __init__(self, profiles: ProfileStore):
        self.profiles = profiles

    def require_operator(self, uid: str, message: str = "Only admins can send notifications") -> UserProfile:
        """Return the actor's profile if it holds an operator role.

        Only the actor's own profile is read.
        """
        profile = self.profiles.get_profile(uid)
        if profile is None or profile.role not in OPERATOR_ROLES:
            logger.warning(f"[AUTH] {uid} is not an operator (role={profile.role if profile else None})")
            raise PermissionDenied(message)
        return profile
