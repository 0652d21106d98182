"""
Push notification transport: FCM via Firebase Admin SDK, APNs VoIP over HTTP/2
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
import jwt

from .config import APNsConfig
from .models import UserProfile

logger = logging.getLogger("callserver")


@dataclass
class PushResult:
    """Result of a push notification attempt"""
    success: bool
    platform: str
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class BatchResult:
    """Result of one multicast dispatch"""
    size: int
    success_count: int = 0
    failure_count: int = 0
    error: Optional[str] = None
    failed_codes: List[str] = field(default_factory=list)


def _mask(token: str) -> str:
    return f"{token[:20]}..." if token else ""


class APNsVoIPService:
    """
    Apple Push Notification service for VoIP pushes.
    Uses HTTP/2 with JWT authentication.
    """

    APNS_PRODUCTION_HOST = "api.push.apple.com"
    APNS_SANDBOX_HOST = "api.sandbox.push.apple.com"

    def __init__(self, config: APNsConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def is_configured(self) -> bool:
        return self.config.is_configured()

    def _generate_token(self) -> str:
        """Generate JWT token for APNs authentication"""
        headers = {
            "alg": "ES256",
            "kid": self.config.key_id,
        }
        payload = {
            "iss": self.config.team_id,
            "iat": int(time.time()),
        }
        return jwt.encode(payload, self.config.private_key, algorithm="ES256", headers=headers)

    async def send_voip_push(
        self,
        device_token: str,
        payload: Dict[str, Any],
        call_id: str,
        ttl: int,
    ) -> PushResult:
        if not self.is_configured():
            return PushResult(
                success=False,
                platform="ios",
                error="APNs not configured",
                error_code="not_configured",
            )

        host = self.APNS_SANDBOX_HOST if self.config.use_sandbox else self.APNS_PRODUCTION_HOST
        url = f"https://{host}/3/device/{device_token}"

        headers = {
            "authorization": f"bearer {self._generate_token()}",
            "apns-topic": f"{self.config.bundle_id}.voip",
            "apns-push-type": "voip",
            "apns-priority": "10",
            # Drop the push once the ringing window has passed
            "apns-expiration": str(int(time.time()) + ttl),
            "apns-collapse-id": call_id,
        }

        try:
            async with httpx.AsyncClient(http2=True, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=payload, timeout=30.0)
        except httpx.TimeoutException:
            logger.error("[APNs] Push timeout")
            return PushResult(success=False, platform="ios", error="Request timeout", error_code="timeout")
        except httpx.HTTPError as e:
            logger.error(f"[APNs] Push exception: {e}")
            return PushResult(success=False, platform="ios", error=str(e), error_code="exception")

        if response.status_code == 200:
            apns_id = response.headers.get("apns-id")
            logger.info(f"[APNs] VoIP push sent successfully: {apns_id}")
            return PushResult(success=True, platform="ios", message_id=apns_id)

        try:
            reason = response.json().get("reason", "Unknown")
        except ValueError:
            reason = response.text or "Unknown error"
        logger.error(f"[APNs] Push failed: {response.status_code} - {reason}")
        return PushResult(
            success=False,
            platform="ios",
            error=reason,
            error_code=str(response.status_code),
        )


class FCMService:
    """
    Firebase Cloud Messaging via the Firebase Admin SDK.
    """

    def __init__(self, app=None):
        self.app = app

    async def send_call_message(
        self,
        device_token: str,
        data: Dict[str, str],
        ttl: int,
    ) -> PushResult:
        """Send a high-priority, data-only message that wakes the callee's device."""
        from firebase_admin import exceptions as fb_exceptions
        from firebase_admin import messaging

        # All data values must be strings
        string_data = {k: str(v) for k, v in data.items()}

        message = messaging.Message(
            token=device_token,
            data=string_data,
            android=messaging.AndroidConfig(
                priority="high",
                ttl=ttl,
            ),
            apns=messaging.APNSConfig(
                headers={
                    "apns-priority": "10",
                    "apns-push-type": "voip",
                },
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(content_available=True, sound="default", badge=1),
                ),
            ),
        )

        try:
            response = messaging.send(message, app=self.app)
        except messaging.UnregisteredError:
            logger.warning(f"[FCM] Token unregistered: {_mask(device_token)}")
            return PushResult(success=False, platform="android", error="Token unregistered", error_code="UNREGISTERED")
        except messaging.SenderIdMismatchError:
            logger.error("[FCM] Sender ID mismatch")
            return PushResult(success=False, platform="android", error="Sender ID mismatch", error_code="SENDER_ID_MISMATCH")
        except fb_exceptions.FirebaseError as e:
            logger.error(f"[FCM] Send error: {e}")
            return PushResult(success=False, platform="android", error=str(e), error_code=str(e.code))

        logger.info(f"[FCM] Message sent successfully: {response}")
        return PushResult(success=True, platform="android", message_id=response)

    async def send_multicast(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Dict[str, str],
        image_url: Optional[str] = None,
    ) -> BatchResult:
        """Send one notification to at most 500 devices."""
        from firebase_admin import messaging

        message = messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(title=title, body=body, image=image_url),
            data={k: str(v) for k, v in data.items()},
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    channel_id="high_importance_channel",
                    priority="high",
                    default_sound=True,
                    default_vibrate_timings=True,
                ),
            ),
            apns=messaging.APNSConfig(
                headers={"apns-priority": "10"},
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(
                        alert=messaging.ApsAlert(title=title, body=body),
                        sound="default",
                        badge=1,
                    ),
                ),
            ),
        )

        response = messaging.send_each_for_multicast(message, app=self.app)
        result = BatchResult(
            size=len(tokens),
            success_count=response.success_count,
            failure_count=response.failure_count,
        )
        for idx, resp in enumerate(response.responses):
            if not resp.success:
                code = getattr(resp.exception, "code", None) or type(resp.exception).__name__
                result.failed_codes.append(str(code))
                logger.info(f"[FCM] Token {idx} failed: {code}")
        return result


class PushNotificationService:
    """
    Routes pushes to APNs (iOS VoIP) or FCM depending on the profile.
    """

    def __init__(self, fcm: FCMService, apns: Optional[APNsVoIPService] = None):
        self.fcm = fcm
        self.apns = apns

    def _uses_apns(self, profile: UserProfile) -> bool:
        return (
            profile.platform == "ios"
            and bool(profile.voip_token)
            and self.apns is not None
            and self.apns.is_configured()
        )

    def can_deliver(self, profile: UserProfile) -> bool:
        """A VoIP token only counts while APNs is configured and the device is iOS."""
        return self._uses_apns(profile) or bool(profile.fcm_token)

    async def send_incoming_call(
        self,
        profile: UserProfile,
        data: Dict[str, str],
        call_id: str,
        ttl: int,
    ) -> PushResult:
        if self._uses_apns(profile):
            apns_payload = {
                "aps": {
                    "alert": {
                        "title": "Incoming Call",
                        "body": f"{data.get('nameCaller', 'Unknown')} is calling...",
                    },
                    "sound": "default",
                },
                **data,
            }
            return await self.apns.send_voip_push(profile.voip_token, apns_payload, call_id, ttl)

        if profile.fcm_token:
            return await self.fcm.send_call_message(profile.fcm_token, data, ttl)

        return PushResult(
            success=False,
            platform=profile.platform or "",
            error="No valid token",
            error_code="missing_token",
        )

    async def send_multicast(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Dict[str, str],
        image_url: Optional[str] = None,
    ) -> BatchResult:
        return await self.fcm.send_multicast(tokens, title, body, data, image_url=image_url)
