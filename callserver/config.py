"""
Process-wide configuration, resolved once from the environment.

Secrets (room signing key, APNs key) are loaded here and injected into the
services that need them; nothing else reads ``os.environ`` at request time.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from .constants import SWEEP_INTERVAL_SECONDS


@dataclass(frozen=True)
class APNsConfig:
    team_id: Optional[str] = None
    key_id: Optional[str] = None
    bundle_id: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)
    use_sandbox: bool = False

    def is_configured(self) -> bool:
        return all([self.team_id, self.key_id, self.bundle_id, self.private_key])


@dataclass(frozen=True)
class CallServerConfig:
    hms_access_key: Optional[str] = None
    hms_app_secret: Optional[str] = field(default=None, repr=False)
    firebase_project_id: Optional[str] = None
    firebase_use_emulator: bool = False
    firebase_service_account: Optional[str] = field(default=None, repr=False)
    firebase_service_account_path: Optional[str] = None
    firebase_database_url: Optional[str] = None
    firestore_database_id: Optional[str] = None
    apns: APNsConfig = field(default_factory=APNsConfig)
    sweep_interval_seconds: int = SWEEP_INTERVAL_SECONDS

    @property
    def has_signing_credentials(self) -> bool:
        return bool(self.hms_access_key and self.hms_app_secret)


def _read_apns_key(env) -> Optional[str]:
    key_path = env.get("APNS_KEY_PATH")
    key_content = env.get("APNS_KEY_CONTENT")
    if key_path and os.path.exists(key_path):
        with open(key_path, "r") as f:
            return f.read()
    if key_content:
        # Handle escaped newlines in env var
        return key_content.replace("\\n", "\n")
    return None


def _int_env(env, key: str, default: int) -> int:
    try:
        value = int(env.get(key, default))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def load_config(env=None) -> CallServerConfig:
    env = os.environ if env is None else env
    return CallServerConfig(
        hms_access_key=env.get("HMS_ACCESS_KEY") or None,
        hms_app_secret=env.get("HMS_APP_SECRET") or None,
        firebase_project_id=env.get("FIREBASE_PROJECT_ID") or None,
        firebase_use_emulator=env.get("FIREBASE_USE_EMULATOR", "false").lower() == "true",
        firebase_service_account=env.get("FIREBASE_SERVICE_ACCOUNT") or None,
        firebase_service_account_path=env.get("FIREBASE_SERVICE_ACCOUNT_PATH") or None,
        firebase_database_url=env.get("FIREBASE_DATABASE_URL") or None,
        firestore_database_id=env.get("FIRESTORE_DATABASE_ID") or None,
        apns=APNsConfig(
            team_id=env.get("APNS_TEAM_ID") or None,
            key_id=env.get("APNS_KEY_ID") or None,
            bundle_id=env.get("APNS_BUNDLE_ID") or None,
            private_key=_read_apns_key(env),
            use_sandbox=env.get("APNS_USE_SANDBOX", "0") == "1",
        ),
        sweep_interval_seconds=_int_env(
            env, "CALLSERVER_SWEEP_INTERVAL_SECONDS", SWEEP_INTERVAL_SECONDS
        ),
    )


@lru_cache(maxsize=1)
def get_config() -> CallServerConfig:
    return load_config()
