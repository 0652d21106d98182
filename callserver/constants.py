# Room tokens
TOKEN_TTL_SECONDS = 86400
TOKEN_TYPE = "app"
TOKEN_VERSION = 2
TOKEN_ALGORITHM = "HS256"

ROLE_GUEST = "guest"
ROLE_HOST = "host"

# Call lifecycle
RINGING_TIMEOUT_SECONDS = 60
SIGNALING_RETENTION_SECONDS = 3600
AGED_CLEANUP_LIMIT = 50
SWEEP_INTERVAL_SECONDS = 300

# Push
INCOMING_CALL_TTL_SECONDS = 60
BROADCAST_BATCH_SIZE = 500
OPERATOR_ROLES = {"admin", "creator"}

# Firestore collections / RTDB paths
USERS_COLLECTION = "users"
CALLS_COLLECTION = "calls"
DOCTOR_PROFILES_COLLECTION = "doctor_profiles"
ADMIN_NOTIFICATIONS_COLLECTION = "admin_notifications"
SIGNALING_ROOT = "calls"
