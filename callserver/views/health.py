import logging

from django.http import JsonResponse

from ..http import endpoint
from ..services import get_services

logger = logging.getLogger("callserver")


@endpoint("HEALTH", methods=("GET",))
def health(request):
    try:
        get_services()
        firebase_ok = True
    except Exception as e:
        logger.error(f"[HEALTH] Firebase unavailable: {e}")
        firebase_ok = False

    return JsonResponse({
        "status": "ok",
        "firebase": "connected" if firebase_ok else "not_configured",
    })
