import logging

from django.http import JsonResponse

from ..http import endpoint, json_body
from ..services import get_services
from ..utils import run_async

logger = logging.getLogger("callserver")


@endpoint("NOTIFICATIONS/BROADCAST")
def broadcast(request):
    """
    Send an announcement to all users, doctors or parents (operators only).
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        return error

    summary = run_async(services.notifier.broadcast(
        actor_id=identity.uid,
        title=data.get("title"),
        body=data.get("body"),
        target=data.get("target"),
        image_url=data.get("imageUrl"),
        notification_type=data.get("type"),
        reference_id=data.get("referenceId"),
        reference_type=data.get("referenceType"),
        extra_data=data.get("extraData"),
    ))
    return JsonResponse(summary.as_response())


@endpoint("DOCTOR/AVAILABILITY")
def doctor_availability(request):
    """
    Toggle whether the calling doctor accepts instant calls.
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        return error

    services.calls.set_availability(identity.uid, data.get("acceptingInstantCalls"))
    logger.info(f"[DOCTOR/AVAILABILITY] {identity.uid} -> {data.get('acceptingInstantCalls')}")
    return JsonResponse({"success": True})
