import logging

from django.http import JsonResponse

from ..errors import PermissionDenied
from ..http import endpoint, json_body, require_fields
from ..services import get_services

logger = logging.getLogger("callserver")


@endpoint("TOKEN")
def token(request):
    services = get_services()
    services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        logger.error("[TOKEN] Invalid JSON body")
        return error

    require_fields(data, "roomId", "role", "userId")

    issued = services.issuer.issue_token(data["roomId"], data["userId"], data["role"])
    return JsonResponse({
        "token": issued.token,
        "roomId": issued.room_id,
    })


@endpoint("CALL/ROOM")
def call_room(request):
    """
    Create the media room for a call and mint a token per participant.
    Both tokens are stored on the call record for the doctor to pick up.
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        return error

    require_fields(data, "callId", "callerId", "doctorId")
    if identity.uid not in (data["callerId"], data["doctorId"]):
        logger.warning(f"[CALL/ROOM] {identity.uid} is not a participant of {data['callId']}")
        raise PermissionDenied("Only call participants can create the room")

    pair = services.rooms.create_room_and_issue_pair(data["callId"], data["callerId"], data["doctorId"])
    return JsonResponse(pair.as_response())
