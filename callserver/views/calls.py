import logging

from django.http import JsonResponse

from ..calls import call_view
from ..http import endpoint, json_body, require_fields
from ..services import get_services
from ..sweeper import sweep_stale_calls
from ..utils import format_timestamp, run_async

logger = logging.getLogger("callserver")


@endpoint("CALL/CREATE")
def call_create(request):
    """
    Create a ringing call record. The authenticated user is the caller.
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        return error

    record = services.calls.create_call(
        caller_id=identity.uid,
        callee_id=data.get("doctorId"),
        call_id=data.get("callId"),
    )

    return JsonResponse({
        "success": True,
        "callId": record.call_id,
        "status": record.status.value,
        "startedAt": format_timestamp(record.started_at),
    })


@endpoint("CALL/NOTIFY")
def call_notify(request):
    """
    Send the incoming-call push to the doctor. A doctor without a push
    address is a soft failure: {"success": false, "reason": "no_fcm_token"}.
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        return error

    require_fields(data, "callId", "doctorId")

    result = run_async(services.notifier.notify_incoming_call(
        callee_id=data["doctorId"],
        call_id=data["callId"],
        caller_id=identity.uid,
        caller_name=data.get("callerName") or "",
        caller_photo=data.get("callerPhoto") or "",
    ))
    return JsonResponse(result.as_response())


@endpoint("CALL/ANSWER")
def call_answer(request):
    """
    Accept or decline a ringing call (doctor only).
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        return error

    require_fields(data, "callId", "action")

    record = services.calls.answer(data["callId"], identity.uid, data["action"])
    return JsonResponse({
        "success": True,
        "callId": record.call_id,
        "roomId": record.room_id,
        "status": record.status.value,
    })


@endpoint("CALL/END")
def call_end(request):
    """
    End a call from either side, ringing or connected.
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    data, error = json_body(request)
    if error:
        return error

    require_fields(data, "callId")

    record = services.calls.end(data["callId"], identity.uid)
    return JsonResponse({
        "success": True,
        "callId": record.call_id,
        "status": record.status.value,
        "endedAt": format_timestamp(record.ended_at),
    })


@endpoint("CALL/STATUS", methods=("GET",))
def call_status(request, call_id):
    """
    Call record for a participant. Each participant only sees their own
    room token, and only while the call is still joinable.
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)

    record = services.calls.get_for_participant(call_id, identity.uid)
    return JsonResponse(call_view(record, identity.uid))


@endpoint("CALL/TIMEOUT_SWEEP")
def call_timeout_sweep(request):
    """
    Operator-triggered sweep, for external schedulers.
    """
    services = get_services()
    identity = services.authenticator.authenticate(request)
    services.gate.require_operator(identity.uid, "Only admins can trigger a sweep")

    summary = sweep_stale_calls(services.sweeper)
    return JsonResponse({"success": not summary.errors, **summary.as_dict()})
