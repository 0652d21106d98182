"""Tests for the JSON endpoints."""

from __future__ import annotations

import jwt
import pytest

from callserver.state import CallStatus

from conftest import APP_SECRET, auth


def _post(client, path, data, uid=None):
    headers = auth(uid) if uid else {}
    return client.post(f"/api/{path}", data=data, content_type="application/json", **headers)


@pytest.mark.parametrize(
    "path",
    ["token", "call/create", "call/room", "call/notify", "call/answer", "call/end",
     "doctor/availability", "notifications/broadcast", "call/timeout/sweep"],
)
def test_endpoints_require_authentication(client, services, path):
    resp = _post(client, path, {})
    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthenticated"


def test_method_not_allowed(client, services):
    resp = client.get("/api/token")
    assert resp.status_code == 405


def test_invalid_json(client, services):
    resp = client.post("/api/token", data="not json", content_type="application/json", **auth("u"))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("invalid_json")


def test_issue_token(client, services):
    resp = _post(client, "token", {"roomId": "room-1", "role": "host", "userId": "doctor-1"}, uid="doctor-1")

    assert resp.status_code == 200
    body = resp.json()
    assert body["roomId"] == "room-1"
    claims = jwt.decode(body["token"], APP_SECRET, algorithms=["HS256"],
                        options={"verify_exp": False, "verify_nbf": False, "verify_iat": False})
    assert claims["user_id"] == "doctor-1"


def test_issue_token_missing_field(client, services):
    resp = _post(client, "token", {"roomId": "room-1", "role": "host"}, uid="u")
    assert resp.status_code == 400
    assert resp.json()["error"] == "missing_fields"


def test_create_call_then_room(client, services, call_store):
    resp = _post(client, "call/create", {"callId": "call-1", "doctorId": "doctor-1"}, uid="caller-1")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ringing"
    assert call_store.get("call-1").caller_id == "caller-1"

    resp = _post(client, "call/room", {"callId": "call-1", "callerId": "caller-1", "doctorId": "doctor-1"},
                 uid="caller-1")
    assert resp.status_code == 200
    body = resp.json()
    assert body["roomId"] == "call-1"
    assert call_store.get("call-1").callee_token == body["doctorToken"]


def test_create_call_duplicate_id(client, services, call_store):
    call_store.add("call-1")
    resp = _post(client, "call/create", {"callId": "call-1", "doctorId": "doctor-1"}, uid="caller-1")
    assert resp.status_code == 409


def test_create_room_for_outsider_denied(client, services, call_store):
    call_store.add("call-1")
    resp = _post(client, "call/room", {"callId": "call-1", "callerId": "caller-1", "doctorId": "doctor-1"},
                 uid="someone-else")
    assert resp.status_code == 403
    assert call_store.get("call-1").caller_token is None


def test_create_room_for_someone_elses_call_denied(client, services, call_store):
    victim = call_store.add("call-1")
    victim.caller_token = "victim-caller-token"
    victim.callee_token = "victim-doctor-token"

    resp = _post(client, "call/room", {"callId": "call-1", "callerId": "intruder", "doctorId": "doctor-1"},
                 uid="intruder")

    assert resp.status_code == 403
    assert "callerToken" not in resp.json()
    record = call_store.get("call-1")
    assert record.caller_token == "victim-caller-token"
    assert record.callee_token == "victim-doctor-token"


def test_create_room_on_ended_call(client, services, call_store):
    call_store.add("call-1", status=CallStatus.MISSED, ended_ago=10)
    resp = _post(client, "call/room", {"callId": "call-1", "callerId": "caller-1", "doctorId": "doctor-1"},
                 uid="caller-1")
    assert resp.status_code == 409


def test_create_room_persist_failure(client, services, call_store):
    call_store.add("call-1")
    call_store.fail_bind = True
    resp = _post(client, "call/room", {"callId": "call-1", "callerId": "caller-1", "doctorId": "doctor-1"},
                 uid="caller-1")
    assert resp.status_code == 500
    assert resp.json()["error"] == "room_persist_failed"


def test_notify_without_fcm_token(client, services, profiles, push):
    profiles.add("doctor-1", role="doctor")
    resp = _post(client, "call/notify", {"callId": "call-1", "doctorId": "doctor-1", "callerName": "Ana"},
                 uid="caller-1")
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "reason": "no_fcm_token"}
    assert push.incoming == []


def test_notify_uses_authenticated_caller(client, services, profiles, push):
    profiles.add("doctor-1", role="doctor", fcm_token="fcm")
    resp = _post(client, "call/notify", {"callId": "call-1", "doctorId": "doctor-1"}, uid="caller-1")
    assert resp.json() == {"success": True}
    assert push.incoming[0][1]["callerId"] == "caller-1"


def test_notify_missing_fields(client, services):
    resp = _post(client, "call/notify", {"callId": "call-1"}, uid="caller-1")
    assert resp.status_code == 400


def test_answer_and_end(client, services, call_store, signaling):
    call_store.add("call-1")
    signaling.entries["call-1"] = {}

    resp = _post(client, "call/answer", {"callId": "call-1", "action": "accept"}, uid="doctor-1")
    assert resp.json()["status"] == "connected"
    assert "call-1" in signaling.entries

    resp = _post(client, "call/end", {"callId": "call-1"}, uid="caller-1")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ended"
    assert call_store.get("call-1").ended_at is not None
    assert "call-1" not in signaling.entries


def test_decline_cleans_signaling(client, services, call_store, signaling):
    call_store.add("call-1")
    signaling.entries["call-1"] = {}

    resp = _post(client, "call/answer", {"callId": "call-1", "action": "decline"}, uid="doctor-1")

    assert resp.json()["status"] == "declined"
    assert "call-1" not in signaling.entries


def test_caller_cannot_answer(client, services, call_store):
    call_store.add("call-1")
    resp = _post(client, "call/answer", {"callId": "call-1", "action": "accept"}, uid="caller-1")
    assert resp.status_code == 403


def test_answer_after_missed_is_rejected(client, services, call_store):
    call_store.add("call-1", status=CallStatus.MISSED, ended_ago=5)
    resp = _post(client, "call/answer", {"callId": "call-1", "action": "accept"}, uid="doctor-1")
    assert resp.status_code == 409
    assert resp.json()["error"] == "call_not_active"
    assert call_store.get("call-1").status == CallStatus.MISSED


def test_end_unknown_call(client, services):
    resp = _post(client, "call/end", {"callId": "nope"}, uid="caller-1")
    assert resp.status_code == 404


def test_status_shows_only_own_token(client, services, call_store):
    record = call_store.add("call-1")
    record.room_id = "call-1"
    record.caller_token = "caller-token"
    record.callee_token = "doctor-token"

    resp = client.get("/api/call/status/call-1", **auth("doctor-1"))
    body = resp.json()
    assert body["token"] == "doctor-token"
    assert "caller-token" not in resp.content.decode()

    resp = client.get("/api/call/status/call-1", **auth("caller-1"))
    assert resp.json()["token"] == "caller-token"


def test_status_hides_tokens_once_terminal(client, services, call_store):
    record = call_store.add("call-1", status=CallStatus.ENDED, ended_ago=5)
    record.caller_token = "caller-token"

    body = client.get("/api/call/status/call-1", **auth("caller-1")).json()
    assert "token" not in body
    assert body["status"] == "ended"


def test_status_denied_for_outsider(client, services, call_store):
    call_store.add("call-1")
    resp = client.get("/api/call/status/call-1", **auth("intruder"))
    assert resp.status_code == 403


def test_availability(client, services, profiles):
    profiles.doctor_profiles["doctor-1"] = {"acceptingInstantCalls": False}
    resp = _post(client, "doctor/availability", {"acceptingInstantCalls": True}, uid="doctor-1")
    assert resp.json() == {"success": True}
    assert profiles.doctor_profiles["doctor-1"]["acceptingInstantCalls"] is True


def test_availability_without_profile(client, services):
    resp = _post(client, "doctor/availability", {"acceptingInstantCalls": True}, uid="doctor-1")
    assert resp.status_code == 404


def test_broadcast_endpoint(client, services, profiles, push):
    profiles.add("admin", role="admin")
    profiles.add("u1", role="user", fcm_token="t1")
    resp = _post(client, "notifications/broadcast", {"title": "Hi", "body": "There", "target": "all"}, uid="admin")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "sentCount": 1, "notificationId": "notification-1"}


def test_broadcast_endpoint_records_type(client, services, profiles, history):
    profiles.add("admin", role="admin")
    profiles.add("u1", role="user", fcm_token="t1")
    resp = _post(client, "notifications/broadcast", {"title": "Hi", "body": "There", "type": "event"}, uid="admin")
    assert resp.status_code == 200
    assert history.records[0].type == "event"


def test_broadcast_endpoint_denied(client, services, profiles):
    profiles.add("u1", role="user", fcm_token="t1")
    resp = _post(client, "notifications/broadcast", {"title": "Hi", "body": "There"}, uid="u1")
    assert resp.status_code == 403
    assert resp.json()["error"] == "permission_denied"


def test_broadcast_endpoint_missing_body(client, services, profiles):
    profiles.add("admin", role="admin")
    resp = _post(client, "notifications/broadcast", {"title": "Hi"}, uid="admin")
    assert resp.status_code == 400


def test_sweep_endpoint(client, services, profiles, call_store):
    profiles.add("admin", role="admin")
    call_store.add("stale", started_ago=120)

    resp = _post(client, "call/timeout/sweep", {}, uid="admin")

    assert resp.status_code == 200
    assert resp.json()["missedCount"] == 1
    assert call_store.get("stale").status == CallStatus.MISSED


def test_sweep_endpoint_requires_operator(client, services, profiles):
    profiles.add("u1", role="user")
    resp = _post(client, "call/timeout/sweep", {}, uid="u1")
    assert resp.status_code == 403


def test_health(client, services):
    resp = client.get("/api/health")
    assert resp.json() == {"status": "ok", "firebase": "connected"}
