from django.urls import path
from . import views

urlpatterns = [
    # Health check
    path("health", views.health, name="health"),

    # 100ms room tokens
    path("token", views.token, name="token"),
    path("call/room", views.call_room, name="call_room"),

    # Call lifecycle (Firestore-based)
    path("call/create", views.call_create, name="call_create"),
    path("call/notify", views.call_notify, name="call_notify"),
    path("call/answer", views.call_answer, name="call_answer"),
    path("call/end", views.call_end, name="call_end"),
    path("call/status/<str:call_id>", views.call_status, name="call_status"),
    path("call/timeout/sweep", views.call_timeout_sweep, name="call_timeout_sweep"),

    # Doctors and operators
    path("doctor/availability", views.doctor_availability, name="doctor_availability"),
    path("notifications/broadcast", views.broadcast, name="broadcast"),
]
