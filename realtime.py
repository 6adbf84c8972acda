# backend/realtime.py
from flask import current_app
from flask_socketio import SocketIO, emit, join_room, leave_room

# one shared instance for the whole app
socketio = SocketIO(cors_allowed_origins="*", ping_interval=25, ping_timeout=20)

NS = "/rt"


def _seat_room(trip_id, travel_date) -> str:
    return f"trip:{trip_id}:{travel_date}"


@socketio.on("connect", namespace=NS)
def on_connect(auth):
    emit("connected", {"ok": True})

@socketio.on("disconnect", namespace=NS)
def on_disconnect():
    pass

@socketio.on("subscribe", namespace=NS)
def on_subscribe(data):
    data = data or {}
    trip_id, travel_date = data.get("trip_id"), data.get("travel_date")
    if trip_id and travel_date:
        join_room(_seat_room(trip_id, travel_date))

@socketio.on("unsubscribe", namespace=NS)
def on_unsubscribe(data):
    data = data or {}
    trip_id, travel_date = data.get("trip_id"), data.get("travel_date")
    if trip_id and travel_date:
        leave_room(_seat_room(trip_id, travel_date))


def emit_seat_update(trip_id: int, travel_date: str, booked: list[int], *, capacity: int) -> None:
    """
    Push the live seat map of one trip/date to clients watching it.
    Best effort: a broadcast failure never affects the booking itself.
    """
    payload = {
        "trip_id": trip_id,
        "travel_date": travel_date,
        "booked": booked,
        "available": capacity - len(booked),
    }
    try:
        socketio.emit("seats:update", payload, to=_seat_room(trip_id, travel_date), namespace=NS)
    except Exception:
        current_app.logger.warning("[rt] seat broadcast failed trip=%s date=%s", trip_id, travel_date, exc_info=True)
