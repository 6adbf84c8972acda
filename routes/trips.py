# backend/routes/trips.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from db import db
from auth_guard import require_role
from models.bus import Bus
from models.route import Route
from models.ticket import Ticket
from models.trip import Trip, TripStop, TRIP_STATUSES, WEEKDAYS
from services.errors import Conflict, NotFound, ValidationFailed
from services.reservations import LIVE_STATUSES, booked_seats
from utils.time_window import weekday_code
from utils.validation import (
    ErrorCollector, clean_str, json_body, parse_choice, parse_date, parse_int, parse_time, require_fields,
)

trips_bp = Blueprint("trips", __name__, url_prefix="/trips")


def _hhmm(t) -> str | None:
    return t.strftime("%H:%M") if t else None


def _total_bookings(trip_id: int, travel_date=None) -> int:
    q = Ticket.query.filter(Ticket.trip_id == trip_id, Ticket.status.in_(LIVE_STATUSES))
    if travel_date is not None:
        q = q.filter(Ticket.travel_date == travel_date)
    return q.count()


def trip_json(t: Trip, travel_date=None) -> dict:
    out = {
        "id": t.id,
        "tripName": t.trip_name,
        "routeId": t.route_id,
        "busId": t.bus_id,
        "departureTime": _hhmm(t.departure_time),
        "arrivalTime": _hhmm(t.arrival_time),
        "ticketSaleEndTime": _hhmm(t.ticket_sale_end_time),
        "activeDays": t.active_day_list,
        "status": t.status,
        "stops": [{"stopName": s.stop_name, "stopTime": _hhmm(s.stop_time)} for s in t.stops],
        "totalBookings": _total_bookings(t.id, travel_date),
    }
    if travel_date is not None:
        booked = booked_seats(t.id, travel_date)
        capacity = t.bus.capacity if t.bus else 0
        out["seatMap"] = {
            "travelDate": travel_date.isoformat(),
            "capacity": capacity,
            "booked": booked,
            "available": [n for n in range(1, capacity + 1) if n not in set(booked)],
        }
    return out


def _get_trip_or_404(trip_id: int) -> Trip:
    trip = db.session.get(Trip, trip_id)
    if not trip:
        raise NotFound("Trip not found")
    return trip


def _parse_days(raw) -> str:
    if not isinstance(raw, list) or not raw:
        raise ValidationFailed(details=[f"activeDays must be a non-empty list of: {', '.join(WEEKDAYS)}"])
    days = [str(d).strip().upper() for d in raw]
    bad = [d for d in days if d not in WEEKDAYS]
    if bad:
        raise ValidationFailed(details=[f"activeDays contains invalid day(s): {', '.join(bad)}"])
    # keep calendar order, drop duplicates
    return ",".join(d for d in WEEKDAYS if d in days)


def _parse_stops(raw) -> list[TripStop]:
    if not isinstance(raw, list):
        raise ValidationFailed(details=["stops must be a list"])

    check = ErrorCollector()
    out: list[TripStop] = []
    for i, s in enumerate(raw, start=1):
        if not isinstance(s, dict):
            check.details.append(f"stops[{i}] must be an object")
            continue
        out.append(TripStop(
            seq=i,
            stop_name=check(clean_str, s.get("stopName"), f"stops[{i}].stopName", max_len=128),
            stop_time=check(parse_time, s.get("stopTime"), f"stops[{i}].stopTime"),
        ))
    check.raise_if_any()
    return out


def _validate_schedule(trip: Trip) -> None:
    problems = []
    if trip.departure_time and trip.arrival_time and trip.arrival_time <= trip.departure_time:
        problems.append("arrivalTime must be after departureTime")

    names = [s.stop_name.lower() for s in trip.stops]
    if len(names) != len(set(names)):
        problems.append("stop names must be unique within a trip")
    for s in trip.stops:
        if not (trip.departure_time < s.stop_time < trip.arrival_time):
            problems.append(f"stop '{s.stop_name}' must be strictly between departureTime and arrivalTime")
    if problems:
        raise ValidationFailed(details=problems)


def _apply(trip: Trip, data: dict, check: ErrorCollector) -> None:
    if "tripName" in data:
        trip.trip_name = check(clean_str, data["tripName"], "tripName", max_len=128)
    if "routeId" in data:
        rid = check(parse_int, data["routeId"], "routeId", lo=1)
        if rid is not None and not db.session.get(Route, rid):
            check.details.append("routeId does not reference an existing route")
        trip.route_id = rid
    if "busId" in data:
        bid = check(parse_int, data["busId"], "busId", lo=1)
        if bid is not None and not db.session.get(Bus, bid):
            check.details.append("busId does not reference an existing bus")
        trip.bus_id = bid
    if "departureTime" in data:
        trip.departure_time = check(parse_time, data["departureTime"], "departureTime")
    if "arrivalTime" in data:
        trip.arrival_time = check(parse_time, data["arrivalTime"], "arrivalTime")
    if "ticketSaleEndTime" in data:
        raw = data["ticketSaleEndTime"]
        trip.ticket_sale_end_time = None if raw in (None, "") else check(parse_time, raw, "ticketSaleEndTime")
    if "activeDays" in data:
        trip.active_days = check(_parse_days, data["activeDays"])
    if "status" in data:
        trip.status = check(parse_choice, data["status"], "status", TRIP_STATUSES)
    if "stops" in data:
        stops = check(_parse_stops, data["stops"])
        if stops is not None:
            trip.stops = stops


@trips_bp.route("", methods=["GET"])
def search_trips():
    """
    GET /trips?busId=&routeId=&status=&date=YYYY-MM-DD
    With ``date`` only trips running on that weekday are returned, each with
    its seat map for the date.
    """
    args = request.args
    check = ErrorCollector()
    q = Trip.query
    if (args.get("busId") or "").strip():
        q = q.filter(Trip.bus_id == check(parse_int, args["busId"], "busId", lo=1))
    if (args.get("routeId") or "").strip():
        q = q.filter(Trip.route_id == check(parse_int, args["routeId"], "routeId", lo=1))
    if (args.get("status") or "").strip():
        q = q.filter(Trip.status == check(parse_choice, args["status"].strip(), "status", TRIP_STATUSES))
    day = check(parse_date, args["date"], "date") if (args.get("date") or "").strip() else None
    check.raise_if_any()

    trips = q.order_by(Trip.departure_time.asc(), Trip.id.asc()).all()
    if day is not None:
        code = weekday_code(day)
        trips = [t for t in trips if code in t.active_day_list]
    return jsonify([trip_json(t, day) for t in trips]), 200


@trips_bp.route("/<int:trip_id>", methods=["GET"])
def get_trip(trip_id: int):
    trip = _get_trip_or_404(trip_id)
    raw = (request.args.get("date") or "").strip()
    day = parse_date(raw, "date") if raw else None
    return jsonify(trip_json(trip, day)), 200


@trips_bp.route("", methods=["POST"])
@require_role("admin")
def create_trip():
    data = json_body()
    require_fields(data, ("tripName", "routeId", "busId", "departureTime", "arrivalTime", "activeDays"))

    trip = Trip(status="ACTIVE")
    check = ErrorCollector()
    _apply(trip, data, check)
    check.raise_if_any()
    _validate_schedule(trip)

    db.session.add(trip)
    db.session.commit()

    current_app.logger.info(
        "[trips] created id=%s bus=%s route=%s dep=%s", trip.id, trip.bus_id, trip.route_id, _hhmm(trip.departure_time)
    )
    return jsonify(message="Trip created successfully", trip=trip_json(trip)), 201


@trips_bp.route("/<int:trip_id>", methods=["PUT", "PATCH"])
@require_role("admin")
def update_trip(trip_id: int):
    trip = _get_trip_or_404(trip_id)
    data = json_body()

    check = ErrorCollector()
    with db.session.no_autoflush:
        _apply(trip, data, check)
        if not check.details:
            try:
                _validate_schedule(trip)
            except ValidationFailed as e:
                check.details.extend(e.details)
    if check.details:
        db.session.rollback()
    check.raise_if_any()

    db.session.commit()
    current_app.logger.info("[trips] updated id=%s fields=%s", trip.id, sorted(data))
    return jsonify(message="Trip updated successfully", trip=trip_json(trip)), 200


@trips_bp.route("/<int:trip_id>", methods=["DELETE"])
@require_role("admin")
def delete_trip(trip_id: int):
    trip = _get_trip_or_404(trip_id)
    if Ticket.query.filter_by(trip_id=trip.id).first():
        raise Conflict("Trip has tickets and cannot be deleted")

    db.session.delete(trip)
    db.session.commit()
    current_app.logger.info("[trips] deleted id=%s", trip_id)
    return jsonify(message="Trip deleted successfully"), 200
