# backend/routes/bus_routes.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError

from db import db
from auth_guard import require_role
from models.route import Route, RouteStop, ROUTE_STATUSES, ROUTE_VARIANTS, STOP_TYPES
from models.trip import Trip
from services.errors import Conflict, NotFound, ValidationFailed
from utils.validation import ErrorCollector, clean_str, json_body, parse_choice, parse_number, require_fields

routes_bp = Blueprint("bus_routes", __name__, url_prefix="/routes")

# distance / average_speed may drift from the stated duration by this many hours
DURATION_TOLERANCE_H = 0.1


def route_json(r: Route) -> dict:
    return {
        "id": r.id,
        "routeNumber": r.route_number,
        "startLocation": r.start_location,
        "endLocation": r.end_location,
        "variant": r.variant,
        "distance": r.distance,
        "averageSpeed": r.average_speed,
        "duration": r.duration,
        "status": r.status,
        "stops": [
            {
                "stopName": s.stop_name,
                "stopType": s.stop_type,
                "latitude": s.latitude,
                "longitude": s.longitude,
            }
            for s in r.stops
        ],
    }


def _get_route_or_404(route_id: int) -> Route:
    route = db.session.get(Route, route_id)
    if not route:
        raise NotFound("Route not found")
    return route


def _parse_stops(raw) -> list[RouteStop]:
    if not isinstance(raw, list):
        raise ValidationFailed(details=["stops must be a list"])

    check = ErrorCollector()
    out: list[RouteStop] = []
    for i, s in enumerate(raw, start=1):
        if not isinstance(s, dict):
            check.details.append(f"stops[{i}] must be an object")
            continue
        stop = RouteStop(seq=i)
        stop.stop_name = check(clean_str, s.get("stopName"), f"stops[{i}].stopName", max_len=128)
        stop.stop_type = check(parse_choice, s.get("stopType", "REGULAR"), f"stops[{i}].stopType", STOP_TYPES)
        if s.get("latitude") is not None:
            stop.latitude = check(parse_number, s["latitude"], f"stops[{i}].latitude", lo=-90, hi=90)
        if s.get("longitude") is not None:
            stop.longitude = check(parse_number, s["longitude"], f"stops[{i}].longitude", lo=-180, hi=180)
        out.append(stop)
    check.raise_if_any()
    return out


def _validate_shape(route: Route) -> None:
    problems = []
    if (route.start_location or "").lower() == (route.end_location or "").lower():
        problems.append("startLocation and endLocation must be different")
    if route.distance and route.average_speed and route.duration:
        expected = route.distance / route.average_speed
        if abs(expected - route.duration) > DURATION_TOLERANCE_H:
            problems.append(
                f"duration does not match distance / averageSpeed (expected about {expected:.2f} hours)"
            )
    if problems:
        raise ValidationFailed(details=problems)


def _apply(route: Route, data: dict, check: ErrorCollector) -> None:
    if "routeNumber" in data:
        route.route_number = check(clean_str, data["routeNumber"], "routeNumber", max_len=32)
    if "startLocation" in data:
        route.start_location = check(clean_str, data["startLocation"], "startLocation", max_len=128)
    if "endLocation" in data:
        route.end_location = check(clean_str, data["endLocation"], "endLocation", max_len=128)
    if "variant" in data:
        route.variant = check(parse_choice, data["variant"], "variant", ROUTE_VARIANTS)
    if "status" in data:
        route.status = check(parse_choice, data["status"], "status", ROUTE_STATUSES)
    for key, attr in (("distance", "distance"), ("averageSpeed", "average_speed"), ("duration", "duration")):
        if key in data:
            setattr(route, attr, check(parse_number, data[key], key, lo=0, exclusive_lo=True))
    if "stops" in data:
        stops = check(_parse_stops, data["stops"])
        if stops is not None:
            route.stops = stops


@routes_bp.route("", methods=["GET"])
@require_role()
def search_routes():
    """
    GET /routes?routeNumber=&startLocation=&endLocation=&stop=
    Location and stop filters are case-insensitive substring matches.
    """
    args = request.args
    q = Route.query
    if (args.get("routeNumber") or "").strip():
        q = q.filter(Route.route_number == args["routeNumber"].strip())
    if (args.get("startLocation") or "").strip():
        q = q.filter(Route.start_location.ilike(f"%{args['startLocation'].strip()}%"))
    if (args.get("endLocation") or "").strip():
        q = q.filter(Route.end_location.ilike(f"%{args['endLocation'].strip()}%"))
    if (args.get("stop") or "").strip():
        q = q.filter(Route.stops.any(RouteStop.stop_name.ilike(f"%{args['stop'].strip()}%")))

    routes = q.order_by(Route.route_number.asc()).all()
    return jsonify([route_json(r) for r in routes]), 200


@routes_bp.route("/<int:route_id>", methods=["GET"])
@require_role()
def get_route(route_id: int):
    return jsonify(route_json(_get_route_or_404(route_id))), 200


@routes_bp.route("", methods=["POST"])
@require_role("admin")
def create_route():
    data = json_body()
    require_fields(data, ("routeNumber", "startLocation", "endLocation", "distance", "averageSpeed", "duration"))

    route = Route(variant="REGULAR", status="ACTIVE")
    check = ErrorCollector()
    _apply(route, data, check)
    check.raise_if_any()
    _validate_shape(route)

    db.session.add(route)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("A route with this routeNumber already exists")

    current_app.logger.info("[routes] created id=%s number=%s stops=%d", route.id, route.route_number, len(route.stops))
    return jsonify(message="Route created successfully", route=route_json(route)), 201


@routes_bp.route("/<int:route_id>", methods=["PUT", "PATCH"])
@require_role("admin")
def update_route(route_id: int):
    route = _get_route_or_404(route_id)
    data = json_body()

    check = ErrorCollector()
    with db.session.no_autoflush:
        _apply(route, data, check)
        if not check.details:
            try:
                _validate_shape(route)
            except ValidationFailed as e:
                check.details.extend(e.details)
    if check.details:
        db.session.rollback()
    check.raise_if_any()

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("A route with this routeNumber already exists")

    return jsonify(message="Route updated successfully", route=route_json(route)), 200


@routes_bp.route("/<int:route_id>", methods=["DELETE"])
@require_role("admin")
def delete_route(route_id: int):
    route = _get_route_or_404(route_id)
    if Trip.query.filter_by(route_id=route.id).first():
        raise Conflict("Route has trips; remove them first")

    db.session.delete(route)
    db.session.commit()
    current_app.logger.info("[routes] deleted id=%s", route_id)
    return jsonify(message="Route deleted successfully"), 200
