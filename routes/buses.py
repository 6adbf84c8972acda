# backend/routes/buses.py
from __future__ import annotations

import re
from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import IntegrityError

from db import db
from auth_guard import require_role
from models.bus import Bus, BUS_STATUSES, OWNERSHIP_TYPES
from models.trip import Trip
from models.user import User
from services.errors import Conflict, NotFound, ValidationFailed
from utils.validation import ErrorCollector, json_body, parse_choice, parse_int, require_fields

buses_bp = Blueprint("buses", __name__, url_prefix="/buses")

BUS_NUMBER_RE = re.compile(r"[A-Z0-9-]+")


def normalize_bus_number(raw) -> str:
    """'na-1234 ' → 'NA-1234'; only letters, digits and hyphens survive validation."""
    value = str(raw or "").strip().upper()
    if not BUS_NUMBER_RE.fullmatch(value):
        raise ValidationFailed(details=["busNumber must contain only uppercase letters, digits, and hyphens."])
    return value


def bus_json(b: Bus) -> dict:
    return {
        "id": b.id,
        "busNumber": b.bus_number,
        "capacity": b.capacity,
        "operatorId": b.operator_id,
        "ownershipType": b.ownership_type,
        "status": b.status,
    }


def _get_bus_or_404(bus_id: int) -> Bus:
    bus = db.session.get(Bus, bus_id)
    if not bus:
        raise NotFound("Bus not found")
    return bus


def _ensure_owner(bus: Bus) -> None:
    if g.role != "admin" and bus.operator_id != g.user.id:
        raise NotFound("Bus not found")


def _apply(bus: Bus, data: dict, check: ErrorCollector) -> None:
    if "busNumber" in data:
        bus.bus_number = check(normalize_bus_number, data["busNumber"])
    if "capacity" in data:
        bus.capacity = check(parse_int, data["capacity"], "capacity", lo=1, hi=100)
    if "ownershipType" in data:
        bus.ownership_type = check(parse_choice, data["ownershipType"], "ownershipType", OWNERSHIP_TYPES)
    if "status" in data:
        bus.status = check(parse_choice, data["status"], "status", BUS_STATUSES)
    # only admins may hand a bus to another operator
    if "operatorId" in data and g.role == "admin":
        op_id = check(parse_int, data["operatorId"], "operatorId", lo=1)
        if op_id is not None:
            op = db.session.get(User, op_id)
            if not op or op.role not in ("operator", "admin"):
                check.details.append("operatorId must reference an operator")
            else:
                bus.operator_id = op_id


@buses_bp.route("", methods=["GET"])
def search_buses():
    args = request.args
    q = Bus.query
    if (args.get("busNumber") or "").strip():
        q = q.filter(Bus.bus_number == args["busNumber"].strip().upper())
    if (args.get("capacity") or "").strip().isdigit():
        q = q.filter(Bus.capacity == int(args["capacity"]))
    if (args.get("operatorId") or "").strip().isdigit():
        q = q.filter(Bus.operator_id == int(args["operatorId"]))
    if (args.get("ownershipType") or "").strip():
        q = q.filter(Bus.ownership_type == args["ownershipType"].strip())
    if (args.get("status") or "").strip():
        q = q.filter(Bus.status == args["status"].strip())

    buses = q.order_by(Bus.bus_number.asc()).all()
    return jsonify([bus_json(b) for b in buses]), 200


@buses_bp.route("/<int:bus_id>", methods=["GET"])
def get_bus(bus_id: int):
    return jsonify(bus_json(_get_bus_or_404(bus_id))), 200


@buses_bp.route("", methods=["POST"])
@require_role("operator")
def create_bus():
    data = json_body()
    require_fields(data, ("busNumber", "capacity", "ownershipType"))

    bus = Bus(operator_id=g.user.id, status="ACTIVE")
    check = ErrorCollector()
    _apply(bus, data, check)
    check.raise_if_any()

    db.session.add(bus)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("A bus with this busNumber already exists")

    current_app.logger.info("[buses] created id=%s number=%s by uid=%s", bus.id, bus.bus_number, g.user.id)
    return jsonify(message="Bus created successfully", bus=bus_json(bus)), 201


@buses_bp.route("/<int:bus_id>", methods=["PUT", "PATCH"])
@require_role("operator")
def update_bus(bus_id: int):
    bus = _get_bus_or_404(bus_id)
    _ensure_owner(bus)
    data = json_body()

    check = ErrorCollector()
    # the operator lookup must not flush half-applied fields
    with db.session.no_autoflush:
        _apply(bus, data, check)
    if check.details:
        db.session.rollback()
    check.raise_if_any()

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("A bus with this busNumber already exists")

    return jsonify(message="Bus updated successfully", bus=bus_json(bus)), 200


@buses_bp.route("/<int:bus_id>", methods=["DELETE"])
@require_role("operator")
def delete_bus(bus_id: int):
    bus = _get_bus_or_404(bus_id)
    _ensure_owner(bus)
    if Trip.query.filter_by(bus_id=bus.id).first():
        raise Conflict("Bus is scheduled on trips; remove them first")

    db.session.delete(bus)
    db.session.commit()
    current_app.logger.info("[buses] deleted id=%s", bus_id)
    return jsonify(message="Bus deleted successfully"), 200
