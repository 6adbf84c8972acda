# backend/routes/tickets.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from db import db
from auth_guard import require_role
from models.bus import Bus
from models.ticket import Ticket
from realtime import emit_seat_update
from services import reservations
from services.errors import NotFound, ValidationFailed
from services.notify_ticket import dispatch_ticket_otp
from utils.validation import json_body, parse_int

tickets_bp = Blueprint("tickets", __name__, url_prefix="/tickets")


def ticket_json(t: Ticket) -> dict:
    # the OTP never leaves the server
    return {
        "id": t.id,
        "tripId": t.trip_id,
        "busId": t.bus_id,
        "routeId": t.route_id,
        "commuterPhone": t.commuter_phone,
        "seatNumber": t.seat_number,
        "travelDate": t.travel_date.isoformat(),
        "status": t.status,
        "paymentStatus": t.payment_status,
        "paymentType": t.payment_type,
        "bookedBy": t.booked_by,
        "createdAt": t.created_at.isoformat() if t.created_at else None,
        "updatedAt": t.updated_at.isoformat() if t.updated_at else None,
    }


def _owned_ticket_id(ticket_id) -> int:
    """
    Commuters may only act on tickets they booked; a foreign ticket looks
    exactly like a missing one.
    """
    tid = parse_int(ticket_id, "ticketId", lo=1)
    ticket = db.session.get(Ticket, tid)
    if ticket is None or (g.role == "commuter" and ticket.booked_by != g.user.id):
        raise NotFound("Ticket not found")
    return tid


def _broadcast_seats(ticket: Ticket) -> None:
    bus = db.session.get(Bus, ticket.bus_id)
    emit_seat_update(
        ticket.trip_id,
        ticket.travel_date.isoformat(),
        reservations.booked_seats(ticket.trip_id, ticket.travel_date),
        capacity=bus.capacity if bus else 0,
    )


@tickets_bp.route("", methods=["GET"])
@require_role("commuter", "operator")
def search_tickets():
    """
    GET /tickets?commuterPhone=&tripId=&busId=&routeId=&status=&paymentStatus=&travelDate=
    """
    booked_by = g.user.id if g.role == "commuter" else None
    tickets = reservations.search_tickets(request.args.to_dict(), booked_by=booked_by)
    return jsonify([ticket_json(t) for t in tickets]), 200


@tickets_bp.route("/<int:ticket_id>", methods=["GET"])
@require_role("commuter", "operator")
def get_ticket(ticket_id: int):
    tid = _owned_ticket_id(ticket_id)
    return jsonify(ticket_json(db.session.get(Ticket, tid))), 200


@tickets_bp.route("", methods=["POST"])
@require_role("commuter")
def create_ticket():
    data = json_body()

    ticket = reservations.create_ticket(
        commuter_phone=data.get("commuterPhone"),
        trip_id=data.get("tripId", data.get("tripRef")),
        seat_number=data.get("seatNumber"),
        payment_type=data.get("paymentType"),
        travel_date=data.get("travelDate"),
        bus_id=data.get("busId"),
        route_id=data.get("routeId"),
        booked_by=g.user.id,
    )

    # the seat is already held; a failed send only means the user must ask again
    try:
        dispatched = dispatch_ticket_otp(ticket)
    except Exception:
        current_app.logger.warning("[otp] dispatch failed for ticket=%s", ticket.id, exc_info=True)
        dispatched = False

    _broadcast_seats(ticket)

    return jsonify(
        message="Ticket created. Confirm it with the OTP sent to your phone.",
        ticketId=ticket.id,
        ticket=ticket_json(ticket),
        otpDispatched=dispatched,
    ), 201


@tickets_bp.route("/confirm", methods=["POST"])
@require_role("commuter")
def confirm_ticket():
    data = json_body()
    if data.get("ticketId") in (None, "") or data.get("otp") in (None, ""):
        raise ValidationFailed(details=["ticketId and otp are required"])

    tid = _owned_ticket_id(data["ticketId"])
    ticket = reservations.confirm_ticket(tid, data["otp"])
    return jsonify(message="Ticket confirmed successfully", ticket=ticket_json(ticket)), 200


@tickets_bp.route("/<int:ticket_id>", methods=["PUT", "PATCH"])
@require_role("commuter")
def update_ticket(ticket_id: int):
    tid = _owned_ticket_id(ticket_id)
    before = db.session.get(Ticket, tid).seat_number

    ticket = reservations.update_ticket(tid, json_body())
    if ticket.seat_number != before:
        _broadcast_seats(ticket)
    return jsonify(message="Ticket updated successfully", ticket=ticket_json(ticket)), 200


@tickets_bp.route("/<int:ticket_id>", methods=["DELETE"])
@require_role("commuter")
def cancel_ticket(ticket_id: int):
    tid = _owned_ticket_id(ticket_id)
    ticket = reservations.cancel_ticket(tid)
    _broadcast_seats(ticket)
    return jsonify(message="Ticket cancelled successfully", ticket=ticket_json(ticket)), 200


@tickets_bp.route("/<int:ticket_id>/payment", methods=["PATCH"])
@require_role("operator")
def update_payment(ticket_id: int):
    data = json_body()
    existing = db.session.get(Ticket, ticket_id)
    # operators settle payments only for buses they run
    if existing is not None and g.role == "operator":
        bus = db.session.get(Bus, existing.bus_id)
        if bus is None or bus.operator_id != g.user.id:
            raise NotFound("Ticket not found")
    ticket = reservations.update_payment_status(ticket_id, data.get("paymentStatus"))
    return jsonify(message="Payment status updated", ticket=ticket_json(ticket)), 200
