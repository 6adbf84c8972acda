# services/reservations.py
"""
Reservation engine: turns a booking request into a uniquely-seated ticket and
moves tickets through pending → confirmed / cancelled.

Public API:
  - create_ticket(commuter_phone=..., trip_id=..., seat_number=..., payment_type=...,
                  travel_date=..., bus_id=None, route_id=None, booked_by=None, now=None)
  - confirm_ticket(ticket_id, otp, now=None)
  - update_ticket(ticket_id, patch, now=None)        # seatNumber / paymentType only
  - cancel_ticket(ticket_id)                         # soft-mark, frees the seat
  - update_payment_status(ticket_id, payment_status)
  - search_tickets(filters, booked_by=None)
  - booked_seats(trip_id, travel_date)
  - is_ticket_expired(ticket, trip, now)

All functions raise services.errors.* and return Ticket rows; none of them
look at the HTTP request. Trip/bus rows are only read, never written.

Concurrency:
  - One live ticket per (trip, travel_date, seat) is enforced by the
    uq_tickets_trip_date_seat constraint; the pre-insert lookup only gives a
    nicer error, a lost race surfaces as IntegrityError → SeatTaken.
  - The capacity count is advisory. Seat numbers are bounded by the bus
    capacity, so unique seats already cap live tickets at capacity.
  - State transitions are conditional UPDATEs on status, so a ticket is
    confirmed or cancelled exactly once.
"""
from __future__ import annotations

import datetime as dt
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from db import db
from models.bus import Bus
from models.ticket import Ticket, PAYMENT_STATUSES, PAYMENT_TYPES, TICKET_STATUSES
from models.trip import Trip
from services.errors import (
    AlreadyConfirmed, CapacityExceeded, Conflict, Expired, InvalidOtp,
    NotFound, SaleClosed, SeatTaken, ValidationFailed,
)
from utils.otp import generate_otp, otp_matches
from utils.time_window import is_expired, local_now, runs_on, sale_open, weekday_code
from utils.validation import (
    ErrorCollector, parse_choice, parse_date, parse_int, parse_phone,
)

LIVE_STATUSES = ("pending", "confirmed")
UPDATABLE_FIELDS = ("seatNumber", "paymentType")


# ---------- small utils ----------

def _cfg(key: str):
    return current_app.config[key]


def _now(now: Optional[dt.datetime]) -> dt.datetime:
    return now or local_now(_cfg("APP_TIMEZONE"))


def _mask_phone(phone: str) -> str:
    return f"******{phone[-4:]}" if phone else ""


def _get_ticket(ticket_id) -> Ticket:
    tid = parse_int(ticket_id, "ticketId", lo=1)
    ticket = db.session.get(Ticket, tid)
    if ticket is None:
        raise NotFound("Ticket not found")
    return ticket


def _load_trip(trip_id: int) -> tuple[Trip, Bus]:
    trip = db.session.get(Trip, trip_id)
    if trip is None:
        raise NotFound("Trip not found")
    bus = db.session.get(Bus, trip.bus_id)
    if bus is None:
        raise NotFound("Bus not found")
    return trip, bus


def _ensure_pending(ticket: Ticket) -> None:
    if ticket.status == "confirmed":
        raise AlreadyConfirmed()
    if ticket.status == "cancelled":
        raise Conflict("Ticket is cancelled.")


def _live_tickets(trip_id: int, travel_date: dt.date):
    return Ticket.query.filter(
        Ticket.trip_id == trip_id,
        Ticket.travel_date == travel_date,
        Ticket.status.in_(LIVE_STATUSES),
    )


def _check_seat(bus: Bus, trip_id: int, travel_date: dt.date, seat_number: int,
                *, exclude_id: Optional[int] = None) -> None:
    if seat_number < 1 or seat_number > bus.capacity:
        raise ValidationFailed(details=[f"Seat number must be between 1 and {bus.capacity}."])

    q = _live_tickets(trip_id, travel_date).filter(Ticket.seat_number == seat_number)
    if exclude_id is not None:
        q = q.filter(Ticket.id != exclude_id)
    if q.first() is not None:
        raise SeatTaken()


def _check_capacity(bus: Bus, trip_id: int, travel_date: dt.date,
                    *, exclude_id: Optional[int] = None) -> None:
    q = _live_tickets(trip_id, travel_date)
    if exclude_id is not None:
        q = q.filter(Ticket.id != exclude_id)
    if q.count() >= bus.capacity:
        raise CapacityExceeded()


def _conditional_update(ticket_id: int, values: dict, *conditions) -> int:
    return (
        Ticket.query
        .filter(Ticket.id == ticket_id, *conditions)
        .update(values, synchronize_session=False)
    )


def is_ticket_expired(ticket: Ticket, trip: Trip, now: dt.datetime) -> bool:
    return is_expired(trip, ticket.travel_date, now, _cfg("TICKET_SALE_LEAD_MINUTES"))


# ---------- operations ----------

def create_ticket(
    *,
    commuter_phone,
    trip_id,
    seat_number,
    payment_type,
    travel_date,
    bus_id=None,
    route_id=None,
    booked_by: Optional[int] = None,
    now: Optional[dt.datetime] = None,
) -> Ticket:
    check = ErrorCollector()
    phone = check(parse_phone, commuter_phone)
    trip_ref = check(parse_int, trip_id, "tripId", lo=1)
    seat = check(parse_int, seat_number, "seatNumber", lo=1)
    ptype = check(parse_choice, payment_type, "paymentType", PAYMENT_TYPES)
    day = check(parse_date, travel_date, "travelDate")
    check.raise_if_any()

    trip, bus = _load_trip(trip_ref)

    if trip.status != "ACTIVE":
        raise ValidationFailed("Trip is not active.")
    if bus.status != "ACTIVE":
        raise ValidationFailed("Bus is not in service.")
    if not runs_on(trip, day):
        raise ValidationFailed(f"Trip does not run on {weekday_code(day)}.")

    # busId / routeId are denormalized copies; they must agree with the trip
    mismatched = []
    if bus_id not in (None, "") and str(bus_id) != str(trip.bus_id):
        mismatched.append("busId does not match the trip's bus")
    if route_id not in (None, "") and str(route_id) != str(trip.route_id):
        mismatched.append("routeId does not match the trip's route")
    if mismatched:
        raise ValidationFailed(details=mismatched)

    now = _now(now)
    if not sale_open(trip, day, now, _cfg("TICKET_SALE_LEAD_MINUTES")):
        raise SaleClosed()

    _check_seat(bus, trip.id, day, seat)
    _check_capacity(bus, trip.id, day)

    ticket = Ticket(
        trip_id        = trip.id,
        bus_id         = trip.bus_id,
        route_id       = trip.route_id,
        booked_by      = booked_by,
        commuter_phone = phone,
        seat_number    = seat,
        travel_date    = day,
        seat_lock      = True,
        otp            = generate_otp(_cfg("OTP_LENGTH")),
        otp_attempts   = 0,
        status         = "pending",
        payment_status = "pending",
        payment_type   = ptype,
    )
    db.session.add(ticket)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(
            "[tickets] seat race lost trip=%s date=%s seat=%s", trip.id, day, seat
        )
        raise SeatTaken()

    current_app.logger.info(
        "[tickets] created id=%s trip=%s date=%s seat=%s phone=%s",
        ticket.id, trip.id, day, seat, _mask_phone(phone),
    )
    return ticket


def confirm_ticket(ticket_id, otp, *, now: Optional[dt.datetime] = None) -> Ticket:
    ticket = _get_ticket(ticket_id)
    _ensure_pending(ticket)
    tid = ticket.id

    trip, _ = _load_trip(ticket.trip_id)
    if is_ticket_expired(ticket, trip, _now(now)):
        raise Expired()

    if ticket.otp_attempts >= _cfg("OTP_MAX_ATTEMPTS"):
        raise InvalidOtp("Too many invalid OTP attempts. Cancel and book again.")

    if not otp_matches(ticket.otp, otp):
        _conditional_update(
            tid,
            {Ticket.otp_attempts: Ticket.otp_attempts + 1},
            Ticket.status == "pending",
        )
        db.session.commit()
        current_app.logger.info("[otp] invalid code for ticket=%s", tid)
        raise InvalidOtp()

    rows = _conditional_update(
        tid,
        {Ticket.status: "confirmed", Ticket.otp: None},
        Ticket.status == "pending",
        Ticket.otp == ticket.otp,
    )
    if rows == 0:
        # someone else confirmed or cancelled it between our read and write
        db.session.rollback()
        _ensure_pending(_get_ticket(tid))
        raise Conflict("Ticket changed while confirming; try again.")
    db.session.commit()

    current_app.logger.info("[tickets] confirmed id=%s", tid)
    return _get_ticket(tid)


def update_ticket(ticket_id, patch: dict, *, now: Optional[dt.datetime] = None) -> Ticket:
    patch = patch or {}
    unknown = sorted(k for k in patch if k not in UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailed(details=[f"{k} cannot be updated" for k in unknown])
    if not patch:
        raise ValidationFailed(details=["Nothing to update; send seatNumber and/or paymentType"])

    ticket = _get_ticket(ticket_id)
    _ensure_pending(ticket)

    trip, bus = _load_trip(ticket.trip_id)
    if is_ticket_expired(ticket, trip, _now(now)):
        raise Expired()

    check = ErrorCollector()
    seat = check(parse_int, patch["seatNumber"], "seatNumber", lo=1) if "seatNumber" in patch else None
    ptype = (
        check(parse_choice, patch["paymentType"], "paymentType", PAYMENT_TYPES)
        if "paymentType" in patch else None
    )
    check.raise_if_any()

    values = {}
    if seat is not None and seat != ticket.seat_number:
        _check_seat(bus, trip.id, ticket.travel_date, seat, exclude_id=ticket.id)
        _check_capacity(bus, trip.id, ticket.travel_date, exclude_id=ticket.id)
        values[Ticket.seat_number] = seat
    if ptype is not None:
        values[Ticket.payment_type] = ptype

    tid = ticket.id
    if values:
        try:
            rows = _conditional_update(tid, values, Ticket.status == "pending")
        except IntegrityError:
            db.session.rollback()
            raise SeatTaken()
        if rows == 0:
            db.session.rollback()
            _ensure_pending(_get_ticket(tid))
            raise Conflict("Ticket changed while updating; try again.")
        db.session.commit()
        current_app.logger.info("[tickets] updated id=%s fields=%s", tid, sorted(patch))

    return _get_ticket(tid)


def cancel_ticket(ticket_id) -> Ticket:
    ticket = _get_ticket(ticket_id)
    if ticket.status == "confirmed":
        raise AlreadyConfirmed("Confirmed tickets cannot be deleted.")
    if ticket.status == "cancelled":
        return ticket

    tid = ticket.id
    rows = _conditional_update(
        tid,
        {Ticket.status: "cancelled", Ticket.otp: None, Ticket.seat_lock: None},
        Ticket.status == "pending",
    )
    if rows == 0:
        db.session.rollback()
        ticket = _get_ticket(tid)
        if ticket.status == "confirmed":
            raise AlreadyConfirmed("Confirmed tickets cannot be deleted.")
        return ticket
    db.session.commit()

    current_app.logger.info("[tickets] cancelled id=%s", tid)
    return _get_ticket(tid)


def update_payment_status(ticket_id, payment_status) -> Ticket:
    status = parse_choice(payment_status, "paymentStatus", PAYMENT_STATUSES)
    if status == "pending":
        raise ValidationFailed(details=["paymentStatus can only move to completed or failed"])

    ticket = _get_ticket(ticket_id)
    if ticket.status == "cancelled":
        raise Conflict("Ticket is cancelled.")
    if ticket.payment_status == "completed":
        raise Conflict("Payment is already completed.")

    tid = ticket.id
    rows = _conditional_update(
        tid,
        {Ticket.payment_status: status},
        Ticket.status != "cancelled",
        Ticket.payment_status != "completed",
    )
    if rows == 0:
        db.session.rollback()
        raise Conflict("Ticket changed while updating payment; try again.")
    db.session.commit()

    current_app.logger.info("[tickets] payment id=%s → %s", tid, status)
    return _get_ticket(tid)


def search_tickets(filters: dict, *, booked_by: Optional[int] = None) -> list[Ticket]:
    filters = filters or {}
    check = ErrorCollector()
    q = Ticket.query

    if filters.get("commuterPhone"):
        q = q.filter(Ticket.commuter_phone == str(filters["commuterPhone"]).strip())
    for key, col in (("tripId", Ticket.trip_id), ("busId", Ticket.bus_id), ("routeId", Ticket.route_id)):
        if filters.get(key):
            val = check(parse_int, filters[key], key, lo=1)
            q = q.filter(col == val)
    if filters.get("status"):
        q = q.filter(Ticket.status == check(parse_choice, filters["status"], "status", TICKET_STATUSES))
    if filters.get("paymentStatus"):
        q = q.filter(Ticket.payment_status == check(
            parse_choice, filters["paymentStatus"], "paymentStatus", PAYMENT_STATUSES
        ))
    if filters.get("travelDate"):
        q = q.filter(Ticket.travel_date == check(parse_date, filters["travelDate"], "travelDate"))
    check.raise_if_any()

    if booked_by is not None:
        q = q.filter(Ticket.booked_by == booked_by)

    return q.order_by(Ticket.id.desc()).all()


def booked_seats(trip_id: int, travel_date: dt.date) -> list[int]:
    rows = (
        db.session.query(Ticket.seat_number)
        .filter(
            Ticket.trip_id == trip_id,
            Ticket.travel_date == travel_date,
            Ticket.status.in_(LIVE_STATUSES),
        )
        .order_by(Ticket.seat_number.asc())
        .all()
    )
    return [s for (s,) in rows]
