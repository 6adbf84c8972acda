import datetime as dt

import pytest

from db import db
from models.ticket import Ticket
from services import reservations
from services.errors import (
    AlreadyConfirmed, CapacityExceeded, Conflict, Expired, InvalidOtp,
    NotFound, SaleClosed, SeatTaken, ValidationFailed,
)
from tests.conftest import NOW, TRAVEL_DAY, make_trip


def book(trip, seat, *, phone="0771234567", now=NOW, day=TRAVEL_DAY, **extra):
    return reservations.create_ticket(
        commuter_phone=phone,
        trip_id=trip.id,
        seat_number=seat,
        payment_type="cash",
        travel_date=day.isoformat(),
        now=now,
        **extra,
    )


# ---------- create ----------

def test_create_ticket_starts_pending_with_fresh_otp(trip, bus, route):
    t = book(trip, 5)
    assert t.status == "pending"
    assert t.payment_status == "pending"
    assert t.otp.isdigit() and len(t.otp) == 4
    assert t.otp_attempts == 0
    assert (t.bus_id, t.route_id) == (bus.id, route.id)
    assert t.seat_lock is True


def test_create_collects_every_validation_problem(trip):
    with pytest.raises(ValidationFailed) as exc:
        reservations.create_ticket(
            commuter_phone="12345", trip_id=trip.id, seat_number=0,
            payment_type="bitcoin", travel_date="07/01/2030", now=NOW,
        )
    assert len(exc.value.details) == 4


def test_unknown_trip_is_not_found(trip):
    with pytest.raises(NotFound):
        reservations.create_ticket(
            commuter_phone="0771234567", trip_id=9999, seat_number=1,
            payment_type="cash", travel_date=TRAVEL_DAY.isoformat(), now=NOW,
        )


def test_seat_outside_bus_capacity_is_rejected(trip):
    with pytest.raises(ValidationFailed) as exc:
        book(trip, 41)
    assert "between 1 and 40" in exc.value.details[0]


def test_same_seat_twice_is_taken_but_other_date_is_free(trip):
    book(trip, 7)
    with pytest.raises(SeatTaken):
        book(trip, 7, phone="0777654321")
    other = book(trip, 7, day=TRAVEL_DAY + dt.timedelta(days=1))
    assert other.id


def test_capacity_two_bus_fills_up(trip, bus):
    bus.capacity = 2
    db.session.commit()

    book(trip, 1)
    book(trip, 2)
    with pytest.raises(SeatTaken):
        book(trip, 1)
    with pytest.raises(ValidationFailed):
        book(trip, 3)
    live = Ticket.query.filter(Ticket.status != "cancelled").count()
    assert live == 2


def test_capacity_check_after_bus_shrinks(trip, bus):
    bus.capacity = 3
    db.session.commit()
    book(trip, 1)
    book(trip, 3)

    bus.capacity = 2
    db.session.commit()
    with pytest.raises(CapacityExceeded):
        book(trip, 2)


def test_unique_constraint_backstops_the_seat_check(trip, monkeypatch):
    book(trip, 9)
    monkeypatch.setattr(reservations, "_check_seat", lambda *a, **kw: None)
    monkeypatch.setattr(reservations, "_check_capacity", lambda *a, **kw: None)

    with pytest.raises(SeatTaken):
        book(trip, 9, phone="0777654321")
    # session is usable again after the rollback
    assert Ticket.query.filter_by(seat_number=9).count() == 1


def test_sale_closes_at_lead_time_before_departure(trip):
    book(trip, 1, now=dt.datetime(2030, 1, 7, 8, 59))
    with pytest.raises(SaleClosed):
        book(trip, 2, now=dt.datetime(2030, 1, 7, 9, 0))


def test_past_travel_date_is_closed(trip):
    with pytest.raises(SaleClosed):
        book(trip, 1, day=TRAVEL_DAY - dt.timedelta(days=7))


def test_explicit_sale_end_time_on_previous_evening(bus, route):
    night = make_trip(bus, route, departure=dt.time(0, 15), arrival=dt.time(4, 0),
                      sale_end=dt.time(23, 30))
    night.stops = []
    db.session.commit()

    book(night, 1, now=dt.datetime(2030, 1, 6, 23, 0))
    with pytest.raises(SaleClosed):
        book(night, 2, now=dt.datetime(2030, 1, 6, 23, 30))


def test_trip_must_run_on_travel_weekday(bus, route):
    weekend = make_trip(bus, route, days="SAT,SUN")
    with pytest.raises(ValidationFailed):
        book(weekend, 1)


def test_inactive_trip_and_bus_in_maintenance_are_rejected(trip, bus, route):
    off = make_trip(bus, route, status="INACTIVE")
    with pytest.raises(ValidationFailed):
        book(off, 1)

    bus.status = "MAINTENANCE"
    db.session.commit()
    with pytest.raises(ValidationFailed):
        book(trip, 1)


def test_bus_and_route_ids_must_match_the_trip(trip, bus, route):
    book(trip, 1, bus_id=bus.id, route_id=str(route.id))
    with pytest.raises(ValidationFailed) as exc:
        book(trip, 2, bus_id=bus.id + 100)
    assert "busId" in exc.value.details[0]


# ---------- confirm ----------

def test_confirm_once_then_already_confirmed(trip):
    t = book(trip, 3)
    code = t.otp

    done = reservations.confirm_ticket(t.id, code, now=NOW)
    assert done.status == "confirmed"
    assert done.otp is None
    # payment is settled separately
    assert done.payment_status == "pending"

    with pytest.raises(AlreadyConfirmed):
        reservations.confirm_ticket(t.id, code, now=NOW)


def test_wrong_otp_leaves_ticket_pending(trip):
    t = book(trip, 3)
    wrong = "0000" if t.otp != "0000" else "1111"

    with pytest.raises(InvalidOtp):
        reservations.confirm_ticket(t.id, wrong, now=NOW)
    again = db.session.get(Ticket, t.id)
    assert again.status == "pending"
    assert again.otp_attempts == 1


def test_otp_is_matched_as_a_string(trip):
    t = book(trip, 3)
    t.otp = "0427"
    db.session.commit()
    with pytest.raises(InvalidOtp):
        reservations.confirm_ticket(t.id, 427, now=NOW)


def test_too_many_wrong_codes_lock_the_ticket(app, trip):
    t = book(trip, 3)
    code = t.otp
    wrong = "0000" if code != "0000" else "1111"
    for _ in range(app.config["OTP_MAX_ATTEMPTS"]):
        with pytest.raises(InvalidOtp):
            reservations.confirm_ticket(t.id, wrong, now=NOW)

    with pytest.raises(InvalidOtp):
        reservations.confirm_ticket(t.id, code, now=NOW)


def test_confirm_after_cutoff_is_expired(trip):
    t = book(trip, 3)
    with pytest.raises(Expired):
        reservations.confirm_ticket(t.id, t.otp, now=dt.datetime(2030, 1, 7, 9, 30))


def test_confirm_missing_ticket(app):
    with pytest.raises(NotFound):
        reservations.confirm_ticket(12345, "1234", now=NOW)


# ---------- update ----------

def test_update_seat_and_payment_type(trip):
    t = book(trip, 3)
    out = reservations.update_ticket(t.id, {"seatNumber": 4, "paymentType": "card"}, now=NOW)
    assert (out.seat_number, out.payment_type) == (4, "card")
    assert reservations.booked_seats(trip.id, TRAVEL_DAY) == [4]


def test_update_into_taken_seat(trip):
    book(trip, 3)
    t = book(trip, 4, phone="0777654321")
    with pytest.raises(SeatTaken):
        reservations.update_ticket(t.id, {"seatNumber": 3}, now=NOW)


def test_update_rejects_other_fields(trip):
    t = book(trip, 3)
    with pytest.raises(ValidationFailed):
        reservations.update_ticket(t.id, {"status": "confirmed"}, now=NOW)
    with pytest.raises(ValidationFailed):
        reservations.update_ticket(t.id, {}, now=NOW)


def test_update_after_cutoff_is_expired(trip):
    t = book(trip, 3)
    with pytest.raises(Expired):
        reservations.update_ticket(t.id, {"paymentType": "card"}, now=dt.datetime(2030, 1, 7, 9, 0))


def test_confirmed_ticket_cannot_be_updated_or_cancelled(trip):
    t = book(trip, 3)
    reservations.confirm_ticket(t.id, t.otp, now=NOW)

    with pytest.raises(AlreadyConfirmed):
        reservations.update_ticket(t.id, {"seatNumber": 5}, now=NOW)
    with pytest.raises(AlreadyConfirmed):
        reservations.cancel_ticket(t.id)

    db.session.expire_all()
    after = db.session.get(Ticket, t.id)
    assert (after.seat_number, after.status, after.seat_lock) == (3, "confirmed", True)
    assert after.payment_type == "cash"
    assert reservations.booked_seats(trip.id, TRAVEL_DAY) == [3]


def test_phone_must_be_ascii_digits(trip):
    # Arabic-Indic digits are \d in Python regexes
    with pytest.raises(ValidationFailed):
        book(trip, 1, phone="٠٧٧١٢٣٤٥٦٧")
    with pytest.raises(ValidationFailed):
        book(trip, 1, phone="077123456")


# ---------- cancel ----------

def test_cancel_frees_the_seat(trip):
    t = book(trip, 6)
    out = reservations.cancel_ticket(t.id)
    assert out.status == "cancelled"
    assert out.otp is None and out.seat_lock is None

    again = book(trip, 6, phone="0777654321")
    assert again.status == "pending"
    # cancelling twice is a no-op
    assert reservations.cancel_ticket(t.id).status == "cancelled"


def test_cancelled_ticket_cannot_be_confirmed_or_updated(trip):
    t = book(trip, 6)
    code = t.otp
    reservations.cancel_ticket(t.id)
    with pytest.raises(Conflict):
        reservations.confirm_ticket(t.id, code, now=NOW)
    with pytest.raises(Conflict):
        reservations.update_ticket(t.id, {"seatNumber": 7}, now=NOW)


# ---------- payment ----------

def test_payment_status_moves_once_to_completed(trip):
    t = book(trip, 8)
    assert reservations.update_payment_status(t.id, "failed").payment_status == "failed"
    assert reservations.update_payment_status(t.id, "completed").payment_status == "completed"
    with pytest.raises(Conflict):
        reservations.update_payment_status(t.id, "failed")


def test_payment_status_rules(trip):
    t = book(trip, 8)
    with pytest.raises(ValidationFailed):
        reservations.update_payment_status(t.id, "pending")
    reservations.cancel_ticket(t.id)
    with pytest.raises(Conflict):
        reservations.update_payment_status(t.id, "completed")


# ---------- search ----------

def test_search_filters_and_owner_scope(trip, users):
    mine = book(trip, 1, booked_by=users["commuter"].id)
    book(trip, 2, phone="0777654321", booked_by=users["other"].id)
    reservations.cancel_ticket(mine.id)

    assert [t.seat_number for t in reservations.search_tickets({"tripId": str(trip.id)})] == [2, 1]
    assert [t.id for t in reservations.search_tickets({"status": "cancelled"})] == [mine.id]
    assert [t.id for t in reservations.search_tickets({}, booked_by=users["commuter"].id)] == [mine.id]
    assert reservations.search_tickets({"commuterPhone": "0777654321", "travelDate": "2030-01-08"}) == []

    with pytest.raises(ValidationFailed):
        reservations.search_tickets({"status": "lost"})
