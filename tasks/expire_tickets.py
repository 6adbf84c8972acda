from datetime import timedelta

from flask import current_app

from db import db
from models.ticket import Ticket
from models.trip import Trip
from utils.time_window import is_expired, local_now


def sweep_expired_tickets(now=None) -> int:
    """Cancel pending tickets whose sale window has closed; returns how many."""
    cfg = current_app.config
    now = now or local_now(cfg["APP_TIMEZONE"])
    lead = cfg["TICKET_SALE_LEAD_MINUTES"]

    # an explicit cutoff can fall on the evening before, so look one day ahead
    horizon = now.date() + timedelta(days=1)
    candidates = (
        db.session.query(Ticket.id, Ticket.travel_date, Trip)
        .join(Trip, Trip.id == Ticket.trip_id)
        .filter(Ticket.status == "pending", Ticket.travel_date <= horizon)
        .all()
    )

    expired_ids = [tid for tid, day, trip in candidates if is_expired(trip, day, now, lead)]
    if not expired_ids:
        return 0

    n = (
        Ticket.query
        .filter(Ticket.id.in_(expired_ids), Ticket.status == "pending")
        .update(
            {Ticket.status: "cancelled", Ticket.otp: None, Ticket.seat_lock: None},
            synchronize_session=False,
        )
    )
    db.session.commit()

    current_app.logger.info("[sweep] expired %d pending ticket(s) at %s", n, now.isoformat(timespec="minutes"))
    return n
