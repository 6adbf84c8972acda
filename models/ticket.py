# models/ticket.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func

TICKET_STATUSES = ("pending", "confirmed", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed")
PAYMENT_TYPES = ("cash", "card", "online")


class Ticket(db.Model):
    __tablename__ = "tickets"
    __table_args__ = (
        # seat_lock is NULL once cancelled, and NULLs never collide, so this only
        # holds one live ticket per seat while letting cancelled ones pile up
        db.UniqueConstraint(
            "trip_id", "travel_date", "seat_number", "seat_lock",
            name="uq_tickets_trip_date_seat",
        ),
        db.Index("ix_tickets_trip_date_status", "trip_id", "travel_date", "status"),
    )

    id             = db.Column(db.Integer, primary_key=True)
    trip_id        = db.Column(db.Integer, db.ForeignKey("trips.id"), nullable=False)
    bus_id         = db.Column(db.Integer, db.ForeignKey("buses.id"), nullable=False, index=True)
    route_id       = db.Column(db.Integer, db.ForeignKey("routes.id"), nullable=False, index=True)
    booked_by      = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    commuter_phone = db.Column(db.String(10), nullable=False, index=True)
    seat_number    = db.Column(db.Integer, nullable=False)
    travel_date    = db.Column(db.Date, nullable=False)
    seat_lock      = db.Column(db.Boolean, nullable=True, default=True)

    otp            = db.Column(db.String(12), nullable=True)
    otp_attempts   = db.Column(db.Integer, nullable=False, default=0)

    status         = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_type   = db.Column(db.String(16), nullable=False)

    created_at     = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at     = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    trip  = db.relationship("Trip", back_populates="tickets")
    bus   = db.relationship("Bus", back_populates="tickets")
    route = db.relationship("Route")
    owner = db.relationship("User", foreign_keys=[booked_by])
