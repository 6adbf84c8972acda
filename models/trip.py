# backend/models/trip.py

from db import db
from sqlalchemy.sql import func

WEEKDAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")
TRIP_STATUSES = ("ACTIVE", "INACTIVE")


class Trip(db.Model):
    __tablename__ = 'trips'

    id                   = db.Column(db.Integer,   primary_key=True)
    trip_name            = db.Column(db.String(128), nullable=False)
    route_id             = db.Column(db.Integer,   db.ForeignKey('routes.id'), nullable=False, index=True)
    bus_id               = db.Column(db.Integer,   db.ForeignKey('buses.id'), nullable=False, index=True)
    departure_time       = db.Column(db.Time,      nullable=False)
    arrival_time         = db.Column(db.Time,      nullable=False)
    # explicit cutoff (time of day); NULL → departure minus TICKET_SALE_LEAD_MINUTES
    ticket_sale_end_time = db.Column(db.Time,      nullable=True)
    active_days          = db.Column(db.String(32), nullable=False)   # "MON,TUE,..."
    status               = db.Column(db.String(16), nullable=False, default='ACTIVE')

    created_at           = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at           = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    bus   = db.relationship('Bus', back_populates='trips')
    route = db.relationship('Route', back_populates='trips')

    stops = db.relationship(
        'TripStop',
        back_populates='trip',
        order_by='TripStop.seq',
        cascade='all, delete-orphan'
    )

    tickets = db.relationship('Ticket', back_populates='trip')

    @property
    def active_day_list(self) -> list[str]:
        return [d for d in (self.active_days or "").split(",") if d]


class TripStop(db.Model):
    __tablename__ = 'trip_stops'

    id        = db.Column(db.Integer, primary_key=True)
    trip_id   = db.Column(db.Integer, db.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False)
    seq       = db.Column(db.Integer, nullable=False)
    stop_name = db.Column(db.String(128), nullable=False)
    stop_time = db.Column(db.Time, nullable=False)

    trip = db.relationship('Trip', back_populates='stops')
