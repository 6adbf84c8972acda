# models/route.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func

ROUTE_VARIANTS = ("EXPRESS", "REGULAR")
ROUTE_STATUSES = ("ACTIVE", "INACTIVE")
STOP_TYPES = ("REGULAR", "MAJOR")


class Route(db.Model):
    __tablename__ = "routes"

    id             = db.Column(db.Integer, primary_key=True)
    route_number   = db.Column(db.String(32), nullable=False, unique=True, index=True)
    start_location = db.Column(db.String(128), nullable=False)
    end_location   = db.Column(db.String(128), nullable=False)
    variant        = db.Column(db.String(16), nullable=False, default="REGULAR")
    distance       = db.Column(db.Float, nullable=False)   # km
    average_speed  = db.Column(db.Float, nullable=False)   # km/h
    duration       = db.Column(db.Float, nullable=False)   # hours
    status         = db.Column(db.String(16), nullable=False, default="ACTIVE")

    created_at     = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at     = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    stops = db.relationship(
        "RouteStop",
        back_populates="route",
        order_by="RouteStop.seq",
        cascade="all, delete-orphan",
    )
    trips = db.relationship("Trip", back_populates="route")


class RouteStop(db.Model):
    __tablename__ = "route_stops"

    id        = db.Column(db.Integer, primary_key=True)
    route_id  = db.Column(db.Integer, db.ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True)
    seq       = db.Column(db.Integer, nullable=False)
    stop_name = db.Column(db.String(128), nullable=False)
    stop_type = db.Column(db.String(16), nullable=False, default="REGULAR")
    latitude  = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    route = db.relationship("Route", back_populates="stops")
