from __future__ import annotations
from db import db
from sqlalchemy.sql import func

OWNERSHIP_TYPES = ("SLTB", "PRIVATE")
BUS_STATUSES = ("ACTIVE", "MAINTENANCE")


class Bus(db.Model):
    __tablename__ = "buses"

    id             = db.Column(db.Integer, primary_key=True)
    bus_number     = db.Column(db.String(32), nullable=False, unique=True)
    capacity       = db.Column(db.Integer, nullable=False)
    operator_id    = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    ownership_type = db.Column(db.String(16), nullable=False)
    status         = db.Column(db.String(16), nullable=False, default="ACTIVE")

    created_at     = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at     = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    operator = db.relationship("User", back_populates="buses")
    trips    = db.relationship("Trip", back_populates="bus")
    tickets  = db.relationship("Ticket", back_populates="bus")
