# models/user.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ("admin", "operator", "commuter")


class User(db.Model):
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True, autoincrement=True)
    username      = db.Column(db.String(30), nullable=False, unique=True, index=True)
    email         = db.Column(db.String(254), nullable=False, unique=True, index=True)
    phone_number  = db.Column(db.String(32), nullable=True)
    role          = db.Column(db.String(32), nullable=False, default="commuter", index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    created_at    = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at    = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # ── Relationships ────────────────────────────────────────────────────────
    buses = db.relationship("Bus", back_populates="operator")

    # ── Helpers ─────────────────────────────────────────────────────────────
    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        try:
            return check_password_hash(self.password_hash or "", raw or "")
        except ValueError:
            return False
