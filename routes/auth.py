# backend/routes/auth.py
from __future__ import annotations

import re
import time
from flask import Blueprint, jsonify, g, current_app
from sqlalchemy.exc import OperationalError

from db import db
from models.user import User
from auth_guard import require_role, issue_token
from services.errors import ValidationFailed
from utils.validation import ErrorCollector, clean_str, json_body

__all__ = ["auth_bp", "require_role", "user_json", "validate_password", "validate_email"]
auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

# -------------------------------------------------------------------
# Config & helpers
# -------------------------------------------------------------------
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&#])[A-Za-z\d@$!%*?&#]{8,}$")
EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def validate_password(raw) -> str:
    if not isinstance(raw, str) or not PASSWORD_RE.fullmatch(raw):
        raise ValidationFailed(details=[
            "password must be at least 8 characters long and include at least one uppercase letter, "
            "one lowercase letter, one digit, and one special character."
        ])
    return raw


def validate_email(raw) -> str:
    email = str(raw or "").strip().lower()
    if not EMAIL_RE.fullmatch(email):
        raise ValidationFailed(details=["email must be a valid email address"])
    return email


def user_json(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "phoneNumber": u.phone_number,
        "role": u.role,
        "createdAt": u.created_at.isoformat() if u.created_at else None,
    }


# -------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------
@auth_bp.after_request
def add_perf_headers(resp):
    resp.headers["Connection"] = "keep-alive"
    resp.headers["Cache-Control"] = "no-store"
    return resp


# -------------------------------------------------------------------
# Health
# -------------------------------------------------------------------
@auth_bp.route("/ping", methods=["GET"])
def ping():
    return jsonify(ok=True, ts=time.time()), 200


# -------------------------------------------------------------------
# Me (token-based)
# -------------------------------------------------------------------
@auth_bp.route("/me", methods=["GET"])
@require_role()
def me():
    return jsonify(user_json(g.user)), 200


# -------------------------------------------------------------------
# Register (commuter)
# -------------------------------------------------------------------
@auth_bp.route("/register", methods=["POST"])
def register():
    data = json_body()

    check = ErrorCollector()
    username = check(clean_str, data.get("username"), "username", min_len=3, max_len=30)
    password = check(validate_password, data.get("password"))
    email = check(validate_email, data.get("email"))
    phone = str(data.get("phoneNumber") or "").strip() or None
    check.raise_if_any()

    # self-registration always yields a commuter; admins promote via /users/<id>
    if data.get("role") not in (None, "", "commuter"):
        return jsonify(error="Only commuter accounts can self-register"), 403

    if User.query.filter(User.email == email).first():
        return jsonify(error="User already exists with this email"), 409
    if User.query.filter(User.username == username).first():
        return jsonify(error="Username is already taken"), 409

    user = User(username=username, email=email, phone_number=phone, role="commuter")
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    current_app.logger.info("[auth] registered user=%s id=%s", username, user.id)
    return jsonify(message="User registered successfully", userId=user.id), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """Sign in a user and return a JWT."""
    data = json_body()
    if "username" not in data or "password" not in data:
        return jsonify(error="Missing username or password"), 400

    def _get_user():
        return User.query.filter_by(username=str(data["username"])).first()

    # One-time retry if DB connection dropped
    try:
        user = _get_user()
    except OperationalError as e:
        current_app.logger.warning("DB connection dropped; retrying once… %s", e)
        db.session.remove()
        db.engine.dispose()
        user = _get_user()

    if not (user and user.check_password(str(data["password"]))):
        current_app.logger.warning("[auth] failed login for username=%s", data.get("username"))
        return jsonify(error="Invalid credentials. Please check your username and password."), 401

    token = issue_token(user)
    current_app.logger.info("[auth] login ok user=%s", user.username)

    return jsonify(
        message="Login successful",
        token=token,
        role=user.role,
        user=user_json(user),
    ), 200
