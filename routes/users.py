# backend/routes/users.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError

from db import db
from auth_guard import require_role
from models.ticket import Ticket
from models.user import User, ROLES
from routes.auth import user_json, validate_email, validate_password
from services.errors import Conflict, NotFound
from utils.validation import ErrorCollector, clean_str, json_body, parse_choice, parse_int

users_bp = Blueprint("users", __name__, url_prefix="/users")


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


@users_bp.route("", methods=["GET"])
@require_role("admin")
def search_users():
    """
    GET /users?username=&role=&email=&page=1&limit=10
    username is a case-insensitive substring match.
    """
    args = request.args
    check = ErrorCollector()
    page = check(parse_int, args.get("page", 1), "page", lo=1)
    limit = check(parse_int, args.get("limit", 10), "limit", lo=1, hi=100)
    check.raise_if_any()

    q = User.query
    if (args.get("username") or "").strip():
        q = q.filter(User.username.ilike(f"%{args['username'].strip()}%"))
    if (args.get("role") or "").strip():
        q = q.filter(User.role == args["role"].strip())
    if (args.get("email") or "").strip():
        q = q.filter(User.email == args["email"].strip().lower())

    total = q.count()
    users = q.order_by(User.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify(users=[user_json(u) for u in users], total=total, page=page, limit=limit), 200


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_role("admin")
def get_user(user_id: int):
    return jsonify(user_json(_get_user_or_404(user_id))), 200


@users_bp.route("/<int:user_id>", methods=["PATCH", "PUT"])
@require_role("admin")
def update_user(user_id: int):
    user = _get_user_or_404(user_id)
    data = json_body()

    check = ErrorCollector()
    if "username" in data:
        user.username = check(clean_str, data["username"], "username", min_len=3, max_len=30) or user.username
    if "email" in data:
        user.email = check(validate_email, data["email"]) or user.email
    if "role" in data:
        user.role = check(parse_choice, data["role"], "role", ROLES) or user.role
    if "phoneNumber" in data:
        user.phone_number = str(data["phoneNumber"] or "").strip() or None
    if "password" in data:
        raw = check(validate_password, data["password"])
        if raw:
            user.set_password(raw)
    if check.details:
        db.session.rollback()
    check.raise_if_any()

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Username or email already in use")

    current_app.logger.info("[users] updated id=%s fields=%s", user.id, sorted(data))
    return jsonify(message="User updated successfully", user=user_json(user)), 200


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@require_role("admin")
def delete_user(user_id: int):
    user = _get_user_or_404(user_id)
    if user.buses:
        raise Conflict("User still operates buses; reassign them first")
    if Ticket.query.filter_by(booked_by=user.id).first():
        raise Conflict("User has booked tickets and cannot be deleted")

    db.session.delete(user)
    db.session.commit()
    current_app.logger.info("[users] deleted id=%s", user_id)
    return jsonify(message="User deleted successfully"), 200
