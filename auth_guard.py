# auth_guard.py
from __future__ import annotations

import jwt
from functools import wraps
from datetime import datetime, timedelta, timezone

from flask import request, jsonify, g, current_app

from db import db
from models.user import User

__all__ = ["require_role", "issue_token"]


def issue_token(user: User) -> str:
    ttl = int(current_app.config.get("JWT_TTL_HOURS", 1))
    return jwt.encode(
        {
            "user_id": user.id,
            "username": user.username,
            "role": user.role,
            "exp": datetime.now(timezone.utc) + timedelta(hours=ttl),
        },
        current_app.config["SECRET_KEY"],
        algorithm="HS256",
    )


def require_role(*roles):
    """
    Usage:
      @require_role()                        -> any authenticated user
      @require_role("commuter")              -> only commuters (or admin)
      @require_role("operator", "commuter")  -> operator or commuter (or admin)
    """
    # Support passing a single list/tuple as well
    if len(roles) == 1 and isinstance(roles[0], (list, tuple, set)):
        roles = tuple(roles[0])
    allowed = {str(r).lower() for r in roles if r}

    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                return jsonify(error="Access denied. No token provided."), 401

            token = auth.split(" ", 1)[1]
            try:
                payload = jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=["HS256"])
            except jwt.ExpiredSignatureError:
                return jsonify(error="Token has expired"), 401
            except jwt.InvalidTokenError:
                return jsonify(error="Invalid token"), 401

            uid = payload.get("user_id")
            user = db.session.get(User, uid) if uid is not None else None
            if not user:
                return jsonify(error="User not found"), 401

            # Stash user for downstream handlers
            role = (user.role or "").lower()
            g.user = user  # type: ignore[attr-defined]
            g.role = role  # type: ignore[attr-defined]

            current_app.logger.info(
                "[guard] %s %s uid=%s user=%s role=%s ip=%s",
                request.method,
                request.path,
                user.id,
                user.username,
                role,
                request.remote_addr,
            )

            # Role check (admin bypass)
            if allowed and role not in allowed and role != "admin":
                return jsonify(
                    error=f"Access denied. Only users with the roles: {', '.join(sorted(allowed))} are allowed."
                ), 403

            return f(*args, **kwargs)

        return wrapped

    return decorator
