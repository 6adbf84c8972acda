#!/usr/bin/env python3
# seed.py

import os

from app import create_app
from db import db
from models.user import User
from routes.auth import validate_password

# Admin account definition (override via env)
ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@gaman.lk")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "Admin@1234")


def seed_admin(app=None):
    """
    Creates or updates the admin user.

    Safe to run repeatedly: an existing account keeps its id and gets the
    admin role and the configured password back.
    """
    app = app or create_app()
    with app.app_context():
        validate_password(ADMIN_PASSWORD)
        user = User.query.filter_by(username=ADMIN_USERNAME).first()

        if not user:
            user = User(username=ADMIN_USERNAME, email=ADMIN_EMAIL, role="admin")
            db.session.add(user)
            print(f"➕ Created admin account `{ADMIN_USERNAME}`.")
        else:
            user.role = "admin"
            print(f"🔄 Updated admin account `{ADMIN_USERNAME}` with a fresh password.")

        user.set_password(ADMIN_PASSWORD)
        db.session.commit()
        print("✅ Seeded the admin account successfully.")
        return user.id


if __name__ == "__main__":
    seed_admin()
