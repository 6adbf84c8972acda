import datetime as dt

import pytest

from app import create_app
from auth_guard import issue_token
from config import TestingConfig
from db import db
from models.bus import Bus
from models.route import Route, RouteStop
from models.trip import Trip, TripStop
from models.user import User

PASSWORD = "Secret@123"

# a Monday; the default trip leaves at 10:00 so sales close at 09:00
TRAVEL_DAY = dt.date(2030, 1, 7)
NOW = dt.datetime(2030, 1, 7, 8, 0)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(username, role, phone=None):
    u = User(username=username, email=f"{username}@example.com", role=role, phone_number=phone)
    u.set_password(PASSWORD)
    db.session.add(u)
    return u


@pytest.fixture
def users(app):
    out = {
        "admin": _user("admin", "admin"),
        "operator": _user("operator", "operator"),
        "commuter": _user("commuter", "commuter", "0771234567"),
        "other": _user("other", "commuter", "0777654321"),
    }
    db.session.commit()
    return out


@pytest.fixture
def bus(users):
    b = Bus(bus_number="NA-1234", capacity=40, operator_id=users["operator"].id,
            ownership_type="PRIVATE", status="ACTIVE")
    db.session.add(b)
    db.session.commit()
    return b


@pytest.fixture
def route(app):
    r = Route(route_number="138", start_location="Colombo", end_location="Kandy",
              variant="REGULAR", distance=120.0, average_speed=40.0, duration=3.0, status="ACTIVE")
    r.stops = [
        RouteStop(seq=1, stop_name="Colombo Fort", stop_type="MAJOR", latitude=6.93, longitude=79.85),
        RouteStop(seq=2, stop_name="Kadawatha", stop_type="REGULAR"),
        RouteStop(seq=3, stop_name="Kandy", stop_type="MAJOR"),
    ]
    db.session.add(r)
    db.session.commit()
    return r


def make_trip(bus, route, *, departure=dt.time(10, 0), arrival=dt.time(14, 0),
              sale_end=None, days="MON,TUE,WED,THU,FRI,SAT,SUN", status="ACTIVE"):
    t = Trip(trip_name="Colombo - Kandy morning", route_id=route.id, bus_id=bus.id,
             departure_time=departure, arrival_time=arrival, ticket_sale_end_time=sale_end,
             active_days=days, status=status)
    t.stops = [TripStop(seq=1, stop_name="Kadawatha", stop_time=dt.time(10, 45))]
    db.session.add(t)
    db.session.commit()
    return t


@pytest.fixture
def trip(bus, route):
    return make_trip(bus, route)


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user)}"}
    return _headers
