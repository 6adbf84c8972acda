import datetime as dt

from db import db
from models.ticket import Ticket


# ---------- buses ----------

def test_bus_crud(client, users, auth):
    headers = auth(users["operator"])
    res = client.post("/buses", json={"busNumber": " nb-2020 ", "capacity": 52, "ownershipType": "SLTB"},
                      headers=headers)
    assert res.status_code == 201
    bus = res.get_json()["bus"]
    assert bus["busNumber"] == "NB-2020"
    assert bus["operatorId"] == users["operator"].id
    assert bus["status"] == "ACTIVE"

    assert [b["id"] for b in client.get("/buses?ownershipType=SLTB").get_json()] == [bus["id"]]
    assert client.get("/buses?busNumber=nb-2020").get_json()[0]["capacity"] == 52

    res = client.put(f"/buses/{bus['id']}", json={"status": "MAINTENANCE"}, headers=headers)
    assert res.get_json()["bus"]["status"] == "MAINTENANCE"

    assert client.delete(f"/buses/{bus['id']}", headers=headers).status_code == 200
    assert client.get(f"/buses/{bus['id']}").status_code == 404


def test_bus_validation(client, users, auth, bus):
    headers = auth(users["operator"])
    res = client.post("/buses", json={"busNumber": "NB 20!", "capacity": 0, "ownershipType": "STATE"},
                      headers=headers)
    assert res.status_code == 400
    assert len(res.get_json()["details"]) == 3

    res = client.post("/buses", json={"busNumber": "na-1234", "capacity": 40, "ownershipType": "PRIVATE"},
                      headers=headers)
    assert res.status_code == 409

    assert client.post("/buses", json={}, headers=auth(users["commuter"])).status_code == 403


def test_bus_with_trips_cannot_be_deleted(client, users, auth, trip, bus):
    res = client.delete(f"/buses/{bus.id}", headers=auth(users["operator"]))
    assert res.status_code == 409


def test_operator_cannot_edit_someone_elses_bus(client, users, auth, bus):
    users["other"].role = "operator"
    db.session.commit()
    res = client.put(f"/buses/{bus.id}", json={"capacity": 10}, headers=auth(users["other"]))
    assert res.status_code == 404


def test_bad_bus_update_with_operator_reassignment_is_400(client, users, auth, bus):
    bus_id, op_id = bus.id, users["operator"].id
    headers = auth(users["admin"])
    db.session.expunge_all()

    res = client.put(f"/buses/{bus_id}", json={"capacity": "abc", "operatorId": op_id}, headers=headers)
    assert res.status_code == 400
    assert res.get_json()["details"] == ["capacity must be an integer"]

    res = client.put(f"/buses/{bus_id}", json={"busNumber": "no spaces!", "operatorId": op_id}, headers=headers)
    assert res.status_code == 400
    assert client.get(f"/buses/{bus_id}").get_json()["capacity"] == 40


def test_non_object_json_body_is_400(client, users, auth):
    res = client.post("/buses", json=["NA-1", 40], headers=auth(users["operator"]))
    assert res.status_code == 400
    assert res.get_json()["details"] == ["request body must be a JSON object"]


# ---------- routes ----------

ROUTE = {
    "routeNumber": "99",
    "startLocation": "Galle",
    "endLocation": "Matara",
    "variant": "EXPRESS",
    "distance": 45,
    "averageSpeed": 45,
    "duration": 1.05,
    "stops": [
        {"stopName": "Galle", "stopType": "MAJOR", "latitude": 6.03, "longitude": 80.22},
        {"stopName": "Weligama"},
        {"stopName": "Matara", "stopType": "MAJOR"},
    ],
}


def test_route_create_and_search(client, users, auth):
    res = client.post("/routes", json=ROUTE, headers=auth(users["admin"]))
    assert res.status_code == 201
    route = res.get_json()["route"]
    assert [s["stopName"] for s in route["stops"]] == ["Galle", "Weligama", "Matara"]
    assert route["stops"][1]["stopType"] == "REGULAR"

    headers = auth(users["commuter"])
    assert client.get("/routes", headers=headers).status_code == 200
    found = client.get("/routes?stop=weli", headers=headers).get_json()
    assert [r["routeNumber"] for r in found] == ["99"]
    assert client.get("/routes?startLocation=kandy", headers=headers).get_json() == []
    assert client.get("/routes").status_code == 401


def test_route_shape_rules(client, users, auth):
    headers = auth(users["admin"])
    res = client.post("/routes", json={**ROUTE, "duration": 2}, headers=headers)
    assert res.status_code == 400
    assert "duration" in res.get_json()["details"][0]

    res = client.post("/routes", json={**ROUTE, "endLocation": "galle"}, headers=headers)
    assert res.status_code == 400

    bad_stop = {**ROUTE, "stops": [{"stopName": "Nowhere", "latitude": 91}]}
    assert client.post("/routes", json=bad_stop, headers=headers).status_code == 400

    assert client.post("/routes", json=ROUTE, headers=auth(users["operator"])).status_code == 403


def test_route_update_and_delete(client, users, auth, route, trip):
    headers = auth(users["admin"])
    res = client.put(f"/routes/{route.id}", json={"distance": 130, "duration": 3.25}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["route"]["distance"] == 130

    res = client.put(f"/routes/{route.id}", json={"duration": 9}, headers=headers)
    assert res.status_code == 400
    assert client.get(f"/routes/{route.id}", headers=headers).get_json()["duration"] == 3.25

    assert client.delete(f"/routes/{route.id}", headers=headers).status_code == 409


# ---------- trips ----------

def _trip_body(bus, route, **over):
    body = {
        "tripName": "Evening express",
        "routeId": route.id,
        "busId": bus.id,
        "departureTime": "17:00",
        "arrivalTime": "20:00",
        "activeDays": ["mon", "fri", "MON"],
        "stops": [{"stopName": "Kadawatha", "stopTime": "17:40"}],
    }
    body.update(over)
    return body


def test_trip_create_and_search(client, users, auth, bus, route):
    res = client.post("/trips", json=_trip_body(bus, route), headers=auth(users["admin"]))
    assert res.status_code == 201
    trip = res.get_json()["trip"]
    assert trip["activeDays"] == ["MON", "FRI"]
    assert trip["ticketSaleEndTime"] is None
    assert trip["totalBookings"] == 0

    # 2030-01-07 is a Monday, 2030-01-08 a Tuesday
    assert [t["id"] for t in client.get("/trips?date=2030-01-07").get_json()] == [trip["id"]]
    assert client.get("/trips?date=2030-01-08").get_json() == []
    assert client.get(f"/trips?busId={bus.id}&status=ACTIVE").status_code == 200
    assert client.get("/trips?date=soon").status_code == 400


def test_trip_schedule_rules(client, users, auth, bus, route):
    headers = auth(users["admin"])
    res = client.post("/trips", json=_trip_body(bus, route, arrivalTime="16:00"), headers=headers)
    assert res.status_code == 400

    late_stop = [{"stopName": "Kadawatha", "stopTime": "20:00"}]
    assert client.post("/trips", json=_trip_body(bus, route, stops=late_stop), headers=headers).status_code == 400

    twice = [{"stopName": "Kadawatha", "stopTime": "17:40"}, {"stopName": "kadawatha", "stopTime": "18:00"}]
    assert client.post("/trips", json=_trip_body(bus, route, stops=twice), headers=headers).status_code == 400

    res = client.post("/trips", json=_trip_body(bus, route, activeDays=["FUNDAY"], busId=999), headers=headers)
    assert res.status_code == 400
    assert len(res.get_json()["details"]) == 2


def test_trip_update_and_delete(client, users, auth, trip):
    headers = auth(users["admin"])
    res = client.patch(f"/trips/{trip.id}", json={"ticketSaleEndTime": "08:30", "status": "INACTIVE"},
                       headers=headers)
    assert res.status_code == 200
    assert res.get_json()["trip"]["ticketSaleEndTime"] == "08:30"

    db.session.add(Ticket(
        trip_id=trip.id, bus_id=trip.bus_id, route_id=trip.route_id, commuter_phone="0771234567",
        seat_number=1, travel_date=dt.date(2030, 1, 7), otp="1234", status="pending",
        payment_status="pending", payment_type="cash",
    ))
    db.session.commit()
    assert client.delete(f"/trips/{trip.id}", headers=headers).status_code == 409
