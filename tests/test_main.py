import re

from royal_quads import services
from royal_quads.notify import whatsapp_service


def _new_quad(client, name="Quad 1"):
    response = client.post("/api/quads", json={"name": name})
    assert response.status_code == 200
    return response.json()


def _booking_payload(quad_id, **extra):
    payload = {
        "quadId": quad_id,
        "customerName": "Test User",
        "customerPhone": "0712345678",
        "duration": 15,
        "price": 2200,
        "originalPrice": 2200,
    }
    payload.update(extra)
    return payload


# ------------------ ТЕСТЫ ------------------
def test_create_booking(client):
    quad = _new_quad(client)
    response = client.post("/api/bookings", json=_booking_payload(quad["id"]))

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"id", "receiptId", "startTime"}
    assert re.fullmatch(r"RQ-[A-Z0-9]{6}", body["receiptId"])

    quads = client.get("/api/quads").json()
    assert quads[0]["status"] == "rented"


def test_booking_overlap(client):
    quad = _new_quad(client)
    client.post("/api/bookings", json=_booking_payload(quad["id"]))

    response = client.post("/api/bookings", json=_booking_payload(quad["id"], customerName="B"))
    assert response.status_code == 409
    assert response.json()["detail"] == "Quad is not available"


def test_booking_unknown_quad(client):
    response = client.post("/api/bookings", json=_booking_payload(123))
    assert response.status_code == 404


def test_booking_bad_body_is_rejected(client):
    response = client.post("/api/bookings", json={"quadId": "abc"})
    assert response.status_code == 422


def test_complete_booking(client):
    quad = _new_quad(client)
    booking = client.post("/api/bookings", json=_booking_payload(quad["id"])).json()

    response = client.post(f"/api/bookings/{booking['id']}/complete", json={"overtimeMinutes": 5})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["overtimeCharge"] == 500

    assert client.get("/api/quads").json()[0]["status"] == "available"
    history = client.get("/api/bookings/history").json()
    assert [b["id"] for b in history] == [booking["id"]]
    assert history[0]["status"] == "completed"

    again = client.post(f"/api/bookings/{booking['id']}/complete")
    assert again.status_code == 409


def test_feedback_validation(client):
    quad = _new_quad(client)
    booking = client.post("/api/bookings", json=_booking_payload(quad["id"])).json()

    bad = client.post(f"/api/bookings/{booking['id']}/feedback", json={"rating": 6})
    assert bad.status_code == 400
    assert "rating" in bad.json()["detail"]

    ok = client.post(f"/api/bookings/{booking['id']}/feedback", json={"rating": 5, "feedback": "Great"})
    assert ok.json() == {"success": True}
    assert client.get(f"/api/bookings/{booking['id']}").json()["rating"] == 5


def test_quad_status_override_and_heal(client):
    quad = _new_quad(client)

    response = client.put(f"/api/quads/{quad['id']}/status", json={"status": "rented"})
    assert response.json() == {"success": True, "status": "rented"}

    # no booking holds it, so the next read heals it
    assert client.get("/api/quads").json()[0]["status"] == "available"

    invalid = client.put(f"/api/quads/{quad['id']}/status", json={"status": "lost"})
    assert invalid.status_code == 400


def test_get_single_quad_heals_orphan(client):
    quad = _new_quad(client)
    client.put(f"/api/quads/{quad['id']}/status", json={"status": "rented"})

    response = client.get(f"/api/quads/{quad['id']}")
    assert response.status_code == 200
    assert response.json()["status"] == "available"
    assert client.get("/api/quads/999").status_code == 404


def test_update_quad_requires_name(client):
    quad = _new_quad(client)
    response = client.put(f"/api/quads/{quad['id']}", json={"name": "", "status": "available"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Name is required"


def test_promotions(client):
    created = client.post("/api/promotions", json={"code": "easter", "discountPercentage": 20}).json()
    assert created["code"] == "EASTER"

    dup = client.post("/api/promotions", json={"code": "Easter", "discountPercentage": 10})
    assert dup.status_code == 409

    assert client.get("/api/promotions/validate/easter").json()["discountPercentage"] == 20
    quote = client.get("/api/pricing/quote", params={"duration": 10, "promoCode": "easter"}).json()
    assert quote["price"] == 1440

    client.post(f"/api/promotions/{created['id']}/toggle", json={"isActive": False})
    assert client.get("/api/promotions/validate/EASTER").status_code == 404

    assert client.delete(f"/api/promotions/{created['id']}").json() == {"success": True}
    assert client.get("/api/promotions").json() == []


def test_register_login_and_history(client):
    user = client.post(
        "/api/auth/register", json={"name": "Amina", "phone": "0712345678", "password": "pass1"}
    ).json()
    assert "password" not in user

    assert client.post("/api/auth/login", json={"phone": "0712345678", "password": "nope"}).status_code == 401
    assert client.post("/api/auth/login", json={"phone": "0712345678", "password": "pass1"}).json()["id"] == user["id"]

    quad = _new_quad(client)
    client.post("/api/bookings", json=_booking_payload(quad["id"], userId=user["id"]))
    history = client.get(f"/api/users/{user['id']}/history").json()
    assert len(history) == 1
    assert history[0]["quadName"] == "Quad 1"


def test_admin_pin(client, db):
    services.seed_defaults(db, 0, "1234")

    assert client.post("/api/admin/verify-pin", json={"pin": "1234"}).status_code == 200
    assert client.post("/api/admin/verify-pin", json={"pin": "4321"}).status_code == 401

    changed = client.put("/api/admin/pin", json={"currentPin": "1234", "newPin": "2468"})
    assert changed.status_code == 200
    assert client.post("/api/admin/verify-pin", json={"pin": "2468"}).status_code == 200


def test_sales_and_analytics_endpoints(client):
    quad = _new_quad(client)
    booking = client.post("/api/bookings", json=_booking_payload(quad["id"])).json()
    client.post(f"/api/bookings/{booking['id']}/complete", json={"overtimeMinutes": 1})

    sales = client.get("/api/sales").json()
    assert sales["total"] == 2300
    assert sales["today"] == 2300
    assert sales["overtimeRevenue"] == 100

    assert len(client.get("/api/analytics/revenue").json()) == 7
    assert len(client.get("/api/analytics/peak-hours").json()) == 24
    assert client.get("/api/analytics/utilisation").json()[0]["revenue"] == 2200
    assert client.get("/api/analytics/customers").json()["total"] == 1


def test_export_bookings(client):
    quad = _new_quad(client)
    client.post("/api/bookings", json=_booking_payload(quad["id"]))

    response = client.get("/api/bookings/export")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.splitlines()[0].startswith("Receipt,Quad,Customer")


def test_ride_clock_and_receipt_lookup(client):
    quad = _new_quad(client)
    booking = client.post("/api/bookings", json=_booking_payload(quad["id"])).json()

    clock = client.get(f"/api/bookings/{booking['id']}/clock").json()
    assert 0 < clock["remainingSeconds"] <= 15 * 60
    assert clock["overtimeCharge"] == 0

    found = client.get(f"/api/bookings/receipt/{booking['receiptId']}").json()
    assert found["id"] == booking["id"]
    assert client.get("/api/bookings/999").status_code == 404


class _FakeMessages:
    def __init__(self, sent):
        self.sent = sent

    def create(self, **kwargs):
        self.sent.append(kwargs)


def test_waitlist_notify(client, monkeypatch):
    sent = []
    monkeypatch.setattr(whatsapp_service, "whatsapp_enabled", lambda: True)
    monkeypatch.setattr(
        whatsapp_service, "Client",
        lambda sid, token: type("FakeClient", (), {"messages": _FakeMessages(sent)})(),
    )

    entry = client.post(
        "/api/waitlist", json={"customerName": "Amina", "customerPhone": "0712345678", "duration": 15}
    ).json()
    response = client.post(f"/api/waitlist/{entry['id']}/notify").json()

    assert response["notified"] is True
    assert response["messageSent"] is True
    assert sent[0]["to"] == "whatsapp:+254712345678"


class _UnreachableMessages:
    def create(self, **kwargs):
        raise ConnectionError("network unreachable")


def test_waitlist_notify_survives_send_failure(client, monkeypatch):
    monkeypatch.setattr(whatsapp_service, "whatsapp_enabled", lambda: True)
    monkeypatch.setattr(
        whatsapp_service, "Client",
        lambda sid, token: type("FakeClient", (), {"messages": _UnreachableMessages()})(),
    )

    entry = client.post(
        "/api/waitlist", json={"customerName": "Amina", "customerPhone": "0712345678", "duration": 15}
    ).json()
    response = client.post(f"/api/waitlist/{entry['id']}/notify")

    assert response.status_code == 200
    assert response.json()["notified"] is True
    assert response.json()["messageSent"] is False


def test_prebooking_flow(client):
    quad = _new_quad(client)
    pb = client.post("/api/prebookings", json={
        "quadId": quad["id"],
        "customerName": "Amina",
        "customerPhone": "0712345678",
        "duration": 20,
        "price": 2500,
        "scheduledFor": "2099-12-31T12:00:00",
    }).json()
    assert pb["status"] == "pending"

    converted = client.post(f"/api/prebookings/{pb['id']}/convert").json()
    assert converted["prebooking"]["status"] == "converted"
    assert client.get(f"/api/bookings/{converted['booking']['id']}").json()["isPrebooked"] is True


def test_staff_shift_endpoints(client):
    staff = client.post(
        "/api/staff", json={"name": "Juma", "phone": "0722000000", "pin": "4321", "role": "operator"}
    ).json()
    assert client.post("/api/staff/login", json={"pin": "4321"}).json()["id"] == staff["id"]

    shift = client.post("/api/shifts", json={"staffId": staff["id"]}).json()
    assert client.post("/api/shifts", json={"staffId": staff["id"]}).status_code == 409
    ended = client.post(f"/api/shifts/{shift['id']}/end", json={"notes": "all good"}).json()
    assert ended["notes"] == "all good"


def test_damage_and_maintenance_endpoints(client):
    quad = _new_quad(client)
    report = client.post(
        "/api/damage", json={"quadId": quad["id"], "description": "Bent axle", "severity": "severe"}
    ).json()
    assert report["quadName"] == "Quad 1"
    assert client.post(f"/api/damage/{report['id']}/resolve", json={"repairCost": 9000}).json()["resolved"] is True

    client.post("/api/maintenance", json={"quadId": quad["id"], "type": "fuel", "cost": 1200})
    assert client.get("/api/maintenance/total").json() == {"total": 1200}
