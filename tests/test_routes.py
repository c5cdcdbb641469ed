"""Tests for the HTTP routes."""

from datetime import timedelta

import pytest

API = "/api/v1"
RECEIPT = "https://files.example.com/receipts/r.png"
USER = {"user_id": "user-1", "user_name": "Nimal", "user_email": "nimal@example.com", "user_phone": "0771234567"}


@pytest.fixture
def court_id(client):
    resp = client.post(
        f"{API}/facilities",
        json={"court_number": "C1", "sport_name": "Tennis", "sport_category": "Outdoor", "court_price": 1500},
    )
    assert resp.status_code == 201
    return resp.json()["id"]


def _booking_body(today, slots):
    return {**USER, "sport_name": "Tennis", "court_number": "C1", "date": today.isoformat(), "time_slots": slots, "receipt": RECEIPT}


class TestFacilityBookingRoutes:
    def test_create_booking(self, client, court_id, today):
        resp = client.post(f"{API}/facility-booking", json=_booking_body(today, ["08:00 - 09:00"]))
        assert resp.status_code == 201
        booking = resp.json()["facility_booking"]
        assert booking["total_price"] == 1500

        resp = client.get(f"{API}/facility-booking/{booking['id']}")
        assert resp.status_code == 200
        assert resp.json()["time_slots"] == ["08:00 - 09:00"]

    def test_conflict_payload(self, client, court_id, today):
        client.post(f"{API}/facility-booking", json=_booking_body(today, ["08:00 - 09:00"]))
        resp = client.post(f"{API}/facility-booking", json=_booking_body(today, ["08:00 - 09:00", "09:00 - 10:00"]))
        assert resp.status_code == 409
        assert resp.json()["detail"] == {"msg": "Some time slots are already booked", "unavailable_slots": ["08:00 - 09:00"]}

    def test_invalid_slot(self, client, court_id, today):
        resp = client.post(f"{API}/facility-booking", json=_booking_body(today, ["8 to 9"]))
        assert resp.status_code == 400
        assert resp.json()["detail"]["invalid_slots"] == ["8 to 9"]

    def test_missing_receipt(self, client, court_id, today):
        body = _booking_body(today, ["08:00 - 09:00"])
        del body["receipt"]
        resp = client.post(f"{API}/facility-booking", json=body)
        assert resp.status_code == 400

    def test_available_slots(self, client, court_id, today):
        client.post(f"{API}/facility-booking", json=_booking_body(today, ["08:00 - 09:00"]))
        resp = client.post(
            f"{API}/facility-booking/available-slots",
            json={"court_number": "C1", "sport_name": "Tennis", "date": today.isoformat()},
        )
        assert resp.status_code == 200
        assert "08:00 - 09:00" not in resp.json()["available_slots"]
        assert len(resp.json()["available_slots"]) == 9

    def test_available_facilities_none_left(self, client, court_id, today):
        client.post(f"{API}/facility-booking", json=_booking_body(today, ["08:00 - 09:00"]))
        resp = client.post(
            f"{API}/facility-booking/available-facilities",
            json={"sport_name": "Tennis", "date": today.isoformat(), "time_slot": "08:00 - 09:00"},
        )
        assert resp.status_code == 404

    def test_user_bookings(self, client, court_id, today):
        client.post(f"{API}/facility-booking", json=_booking_body(today, ["08:00 - 09:00"]))
        resp = client.get(f"{API}/facility-booking/user/user-1")
        assert len(resp.json()) == 1

    def test_unknown_booking(self, client):
        resp = client.get(f"{API}/facility-booking/64b7f0c2e4b0a1a2b3c4d5e6")
        assert resp.status_code == 404


class TestSessionRoutes:
    def test_full_workflow(self, client, coach, today):
        slot = {"date": (today + timedelta(days=2)).isoformat(), "time_slot": "10:00 - 11:00"}
        resp = client.post(
            f"{API}/session/request",
            json={**USER, "sport_name": "Tennis", "session_type": "Individual Session", "coach_profile_id": coach["id"], "requested_time_slots": [slot]},
        )
        assert resp.status_code == 201
        request_id = resp.json()["id"]

        resp = client.put(f"{API}/session/respond/{request_id}", json={"status": "Accepted", "court_no": "C1"})
        assert resp.json()["status"] == "Accepted"

        resp = client.put(f"{API}/session/respond/{request_id}", json={"status": "Rejected"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["status"] == "Accepted"

        resp = client.post(f"{API}/session/booking", json={"session_request_id": request_id})
        assert resp.status_code == 400
        assert resp.json()["detail"]["reason"] == "missing_receipt"

        client.post(f"{API}/session/upload-receipt/{request_id}", json={"receipt": RECEIPT})
        resp = client.post(f"{API}/session/booking", json={"session_request_id": request_id})
        assert resp.status_code == 200
        booking = resp.json()
        assert booking["court_no"] == "C1"

        resp = client.get(f"{API}/session/download-qrcode/{booking['id']}")
        assert resp.json()["qr_code_url"] == booking["qr_code_url"]

        code_id = booking["qr_code_url"].rsplit("/", 1)[1]
        resp = client.get(f"{API}/verification-code/{code_id}")
        assert resp.status_code == 200
        assert resp.json()["payload"]["coach_name"] == "Kamal Perera"

        assert client.get(f"{API}/session/request/{request_id}").json()["status"] == "Booked"
        assert len(client.get(f"{API}/session/booking/user-1").json()) == 1
        assert len(client.get(f"{API}/session/booking/coach/coach-user-1").json()) == 1

    def test_undeclared_slot(self, client, coach, today):
        slot = {"date": (today + timedelta(days=2)).isoformat(), "time_slot": "11:00 - 12:00"}
        resp = client.post(
            f"{API}/session/request",
            json={**USER, "sport_name": "Tennis", "session_type": "Individual Session", "coach_profile_id": coach["id"], "requested_time_slots": [slot]},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["unavailable_time_slots"] == [slot]

    def test_respond_unknown(self, client):
        resp = client.put(f"{API}/session/respond/64b7f0c2e4b0a1a2b3c4d5e6", json={"status": "Accepted"})
        assert resp.status_code == 404

    def test_availability_window(self, client, coach, today):
        too_late = {"date": (today + timedelta(days=8)).isoformat(), "time_slot": "10:00 - 11:00"}
        resp = client.put(f"{API}/coach-profile/{coach['id']}/availability", json={"available_time_slots": [too_late]})
        assert resp.status_code == 400

        ok = {"date": (today + timedelta(days=7)).isoformat(), "time_slot": "10:00 - 11:00"}
        resp = client.put(f"{API}/coach-profile/{coach['id']}/availability", json={"available_time_slots": [ok]})
        assert resp.status_code == 200
        assert resp.json()["available_time_slots"] == [ok]


class TestReviewRoutes:
    def test_reviews_and_rating(self, client, coach):
        for rating in (3, 4, 5):
            resp = client.post(f"{API}/reviews", json={"user_id": "user-1", "coach_profile_id": coach["id"], "rating": rating})
            assert resp.status_code == 201
        assert client.get(f"{API}/reviews/{coach['id']}").json()["avg_rating"] == 4.0
        assert client.get(f"{API}/coach-profile/{coach['id']}").json()["avg_rating"] == 4.0

    def test_rating_out_of_range(self, client, coach):
        resp = client.post(f"{API}/reviews", json={"user_id": "user-1", "coach_profile_id": coach["id"], "rating": 6})
        assert resp.status_code == 422


def test_health(client):
    resp = client.get("/test")
    assert resp.status_code == 200
    assert resp.json()["backend"] == "Running"
