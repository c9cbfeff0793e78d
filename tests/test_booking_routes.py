from datetime import datetime, time, timedelta, timezone

import pytest

from models import db
from models.audit_log import AuditLog


def tomorrow_at(hour, minute=0):
    day = datetime.now(timezone.utc).date() + timedelta(days=1)
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


def booking_payload(facility_id, hour=10, **extra):
    start = tomorrow_at(hour)
    payload = {
        "facility_id": facility_id,
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=1)).isoformat(),
    }
    payload.update(extra)
    return payload


@pytest.fixture
def facility(make_facility):
    return make_facility()


@pytest.fixture
def member(make_user, make_membership):
    user = make_user()
    make_membership(user)
    return user


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_login_me_logout(login, member):
    c, headers = login(member)

    me = c.get("/auth/me")
    assert me.status_code == 200
    assert me.get_json()["email"] == member.email
    assert me.get_json()["roles"] == ["MEMBER"]

    assert c.post("/auth/logout", headers=headers).status_code == 200
    assert c.get("/auth/me").status_code == 401


def test_login_rejects_bad_password(client, member):
    resp = client.post("/auth/login", json={"email": member.email, "password": "nope"})
    assert resp.status_code == 401


def test_inactive_user_cannot_log_in(client, make_user):
    user = make_user(status="suspended")
    resp = client.post("/auth/login", json={"email": user.email, "password": "correct-horse-battery"})
    assert resp.status_code == 403


def test_booking_requires_login(client, facility):
    resp = client.post("/bookings", json=booking_payload(facility.id))
    assert resp.status_code == 401


def test_booking_requires_csrf_header(login, member, facility):
    c, _ = login(member)
    resp = c.post("/bookings", json=booking_payload(facility.id))
    assert resp.status_code == 403


def test_create_booking(login, member, facility):
    c, headers = login(member)
    resp = c.post("/bookings", json=booking_payload(facility.id, notes="bring balls"), headers=headers)

    assert resp.status_code == 201
    body = resp.get_json()["booking"]
    assert body["status"] == "confirmed"
    assert body["facility_id"] == facility.id
    assert body["notes"] == "bring balls"
    assert body["start_time"] == tomorrow_at(10).isoformat()
    assert AuditLog.query.filter_by(action="BOOKING_CREATE").count() == 1


def test_naive_times_are_read_in_club_time(login, member, facility):
    c, headers = login(member)
    start = tomorrow_at(10)
    payload = {
        "facility_id": facility.id,
        "start_time": start.replace(tzinfo=None).isoformat(),
        "end_time": (start + timedelta(hours=1)).replace(tzinfo=None).isoformat(),
    }
    resp = c.post("/bookings", json=payload, headers=headers)

    assert resp.status_code == 201
    assert resp.get_json()["booking"]["start_time"] == start.isoformat()


def test_double_booking_is_rejected_with_409(login, member, make_user, make_membership, facility):
    rival = make_user()
    make_membership(rival)

    c1, h1 = login(member)
    c2, h2 = login(rival)
    assert c1.post("/bookings", json=booking_payload(facility.id), headers=h1).status_code == 201

    resp = c2.post("/bookings", json=booking_payload(facility.id), headers=h2)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "conflict"
    assert AuditLog.query.filter_by(action="BOOKING_CREATE_FAIL").count() == 1


@pytest.mark.parametrize("payload", [
    {},
    {"facility_id": 1, "start_time": "tomorrow", "end_time": "later"},
    {"facility_id": "abc", "start_time": "2030-01-11T10:00:00+00:00", "end_time": "2030-01-11T11:00:00+00:00"},
])
def test_malformed_booking_request(login, member, payload):
    c, headers = login(member)
    assert c.post("/bookings", json=payload, headers=headers).status_code == 400


def test_booking_rule_errors_map_to_status_codes(login, make_user, make_facility):
    c, headers = login(make_user())
    facility = make_facility()

    resp = c.post("/bookings", json=booking_payload(facility.id), headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "membership_required"


def test_wrong_duration_is_400(login, member, facility):
    c, headers = login(member)
    payload = booking_payload(facility.id)
    payload["end_time"] = (tomorrow_at(10) + timedelta(minutes=30)).isoformat()

    resp = c.post("/bookings", json=payload, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "facility_unavailable"


def test_my_bookings_lists_only_mine(login, member, make_user, make_membership, facility):
    rival = make_user()
    make_membership(rival)
    c1, h1 = login(member)
    c2, h2 = login(rival)
    c1.post("/bookings", json=booking_payload(facility.id, hour=10), headers=h1)
    c1.post("/bookings", json=booking_payload(facility.id, hour=12), headers=h1)
    c2.post("/bookings", json=booking_payload(facility.id, hour=14), headers=h2)

    resp = c1.get("/bookings/me")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["pagination"]["total"] == 2
    assert [b["start_time"] for b in body["bookings"]] == [tomorrow_at(12).isoformat(), tomorrow_at(10).isoformat()]
    assert body["bookings"][0]["facility"]["name"] == facility.name

    paged = c1.get("/bookings/me?limit=1&page=2").get_json()
    assert len(paged["bookings"]) == 1
    assert paged["bookings"][0]["start_time"] == tomorrow_at(10).isoformat()


def test_my_bookings_filters(login, member, facility):
    c, headers = login(member)
    first = c.post("/bookings", json=booking_payload(facility.id, hour=10), headers=headers).get_json()["booking"]
    c.post("/bookings", json=booking_payload(facility.id, hour=12), headers=headers)
    c.post(f"/bookings/{first['id']}/cancel", headers=headers)

    assert c.get("/bookings/me?status=cancelled").get_json()["pagination"]["total"] == 1
    assert c.get("/bookings/me?status=bogus").status_code == 400

    day = tomorrow_at(0).date().isoformat()
    assert c.get(f"/bookings/me?start_date={day}&end_date={day}").get_json()["pagination"]["total"] == 2
    assert c.get("/bookings/me?start_date=2000-01-01&end_date=2000-01-02").get_json()["pagination"]["total"] == 0


def test_get_booking_hides_other_members_bookings(login, member, make_user, make_membership, facility):
    c, headers = login(member)
    booking_id = c.post("/bookings", json=booking_payload(facility.id), headers=headers).get_json()["booking"]["id"]

    assert c.get(f"/bookings/{booking_id}").status_code == 200

    stranger = make_user()
    c2, _ = login(stranger)
    assert c2.get(f"/bookings/{booking_id}").status_code == 404

    staff = make_user(role="STAFF")
    c3, _ = login(staff)
    assert c3.get(f"/bookings/{booking_id}").status_code == 200


def test_cancel_own_booking(login, member, facility):
    c, headers = login(member)
    booking_id = c.post("/bookings", json=booking_payload(facility.id), headers=headers).get_json()["booking"]["id"]

    resp = c.post(f"/bookings/{booking_id}/cancel", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "cancelled"

    again = c.post(f"/bookings/{booking_id}/cancel", headers=headers)
    assert again.status_code == 404
    assert again.get_json()["code"] == "not_found_or_not_cancellable"


def test_delete_is_cancel(login, member, facility):
    c, headers = login(member)
    booking_id = c.post("/bookings", json=booking_payload(facility.id), headers=headers).get_json()["booking"]["id"]

    resp = c.delete(f"/bookings/{booking_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "cancelled"


def test_cannot_cancel_someone_elses_booking(login, member, make_user, facility):
    c, headers = login(member)
    booking_id = c.post("/bookings", json=booking_payload(facility.id), headers=headers).get_json()["booking"]["id"]

    c2, h2 = login(make_user())
    assert c2.post(f"/bookings/{booking_id}/cancel", headers=h2).status_code == 404


def test_my_membership(login, member, make_user):
    c, _ = login(member)
    body = c.get("/memberships/me").get_json()
    assert body["status"] == "active"
    assert body["facilities_access"] == ["tennis_court"]

    c2, _ = login(make_user())
    assert c2.get("/memberships/me").status_code == 404


def test_membership_types_lists_active_plans(login, member, make_membership_type):
    make_membership_type(name="Aquatics", facilities_access=["swimming_pool", "sauna"])
    make_membership_type(name="Legacy", is_active=False)
    c, _ = login(member)

    resp = c.get("/memberships/types")
    assert resp.status_code == 200
    plans = {t["name"]: t for t in resp.get_json()}
    assert set(plans) == {"Tennis", "Aquatics"}
    assert plans["Aquatics"]["facilities_access"] == ["sauna", "swimming_pool"]
    assert plans["Tennis"]["max_bookings_per_day"] == 5


def test_membership_types_require_login(client):
    assert client.get("/memberships/types").status_code == 401


def test_booking_accepts_utc_z_suffix(login, member, facility):
    c, headers = login(member)
    start = tomorrow_at(10)
    payload = {
        "facility_id": facility.id,
        "start_time": start.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        "end_time": (start + timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
    }
    resp = c.post("/bookings", json=payload, headers=headers)

    assert resp.status_code == 201
    assert resp.get_json()["booking"]["start_time"] == start.isoformat()
