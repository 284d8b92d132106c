from datetime import date

from sniperzone.core.settings import settings
from sniperzone.services.booking_service import BookingService
from sniperzone.utils.timezone import next_occurrence, today_local

PARENT = {"X-Firebase-Uid": "parent-1"}
ADMIN = {"X-Firebase-Uid": "coach-1"}


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_sql_echo_only_in_dev():
    from sniperzone.core.database import engine

    assert settings.env == "test"
    assert engine.sync_engine.echo is False


async def test_missing_caller_header_is_rejected(client):
    response = await client.post("/api/registrations/1/reschedule", json={"change_type": "permanent", "new_days": ["monday"]})
    assert response.status_code == 401


async def test_unknown_registration_is_404(client):
    response = await client.post(
        "/api/registrations/999/reschedule",
        json={"change_type": "permanent", "new_days": ["monday"]},
        headers=PARENT,
    )
    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["code"] == "NOT_FOUND"


async def test_full_slot_returns_409_with_full_slots(client, make_registration):
    for i in range(6):
        await make_registration(uid=f"other-{i}", days=["saturday"])
    registration = await make_registration(days=["tuesday"])

    response = await client.post(
        f"/api/registrations/{registration.id}/reschedule",
        json={"change_type": "permanent", "new_days": ["saturday"]},
        headers=PARENT,
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "SLOT_FULL"
    assert body["full_slots"][0]["day"] == "saturday"


async def test_permanent_reschedule_and_occurrences(client, make_registration):
    registration = await make_registration(days=["tuesday"])

    response = await client.post(
        f"/api/registrations/{registration.id}/reschedule",
        json={"change_type": "permanent", "new_days": ["Thursday"]},
        headers=PARENT,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["new_schedule"] == {"days": ["thursday"], "time_slot": "4:30 PM"}

    response = await client.get(f"/api/registrations/{registration.id}/occurrences?weeks=2", headers=PARENT)
    occurrences = response.json()["occurrences"]
    assert len(occurrences) == 2
    assert {o["day"] for o in occurrences} == {"thursday"}


async def test_availability_endpoint(client, make_registration):
    await make_registration(days=["monday"])

    response = await client.get("/api/availability", params={"program_type": "group", "day": "monday"})
    assert response.status_code == 200
    assert response.json()["booked_count"] == 1
    assert response.json()["spots_remaining"] == 5

    response = await client.get("/api/availability", params={"program_type": "group", "day": "noday"})
    assert response.status_code == 400


async def test_booking_requires_credits(client, make_registration):
    registration = await make_registration(category="M11")
    session_date = next_occurrence("monday", today_local(), include_today=False)

    response = await client.post(
        "/api/bookings",
        json={
            "registration_id": registration.id,
            "session_type": "group",
            "session_date": session_date.isoformat(),
            "time_slot": "4:30 PM",
        },
        headers=PARENT,
    )
    assert response.status_code == 402
    assert response.json()["code"] == "INSUFFICIENT_CREDITS"


async def test_recurring_crud(client, make_registration):
    registration = await make_registration(days=["wednesday"])

    response = await client.post(
        "/api/recurring",
        json={"registration_id": registration.id, "day_of_week": "wednesday"},
        headers=PARENT,
    )
    assert response.status_code == 201
    schedule = response.json()
    assert schedule["is_active"] is True
    assert date.fromisoformat(schedule["next_booking_date"]) > today_local()

    response = await client.patch(f"/api/recurring/{schedule['id']}", json={"is_active": False}, headers=PARENT)
    assert response.json()["paused_reason"] == "user_paused"

    response = await client.get("/api/recurring", headers={"X-Firebase-Uid": "parent-2"})
    assert response.json() == []

    response = await client.delete(f"/api/recurring/{schedule['id']}", headers=PARENT)
    assert response.status_code == 204


async def test_cron_endpoints_require_secret(client):
    response = await client.post("/api/cron/process-recurring")
    assert response.status_code == 401

    response = await client.post("/api/cron/process-recurring", headers={"X-Cron-Secret": "wrong"})
    assert response.status_code == 401


async def test_cron_runs_with_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    headers = {"X-Cron-Secret": "s3cret"}

    response = await client.post("/api/cron/process-recurring", headers=headers)
    assert response.status_code == 200
    assert response.json()["processed"] == 0

    response = await client.post("/api/cron/generate-sunday-slots", headers=headers)
    assert response.json()["created"] == settings.sunday_slot_weeks_ahead * 2


async def test_sunday_roster_export_csv(client, db, make_registration, monkeypatch):
    monkeypatch.setattr(settings, "admin_uids", "coach-1")
    service = BookingService(db)
    await service.generate_sunday_slots(weeks_ahead=1)
    sunday = next_occurrence("sunday", today_local(), include_today=True)
    registration = await make_registration(category="M9", name="Sam Skater")
    listing = await service.get_next_sunday_slots(registration.id, "parent-1")
    await service.book_sunday_slot(listing["slots"][0]["slot_id"], registration.id, "parent-1")

    response = await client.get(f"/api/sunday/roster/{sunday.isoformat()}/export", headers=ADMIN)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0] == "Time,Player,Category,Parent,Email,Status"
    assert lines[1].startswith("07:30-08:30,Sam Skater,M9")


async def test_admin_views_require_an_admin(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_uids", "coach-1, coach-2")

    for path in ("/api/semi-private/admin/unpaired", "/api/sunday/roster/2025-03-09"):
        assert (await client.get(path)).status_code == 401
        assert (await client.get(path, headers=PARENT)).status_code == 403
        assert (await client.get(path, headers=ADMIN)).status_code == 200


async def test_mark_sunday_attendance(client, db, make_registration, monkeypatch):
    monkeypatch.setattr(settings, "admin_uids", "coach-1")
    service = BookingService(db)
    await service.generate_sunday_slots(weeks_ahead=1)
    registration = await make_registration(category="M9")
    listing = await service.get_next_sunday_slots(registration.id, "parent-1")
    booking = await service.book_sunday_slot(listing["slots"][0]["slot_id"], registration.id, "parent-1")
    path = f"/api/sunday/bookings/{booking.id}/attendance"

    response = await client.post(path, json={"attended": True}, headers=PARENT)
    assert response.status_code == 403

    response = await client.post(path, json={"attended": False}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["status"] == "no_show"
