from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from sniperzone.core.exceptions import AdmissionRejected, StoreError, ValidationError
from sniperzone.models import BookingStatus, ProgramType, RegistrationStatus, SessionBooking
from sniperzone.services.capacity_service import CapacityLedger


async def test_group_capacity_counts_paid_active_per_day(db, make_registration):
    for _ in range(5):
        await make_registration(days=["saturday"])
    await make_registration(days=["saturday"], payment_status="pending")
    await make_registration(days=["saturday"], status=RegistrationStatus.CANCELLED)

    ledger = CapacityLedger(db)
    result = await ledger.check_availability("group", "Saturday")
    assert result.booked_count == 5
    assert result.capacity == 6
    assert result.available

    await make_registration(days=["saturday", "monday"], frequency="2x")
    result = await ledger.check_availability("group", "saturday")
    assert result.booked_count == 6
    assert not result.available


async def test_excluded_registration_is_not_counted(db, make_registration):
    regs = [await make_registration(days=["friday"]) for _ in range(6)]
    ledger = CapacityLedger(db)

    assert not (await ledger.check_availability("group", "friday")).available
    assert (await ledger.check_availability("group", "friday", exclude_registration_ids=[regs[0].id])).available


async def test_private_and_semi_private_share_hourly_slots(db, make_registration):
    await make_registration(program=ProgramType.PRIVATE, days=["tuesday"], time_slot="10-11")
    ledger = CapacityLedger(db)

    assert not (await ledger.check_availability("semi_private", "tuesday", "10-11")).available
    assert not (await ledger.check_availability("private", "tuesday", "10-11")).available
    assert (await ledger.check_availability("private", "tuesday", "11-12")).available
    assert (await ledger.check_availability("private", "wednesday", "10-11")).available


async def test_invalid_input_is_rejected(db):
    ledger = CapacityLedger(db)
    with pytest.raises(ValidationError):
        await ledger.check_availability("group", "someday")
    with pytest.raises(ValidationError):
        await ledger.check_availability("private", "monday")
    with pytest.raises(ValidationError):
        await ledger.check_availability("hockey_camp", "monday")


async def test_ensure_admissible_lists_every_full_day(db, make_registration):
    for _ in range(6):
        await make_registration(days=["monday", "thursday"], frequency="2x")

    with pytest.raises(AdmissionRejected) as exc_info:
        await CapacityLedger(db).ensure_admissible("group", ["monday", "thursday"])

    assert [slot["day"] for slot in exc_info.value.full_slots] == ["monday", "thursday"]
    assert "Monday" in exc_info.value.message


async def test_store_failure_fails_closed(db, monkeypatch):
    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(db, "execute", broken_execute)

    with pytest.raises(StoreError):
        await CapacityLedger(db).check_availability("group", "monday")


async def test_admit_booking_stops_at_capacity(db, make_registration):
    ledger = CapacityLedger(db)
    session_date = date(2025, 3, 10)
    registrations = [await make_registration() for _ in range(2)]

    def booking_for(registration):
        return SessionBooking(
            firebase_uid=registration.firebase_uid,
            registration_id=registration.id,
            session_type="private",
            session_date=session_date,
            time_slot="9-10",
            status=BookingStatus.BOOKED,
        )

    first = await ledger.admit_booking(booking_for(registrations[0]))
    assert first.id is not None

    with pytest.raises(AdmissionRejected):
        await ledger.admit_booking(booking_for(registrations[1]))

    availability = await ledger.get_slot_capacity(session_date, "9-10", "private")
    assert availability.booked_count == 1


async def test_cancelled_bookings_free_the_seat(db, make_registration):
    ledger = CapacityLedger(db)
    registration = await make_registration()
    db.add(
        SessionBooking(
            firebase_uid=registration.firebase_uid,
            registration_id=registration.id,
            session_type="private",
            session_date=date(2025, 3, 10),
            time_slot="9-10",
            status=BookingStatus.CANCELLED,
        )
    )
    await db.commit()

    availability = await ledger.get_slot_capacity(date(2025, 3, 10), "9-10", "private")
    assert availability.booked_count == 0
    assert availability.available
