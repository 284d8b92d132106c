from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import func, select

from sniperzone.core.exceptions import (
    AdmissionRejected,
    InsufficientCreditsError,
    NotFoundOrUnauthorized,
    ValidationError,
)
from sniperzone.models import BookingStatus, ProgramType, SessionBooking, SundayPracticeSlot
from sniperzone.services.booking_service import BookingService
from sniperzone.services.credit_ledger import SqlCreditLedger

TODAY = date(2025, 3, 5)
SESSION_DAY = date(2025, 3, 10)
NEXT_SUNDAY = date(2025, 3, 9)


async def _slot(db, practice_date, start):
    return await db.scalar(
        select(SundayPracticeSlot).where(
            SundayPracticeSlot.practice_date == practice_date,
            SundayPracticeSlot.start_time == start,
        )
    )


async def test_book_group_session_charges_one_credit(db, make_registration, add_credits):
    registration = await make_registration(category="M11")
    purchase = await add_credits("parent-1", 2)

    booking = await BookingService(db).book_session(
        "parent-1", registration.id, "group", SESSION_DAY, "4:30 PM", today=TODAY
    )

    assert booking.status == BookingStatus.BOOKED
    assert booking.credits_used == 1
    assert booking.credit_purchase_id == purchase.id
    assert await SqlCreditLedger(db).get_balance("parent-1") == 1


async def test_book_session_rejections_do_not_charge(db, make_registration, add_credits):
    registration = await make_registration(category="M11")
    await add_credits("parent-1", 1)
    service = BookingService(db)

    with pytest.raises(ValidationError):
        await service.book_session("parent-1", registration.id, "group", SESSION_DAY, "7:00 PM", today=TODAY)
    with pytest.raises(ValidationError):
        await service.book_session("parent-1", registration.id, "group", date(2025, 3, 4), "4:30 PM", today=TODAY)
    with pytest.raises(ValidationError):
        await service.book_session("parent-1", registration.id, "private", SESSION_DAY, "15-16", today=TODAY)
    with pytest.raises(NotFoundOrUnauthorized):
        await service.book_session("parent-2", registration.id, "group", SESSION_DAY, "4:30 PM", today=TODAY)

    assert await SqlCreditLedger(db).get_balance("parent-1") == 1


async def test_book_session_without_credits(db, make_registration):
    registration = await make_registration(category="M11")

    with pytest.raises(InsufficientCreditsError):
        await BookingService(db).book_session(
            "parent-1", registration.id, "group", SESSION_DAY, "4:30 PM", today=TODAY
        )
    assert await db.scalar(select(func.count(SessionBooking.id))) == 0


async def test_duplicate_and_full_sessions(db, make_registration, add_credits):
    registration = await make_registration(category="M11")
    await add_credits("parent-1", 5)
    service = BookingService(db)
    await service.book_session("parent-1", registration.id, "private", SESSION_DAY, "9-10", today=TODAY)

    with pytest.raises(ValidationError):
        await service.book_session("parent-1", registration.id, "private", SESSION_DAY, "9-10", today=TODAY)

    other = await make_registration(uid="parent-2", category="M11")
    await add_credits("parent-2", 1)
    with pytest.raises(AdmissionRejected):
        await service.book_session("parent-2", other.id, "private", SESSION_DAY, "9-10", today=TODAY)

    assert await SqlCreditLedger(db).get_balance("parent-1") == 4
    assert await SqlCreditLedger(db).get_balance("parent-2") == 1


async def test_cancel_outside_window_refunds(db, make_registration, add_credits):
    registration = await make_registration(category="M11")
    await add_credits("parent-1", 1)
    service = BookingService(db)
    booking = await service.book_session("parent-1", registration.id, "group", SESSION_DAY, "4:30 PM", today=TODAY)

    result = await service.cancel_booking(
        booking.id, "parent-1", reason="sick", now=datetime(2025, 3, 8, 12, 0, tzinfo=timezone.utc)
    )

    assert result["credits_refunded"] == 1
    await db.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.credits_refunded is True
    assert await SqlCreditLedger(db).get_balance("parent-1") == 1

    with pytest.raises(ValidationError):
        await service.cancel_booking(booking.id, "parent-1")


async def test_cancel_inside_window_keeps_credit(db, make_registration, add_credits):
    registration = await make_registration(category="M11")
    await add_credits("parent-1", 1)
    service = BookingService(db)
    booking = await service.book_session("parent-1", registration.id, "group", SESSION_DAY, "4:30 PM", today=TODAY)

    # 4:30 PM in Toronto on 2025-03-10 is 20:30 UTC
    result = await service.cancel_booking(
        booking.id, "parent-1", now=datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
    )

    assert result["credits_refunded"] == 0
    await db.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.credits_refunded is False
    assert await SqlCreditLedger(db).get_balance("parent-1") == 0


async def test_generate_sunday_slots_is_idempotent(db):
    service = BookingService(db)

    assert await service.generate_sunday_slots(weeks_ahead=2, today=TODAY) == 4
    assert await service.generate_sunday_slots(weeks_ahead=2, today=TODAY) == 0

    slot = await _slot(db, NEXT_SUNDAY, time(7, 30))
    assert slot.max_capacity == 12
    assert slot.eligible_categories == ["M7", "M9", "M11"]
    older = await _slot(db, date(2025, 3, 16), time(8, 30))
    assert older.max_capacity == 10


async def test_generation_on_a_sunday_includes_today(db):
    await BookingService(db).generate_sunday_slots(weeks_ahead=1, today=NEXT_SUNDAY)
    assert await _slot(db, NEXT_SUNDAY, time(8, 30)) is not None


async def test_sunday_booking_and_cancellation(db, make_registration):
    service = BookingService(db)
    await service.generate_sunday_slots(weeks_ahead=1, today=TODAY)
    slot = await _slot(db, NEXT_SUNDAY, time(7, 30))
    registration = await make_registration(category="M9", days=["monday"])

    booking = await service.book_sunday_slot(slot.id, registration.id, "parent-1", today=TODAY)

    assert booking.session_type == ProgramType.SUNDAY.value
    assert booking.time_slot == "07:30-08:30"
    assert booking.credits_used == 0
    await db.refresh(slot)
    assert slot.current_bookings == 1

    with pytest.raises(ValidationError):
        await service.book_sunday_slot(slot.id, registration.id, "parent-1", today=TODAY)

    listing = await service.get_next_sunday_slots(registration.id, "parent-1", today=TODAY)
    assert listing["eligible"] is True
    assert listing["slots"][0]["is_booked"] is True

    roster = await service.get_sunday_roster(NEXT_SUNDAY)
    assert [row["player_name"] for row in roster] == [registration.player_name]

    await service.cancel_sunday_booking(booking.id, "parent-1", today=TODAY)
    await db.refresh(slot)
    assert slot.current_bookings == 0
    assert await service.get_sunday_roster(NEXT_SUNDAY) == []


async def test_sunday_eligibility_rules(db, make_registration):
    service = BookingService(db)
    await service.generate_sunday_slots(weeks_ahead=1, today=TODAY)
    young_slot = await _slot(db, NEXT_SUNDAY, time(7, 30))

    older = await make_registration(category="M13")
    senior = await make_registration(category="M18")
    private = await make_registration(program=ProgramType.PRIVATE, category="M9", time_slot="9-10")
    unpaid = await make_registration(category="M9", payment_status="pending")

    for registration in (older, senior, private, unpaid):
        with pytest.raises(ValidationError):
            await service.book_sunday_slot(young_slot.id, registration.id, "parent-1", today=TODAY)

    with pytest.raises(ValidationError):
        young = await make_registration(category="M7")
        await service.book_sunday_slot(young_slot.id, young.id, "parent-1", today=date(2025, 3, 10))

    listing = await service.get_next_sunday_slots(senior.id, "parent-1", today=TODAY)
    assert listing == {"success": True, "eligible": False, "slots": []}


async def test_full_sunday_slot_rejects(db, make_registration):
    service = BookingService(db)
    await service.generate_sunday_slots(weeks_ahead=1, today=TODAY)
    slot = await _slot(db, NEXT_SUNDAY, time(7, 30))
    slot.max_capacity = 1
    await db.commit()

    first = await make_registration(category="M9")
    second = await make_registration(uid="parent-2", category="M11")
    await service.book_sunday_slot(slot.id, first.id, "parent-1", today=TODAY)

    with pytest.raises(AdmissionRejected):
        await service.book_sunday_slot(slot.id, second.id, "parent-2", today=TODAY)

    await db.refresh(slot)
    assert slot.current_bookings == 1


async def test_sunday_attendance_marking(db, make_registration):
    service = BookingService(db)
    await service.generate_sunday_slots(weeks_ahead=1, today=TODAY)
    slot = await _slot(db, NEXT_SUNDAY, time(7, 30))
    registration = await make_registration(category="M11")
    booking = await service.book_sunday_slot(slot.id, registration.id, "parent-1", today=TODAY)

    marked = await service.mark_sunday_attendance(booking.id, True, "coach@sniperzone.ca")

    assert marked.status == BookingStatus.ATTENDED
    assert marked.attendance_marked_by == "coach@sniperzone.ca"
    assert marked.attendance_marked_at is not None
    await db.refresh(slot)
    assert slot.current_bookings == 1

    roster = await service.get_sunday_roster(NEXT_SUNDAY)
    assert roster[0]["status"] == "attended"

    marked = await service.mark_sunday_attendance(booking.id, False, "coach@sniperzone.ca")
    assert marked.status == BookingStatus.NO_SHOW


async def test_attendance_refuses_cancelled_and_weekday_bookings(db, make_registration, add_credits):
    service = BookingService(db)
    await service.generate_sunday_slots(weeks_ahead=1, today=TODAY)
    slot = await _slot(db, NEXT_SUNDAY, time(7, 30))
    registration = await make_registration(category="M11")
    sunday_booking = await service.book_sunday_slot(slot.id, registration.id, "parent-1", today=TODAY)
    await service.cancel_sunday_booking(sunday_booking.id, "parent-1", today=TODAY)

    with pytest.raises(ValidationError):
        await service.mark_sunday_attendance(sunday_booking.id, True, "coach")

    await add_credits("parent-1", 1)
    weekday = await service.book_session("parent-1", registration.id, "group", SESSION_DAY, "4:30 PM", today=TODAY)
    with pytest.raises(NotFoundOrUnauthorized):
        await service.mark_sunday_attendance(weekday.id, True, "coach")
    with pytest.raises(NotFoundOrUnauthorized):
        await service.mark_sunday_attendance(9999, True, "coach")
