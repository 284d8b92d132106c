from datetime import date

import pytest
from sqlalchemy import func, select

from sniperzone.core.exceptions import AdmissionRejected, NotFoundOrUnauthorized, ValidationError
from sniperzone.core.settings import settings
from sniperzone.models import (
    ChangeType,
    Notification,
    ProgramType,
    RegistrationStatus,
    ScheduleChange,
    ScheduleException,
)
from sniperzone.services.schedule_service import ScheduleService

WEDNESDAY = date(2025, 3, 5)
MONDAY = date(2025, 3, 3)


async def test_one_time_group_swap_maps_next_monday(db, make_registration):
    registration = await make_registration(days=["monday", "wednesday"], frequency="2x")

    result = await ScheduleService(db).propose_change(
        registration.id, "parent-1", "one_time", ["thursday", "wednesday"], today=WEDNESDAY
    )

    assert len(result.exceptions) == 1
    exception = result.exceptions[0]
    assert exception.exception_date == date(2025, 3, 10)
    assert exception.original_day == "monday"
    assert exception.replacement_day == "thursday"
    assert exception.replacement_time is None
    assert result.change.change_type == ChangeType.ONE_TIME
    assert result.change.specific_date == date(2025, 3, 10)

    await db.refresh(registration)
    assert registration.selected_days == ["monday", "wednesday"]


async def test_exception_only_replaces_its_own_date(db, make_registration):
    registration = await make_registration(days=["monday", "wednesday"], frequency="2x")
    service = ScheduleService(db)
    await service.propose_change(
        registration.id, "parent-1", "one_time", ["thursday", "wednesday"], today=WEDNESDAY
    )

    occurrences = await service.resolve_occurrences(registration, start=WEDNESDAY, weeks=3)
    by_date = {o.date: o for o in occurrences}

    swapped = by_date[date(2025, 3, 13)]
    assert swapped.is_exception
    assert swapped.original_date == date(2025, 3, 10)
    assert date(2025, 3, 10) not in by_date
    assert not by_date[date(2025, 3, 17)].is_exception
    assert by_date[date(2025, 3, 17)].day == "monday"
    assert not by_date[date(2025, 3, 12)].is_exception


async def test_swap_on_the_original_day_itself(db, make_registration, monkeypatch):
    registration = await make_registration(days=["monday"])
    service = ScheduleService(db)

    result = await service.propose_change(registration.id, "parent-1", "one_time", ["friday"], today=MONDAY)
    assert result.exceptions[0].exception_date == MONDAY

    monkeypatch.setattr(settings, "swap_includes_today", False)
    other = await make_registration(days=["monday"])
    result = await service.propose_change(other.id, "parent-1", "one_time", ["friday"], today=MONDAY)
    assert result.exceptions[0].exception_date == date(2025, 3, 10)


async def test_specific_date_swap(db, make_registration):
    registration = await make_registration(days=["monday", "wednesday"], frequency="2x")

    result = await ScheduleService(db).propose_change(
        registration.id,
        "parent-1",
        "one_time",
        ["thursday", "wednesday"],
        specific_date=date(2025, 3, 17),
        today=WEDNESDAY,
    )
    assert [e.exception_date for e in result.exceptions] == [date(2025, 3, 17)]

    with pytest.raises(ValidationError):
        await ScheduleService(db).propose_change(
            registration.id,
            "parent-1",
            "one_time",
            ["thursday", "wednesday"],
            specific_date=date(2025, 3, 19),
            today=WEDNESDAY,
        )


async def test_repeated_swap_updates_the_same_exception(db, make_registration):
    registration = await make_registration(days=["monday"])
    service = ScheduleService(db)
    await service.propose_change(registration.id, "parent-1", "one_time", ["friday"], today=WEDNESDAY)
    await service.propose_change(registration.id, "parent-1", "one_time", ["saturday"], today=WEDNESDAY)

    result = await db.execute(select(ScheduleException).where(ScheduleException.registration_id == registration.id))
    exceptions = result.scalars().all()
    assert len(exceptions) == 1
    assert exceptions[0].replacement_day == "saturday"


async def test_permanent_change_is_idempotent(db, make_registration):
    registration = await make_registration(program=ProgramType.PRIVATE, days=["tuesday"], time_slot="10-11")
    service = ScheduleService(db)

    for _ in range(2):
        result = await service.propose_change(
            registration.id, "parent-1", "permanent", ["Friday"], new_time="13-14", today=WEDNESDAY
        )
        assert result.change.effective_date == WEDNESDAY

    await db.refresh(registration)
    assert registration.selected_days == ["friday"]
    assert registration.time_slot == "13-14"
    assert registration.monthly_dates == ["2025-03-07", "2025-03-14", "2025-03-21", "2025-03-28"]

    count = await db.scalar(select(func.count(ScheduleChange.id)))
    assert count == 2


async def test_full_saturday_rejects_and_persists_nothing(db, make_registration):
    for i in range(6):
        await make_registration(uid=f"other-{i}", days=["saturday"])
    registration = await make_registration(days=["tuesday"])

    with pytest.raises(AdmissionRejected) as exc_info:
        await ScheduleService(db).propose_change(
            registration.id, "parent-1", "permanent", ["saturday"], today=WEDNESDAY
        )

    assert exc_info.value.full_slots[0]["day"] == "saturday"
    assert await db.scalar(select(func.count(ScheduleChange.id))) == 0
    assert await db.scalar(select(func.count(Notification.id))) == 0
    await db.refresh(registration)
    assert registration.selected_days == ["tuesday"]


async def test_validation_failures(db, make_registration):
    group = await make_registration(days=["monday", "wednesday"], frequency="2x")
    cancelled = await make_registration(days=["monday"], status=RegistrationStatus.CANCELLED)
    private = await make_registration(program=ProgramType.PRIVATE, days=["tuesday"], time_slot="10-11")
    service = ScheduleService(db)

    with pytest.raises(NotFoundOrUnauthorized):
        await service.propose_change(group.id, "someone-else", "permanent", ["monday", "friday"], today=WEDNESDAY)
    with pytest.raises(ValidationError):
        await service.propose_change(group.id, "parent-1", "permanent", ["friday"], today=WEDNESDAY)
    with pytest.raises(ValidationError):
        await service.propose_change(
            group.id, "parent-1", "permanent", ["monday", "friday"], new_time="8:15 PM", today=WEDNESDAY
        )
    with pytest.raises(ValidationError):
        await service.propose_change(cancelled.id, "parent-1", "permanent", ["friday"], today=WEDNESDAY)
    with pytest.raises(ValidationError):
        await service.propose_change(private.id, "parent-1", "permanent", ["friday"], new_time="16-17", today=WEDNESDAY)
    with pytest.raises(ValidationError):
        await service.propose_change(private.id, "parent-1", "sometimes", ["friday"], new_time="9-10", today=WEDNESDAY)
    with pytest.raises(ValidationError):
        await service.propose_change(
            private.id, "parent-1", "one_time", ["friday"], new_time="9-10",
            specific_date=date(2025, 3, 4), today=WEDNESDAY,
        )


async def test_reschedule_notifies_parent_and_admin(db, make_registration):
    registration = await make_registration(days=["monday"])
    await ScheduleService(db).propose_change(registration.id, "parent-1", "permanent", ["thursday"], today=WEDNESDAY)

    result = await db.execute(select(Notification).order_by(Notification.id))
    notifications = result.scalars().all()
    assert [(n.user_id, n.type) for n in notifications] == [
        ("parent-1", "schedule_changed"),
        ("admin", "schedule_changed"),
    ]


async def test_check_reschedule_availability_for_group(db, make_registration):
    for i in range(6):
        await make_registration(uid=f"other-{i}", days=["saturday"])
    registration = await make_registration(days=["tuesday"])

    preview = await ScheduleService(db).check_reschedule_availability(
        registration.id, "parent-1", ["saturday"]
    )
    assert preview["availability"][0]["available"] is False
    assert await db.scalar(select(func.count(ScheduleChange.id))) == 0


async def test_sunday_session_swapped_to_monday_lands_after_it(db, make_registration):
    registration = await make_registration(program=ProgramType.PRIVATE, days=["sunday"], time_slot="10-11")
    service = ScheduleService(db)

    result = await service.propose_change(
        registration.id, "parent-1", "one_time", ["monday"], new_time="10-11", today=WEDNESDAY
    )
    assert result.exceptions[0].exception_date == date(2025, 3, 9)

    occurrences = await service.resolve_occurrences(registration, start=WEDNESDAY, weeks=2)
    assert all(o.date >= WEDNESDAY for o in occurrences)
    swapped = [o for o in occurrences if o.is_exception]
    assert [(o.date, o.day) for o in swapped] == [(date(2025, 3, 10), "monday")]


async def test_swap_to_a_day_already_passed_is_rejected(db, make_registration):
    thursday = date(2025, 3, 6)
    registration = await make_registration(days=["friday"])

    with pytest.raises(ValidationError):
        await ScheduleService(db).propose_change(
            registration.id, "parent-1", "one_time", ["tuesday"], today=thursday
        )
    assert await db.scalar(select(func.count(ScheduleException.id))) == 0


async def test_one_time_swaps_count_against_the_target_date(db, make_registration):
    for i in range(5):
        await make_registration(uid=f"thursday-{i}", days=["thursday"])
    movers = [await make_registration(uid=f"monday-{i}", days=["monday"]) for i in range(2)]
    service = ScheduleService(db)

    await service.propose_change(movers[0].id, movers[0].firebase_uid, "one_time", ["thursday"], today=WEDNESDAY)

    with pytest.raises(AdmissionRejected) as exc_info:
        await service.propose_change(
            movers[1].id, movers[1].firebase_uid, "one_time", ["thursday"], today=WEDNESDAY
        )
    assert exc_info.value.full_slots[0]["date"] == "2025-03-13"

    # The following Thursday is untouched
    result = await service.propose_change(
        movers[1].id, movers[1].firebase_uid, "one_time", ["thursday"],
        specific_date=date(2025, 3, 17), today=WEDNESDAY,
    )
    assert result.exceptions[0].exception_date == date(2025, 3, 17)


async def test_player_swapped_away_frees_the_date(db, make_registration):
    regulars = [await make_registration(uid=f"thursday-{i}", days=["thursday"]) for i in range(6)]
    mover = await make_registration(uid="monday-0", days=["monday"])
    service = ScheduleService(db)

    with pytest.raises(AdmissionRejected):
        await service.propose_change(mover.id, "monday-0", "one_time", ["thursday"], today=WEDNESDAY)

    await service.propose_change(
        regulars[0].id, "thursday-0", "one_time", ["friday"], specific_date=date(2025, 3, 13), today=WEDNESDAY
    )
    result = await service.propose_change(mover.id, "monday-0", "one_time", ["thursday"], today=WEDNESDAY)
    assert result.exceptions[0].exception_date == date(2025, 3, 10)
