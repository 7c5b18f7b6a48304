import pytest
from datetime import date, datetime, timedelta, timezone

from app.services import reminders as reminder_service
from app.types.errors import InvalidSchedule, InvalidTimezone, NotFound
from app.types.schedule import Daily, Once, Weekly
from config import settings

OWNER = "+48500100200"
UTC = timezone.utc
# Tuesday 2026-03-10, 10:00 in Warsaw
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


async def create(store, schedule, text="call mom", **kwargs):
    kwargs.setdefault("now", NOW)
    return await reminder_service.create_reminder(store, OWNER, text, schedule, **kwargs)


@pytest.mark.asyncio
async def test_create_weekly_in_warsaw(store):
    [reminder] = await create(
        store, {"frequency": "weekly", "time": "9:00", "day_of_week": 1}, timezone="Europe/Warsaw"
    )
    assert reminder.id
    assert reminder.schedule == Weekly(time="09:00", day_of_week=1)
    assert reminder.timezone == "Europe/Warsaw"
    assert reminder.next_run_at == datetime(2026, 3, 16, 8, 0, tzinfo=UTC)
    assert [e.reminder_id for e in await store.due_entries(reminder.next_run_at)] == [reminder.id]


@pytest.mark.asyncio
async def test_create_monthly_31_on_march_31(store):
    now = datetime(2026, 3, 31, 13, 0, tzinfo=UTC)  # 15:00 Warsaw
    [reminder] = await create(
        store,
        {"frequency": "monthly", "time": "14:00", "day_of_month": 31},
        timezone="Europe/Warsaw",
        now=now,
    )
    assert reminder.next_run_at == datetime(2026, 4, 30, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_multiple_days_fans_out(store):
    created = await create(
        store,
        {"frequency": "multiple_days", "time": "07:30", "days_of_week": [5, 1, 3]},
        timezone="UTC",
    )
    assert [r.schedule.day_of_week for r in created] == [1, 3, 5]
    assert len({r.id for r in created}) == 3
    # Wed 11th, Fri 13th, Mon 16th
    assert sorted(r.next_run_at.day for r in created) == [11, 13, 16]
    assert len(await store.list_for_owner(OWNER)) == 3


@pytest.mark.asyncio
async def test_past_once_rejected_and_nothing_stored(store):
    with pytest.raises(InvalidSchedule):
        await create(store, {"frequency": "once", "time": "09:00", "date": "2026-03-09"}, timezone="UTC")
    assert await store.list_for_owner(OWNER) == []


@pytest.mark.asyncio
async def test_once_in_future_is_stored(store):
    [reminder] = await create(
        store, {"frequency": "once", "time": "18:30", "date": "2026-03-10"}, timezone="Europe/Warsaw"
    )
    assert reminder.schedule == Once(date=date(2026, 3, 10), time="18:30")
    assert reminder.next_run_at == datetime(2026, 3, 10, 17, 30, tzinfo=UTC)


@pytest.mark.asyncio
async def test_invalid_input_rejected(store):
    with pytest.raises(InvalidTimezone):
        await create(store, {"frequency": "daily", "time": "09:00"}, timezone="Europe/Atlantis")
    with pytest.raises(InvalidSchedule):
        await create(store, {"frequency": "daily", "time": "25:00"})
    with pytest.raises(InvalidSchedule):
        await create(store, {"frequency": "daily", "time": "09:00"}, text="   ")
    assert await store.list_for_owner(OWNER) == []


@pytest.mark.parametrize("blank", ["", "   "])
@pytest.mark.asyncio
async def test_blank_timezone_is_rejected_not_defaulted(store, blank):
    await store.set_owner_timezone(OWNER, "Europe/Warsaw")
    with pytest.raises(InvalidTimezone):
        await create(store, {"frequency": "daily", "time": "09:00"}, timezone=blank)
    assert await store.list_for_owner(OWNER) == []


@pytest.mark.asyncio
async def test_owner_timezone_used_when_not_given(store):
    await store.set_owner_timezone(OWNER, "Asia/Tokyo")
    [reminder] = await create(store, {"frequency": "daily", "time": "09:00"})
    assert reminder.timezone == "Asia/Tokyo"
    # 09:00 JST on the 11th
    assert reminder.next_run_at == datetime(2026, 3, 11, 0, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_default_timezone_fallback(store, monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_TIMEZONE", "UTC")
    assert await reminder_service.owner_timezone(store, OWNER) == "UTC"
    [reminder] = await create(store, {"frequency": "daily", "time": "09:30"})
    assert reminder.timezone == "UTC"
    assert reminder.next_run_at == datetime(2026, 3, 10, 9, 30, tzinfo=UTC)


@pytest.mark.parametrize("tz", ["UTC", "Europe/Warsaw", "America/Los_Angeles", "Pacific/Kiritimati"])
@pytest.mark.asyncio
async def test_relative_is_zone_agnostic(store, tz):
    [reminder] = await create(store, {"frequency": "relative", "minutes_from_creation": 45}, timezone=tz)
    assert reminder.next_run_at == NOW + timedelta(minutes=45)
    assert isinstance(reminder.schedule, Once)
    assert reminder.schedule.fixed_instant is True


@pytest.mark.asyncio
async def test_list_orders_by_next_run(store):
    later = await create(store, {"frequency": "daily", "time": "20:00"}, text="later", timezone="UTC")
    sooner = await create(store, {"frequency": "daily", "time": "10:00"}, text="sooner", timezone="UTC")
    parked = await create(store, {"frequency": "daily", "time": "09:30"}, text="parked", timezone="UTC")
    await store.quarantine(OWNER, parked[0].id, "broken")

    listed = await reminder_service.list_reminders(store, OWNER)
    assert [r.text for r in listed] == ["sooner", "later", "parked"]


@pytest.mark.asyncio
async def test_delete(store):
    [reminder] = await create(store, {"frequency": "daily", "time": "09:00"}, timezone="UTC")
    await reminder_service.delete_reminder(store, OWNER, reminder.id)
    assert await store.list_for_owner(OWNER) == []
    with pytest.raises(NotFound):
        await reminder_service.delete_reminder(store, OWNER, reminder.id)


@pytest.mark.asyncio
async def test_bulk_retimezone_keeps_wall_clock(store):
    [daily] = await create(store, {"frequency": "daily", "time": "09:00"}, timezone="UTC")
    [relative] = await create(store, {"frequency": "relative", "minutes_from_creation": 30}, timezone="UTC")

    updated = await reminder_service.bulk_retimezone(store, OWNER, "Europe/Warsaw", now=NOW)
    assert updated == 2

    moved = await store.get(OWNER, daily.id)
    assert moved.timezone == "Europe/Warsaw"
    assert moved.schedule == Daily(time="09:00")
    # already 10:00 in Warsaw, so tomorrow 09:00 CET
    assert moved.next_run_at == datetime(2026, 3, 11, 8, 0, tzinfo=UTC)

    kept = await store.get(OWNER, relative.id)
    assert kept.next_run_at == NOW + timedelta(minutes=30)
    assert kept.schedule == Once(date=date(2026, 3, 10), time="10:30", fixed_instant=True)


@pytest.mark.asyncio
async def test_bulk_retimezone_deletes_once_that_already_passed(store):
    # 09:30 on the 10th is still ahead in UTC but already past in Tokyo
    [once] = await create(store, {"frequency": "once", "time": "09:30", "date": "2026-03-10"}, timezone="UTC")
    updated = await reminder_service.bulk_retimezone(store, OWNER, "Asia/Tokyo", now=NOW)
    assert updated == 0
    with pytest.raises(NotFound):
        await store.get(OWNER, once.id)


@pytest.mark.asyncio
async def test_bulk_retimezone_rejects_unknown_zone(store):
    await create(store, {"frequency": "daily", "time": "09:00"}, timezone="UTC")
    with pytest.raises(InvalidTimezone):
        await reminder_service.bulk_retimezone(store, OWNER, "Nowhere", now=NOW)
    assert (await store.list_for_owner(OWNER))[0].timezone == "UTC"


@pytest.mark.asyncio
async def test_set_owner_timezone(store):
    [reminder] = await create(store, {"frequency": "daily", "time": "09:00"}, timezone="UTC")

    assert await reminder_service.set_owner_timezone(store, OWNER, "Europe/Warsaw", now=NOW) == 0
    assert await store.get_owner_timezone(OWNER) == "Europe/Warsaw"
    assert (await store.get(OWNER, reminder.id)).timezone == "UTC"

    updated = await reminder_service.set_owner_timezone(
        store, OWNER, "Europe/Warsaw", update_existing=True, now=NOW
    )
    assert updated == 1
    assert (await store.get(OWNER, reminder.id)).timezone == "Europe/Warsaw"
