import pytest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from app.services.next_run import compute_next_run, day_of_week
from app.types.errors import ScheduleComputationError
from app.types.schedule import Daily, Monthly, MultipleDays, Once, Relative, Weekly

UTC = timezone.utc
WARSAW = ZoneInfo("Europe/Warsaw")


def warsaw(*args) -> datetime:
    return datetime(*args, tzinfo=WARSAW)


# ──────────────────────────────
# Daily
# ──────────────────────────────

def test_daily_before_time_is_today():
    now = datetime(2026, 3, 10, 8, 59, tzinfo=UTC)
    assert compute_next_run(Daily(time="09:00"), "UTC", now) == datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def test_daily_at_time_is_tomorrow():
    now = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
    assert compute_next_run(Daily(time="09:00"), "UTC", now) == datetime(2026, 3, 11, 9, 0, tzinfo=UTC)


def test_daily_after_time_is_tomorrow():
    now = datetime(2026, 3, 10, 9, 0, 1, tzinfo=UTC)
    assert compute_next_run(Daily(time="09:00"), "UTC", now) == datetime(2026, 3, 11, 9, 0, tzinfo=UTC)


def test_daily_uses_local_calendar_day():
    # 23:30 UTC on the 10th is already the 11th in Warsaw
    now = datetime(2026, 3, 10, 23, 30, tzinfo=UTC)
    result = compute_next_run(Daily(time="08:00"), "Europe/Warsaw", now)
    assert result == warsaw(2026, 3, 11, 8, 0)


def test_daily_keeps_wall_clock_across_dst():
    # Warsaw switches to CEST on 2026-03-29
    now = warsaw(2026, 3, 28, 10, 0)
    result = compute_next_run(Daily(time="09:00"), "Europe/Warsaw", now)
    assert result == datetime(2026, 3, 29, 7, 0, tzinfo=UTC)
    assert result.astimezone(WARSAW).hour == 9


def test_result_is_utc():
    result = compute_next_run(Daily(time="09:00"), "Asia/Tokyo", datetime(2026, 3, 10, tzinfo=UTC))
    assert result.tzinfo == UTC


def test_naive_now_is_treated_as_utc():
    result = compute_next_run(Daily(time="09:00"), "UTC", datetime(2026, 3, 10, 8, 0))
    assert result == datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


# ──────────────────────────────
# Weekly
# ──────────────────────────────

def test_day_of_week_sunday_is_zero():
    assert day_of_week(date(2026, 3, 29)) == 0
    assert day_of_week(date(2026, 3, 16)) == 1


def test_weekly_later_this_week():
    # Tuesday 10:00 -> Thursday 09:00
    now = datetime(2026, 3, 10, 10, 0, tzinfo=UTC)
    result = compute_next_run(Weekly(time="09:00", day_of_week=4), "UTC", now)
    assert result == datetime(2026, 3, 12, 9, 0, tzinfo=UTC)


def test_weekly_same_day_before_time():
    now = datetime(2026, 3, 10, 8, 0, tzinfo=UTC)
    result = compute_next_run(Weekly(time="09:00", day_of_week=2), "UTC", now)
    assert result == datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def test_weekly_same_day_at_time_waits_a_week():
    now = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
    result = compute_next_run(Weekly(time="09:00", day_of_week=2), "UTC", now)
    assert result == datetime(2026, 3, 17, 9, 0, tzinfo=UTC)


def test_weekly_warsaw_scenario():
    # Tuesday 10:00 Warsaw, Monday reminder -> following Monday 09:00 Warsaw
    schedule = Weekly(time="09:00", day_of_week=1)
    first = compute_next_run(schedule, "Europe/Warsaw", warsaw(2026, 3, 10, 10, 0))
    assert first == warsaw(2026, 3, 16, 9, 0)

    second = compute_next_run(schedule, "Europe/Warsaw", first)
    assert second == warsaw(2026, 3, 23, 9, 0)

    # crosses into CEST: same wall-clock time, one hour earlier in UTC
    third = compute_next_run(schedule, "Europe/Warsaw", second)
    assert third == warsaw(2026, 3, 30, 9, 0)
    assert third == datetime(2026, 3, 30, 7, 0, tzinfo=UTC)


@pytest.mark.parametrize("target", range(7))
def test_weekly_properties_over_a_week(target):
    schedule = Weekly(time="09:00", day_of_week=target)
    start = datetime(2026, 3, 8, 0, 0, tzinfo=UTC)
    for step in range(0, 8 * 24 * 4):
        now = start + timedelta(minutes=15 * step)
        result = compute_next_run(schedule, "Europe/Warsaw", now)
        assert result > now
        assert day_of_week(result.astimezone(WARSAW).date()) == target
        assert result - now <= timedelta(days=8)


# ──────────────────────────────
# Monthly
# ──────────────────────────────

def test_monthly_clamps_to_last_day_of_short_month():
    now = datetime(2026, 4, 10, 12, 0, tzinfo=UTC)
    result = compute_next_run(Monthly(time="09:00", day_of_month=31), "UTC", now)
    assert result == datetime(2026, 4, 30, 9, 0, tzinfo=UTC)


def test_monthly_march_31_after_time_goes_to_april_30():
    now = warsaw(2026, 3, 31, 15, 0)
    result = compute_next_run(Monthly(time="14:00", day_of_month=31), "Europe/Warsaw", now)
    assert result == warsaw(2026, 4, 30, 14, 0)


def test_monthly_later_this_month():
    now = datetime(2026, 3, 3, 12, 0, tzinfo=UTC)
    result = compute_next_run(Monthly(time="09:00", day_of_month=15), "UTC", now)
    assert result == datetime(2026, 3, 15, 9, 0, tzinfo=UTC)


def test_monthly_day_passed_moves_to_next_month():
    now = datetime(2026, 3, 20, 12, 0, tzinfo=UTC)
    result = compute_next_run(Monthly(time="09:00", day_of_month=15), "UTC", now)
    assert result == datetime(2026, 4, 15, 9, 0, tzinfo=UTC)


def test_monthly_same_day_at_time_moves_to_next_month():
    now = datetime(2026, 3, 15, 9, 0, tzinfo=UTC)
    result = compute_next_run(Monthly(time="09:00", day_of_month=15), "UTC", now)
    assert result == datetime(2026, 4, 15, 9, 0, tzinfo=UTC)


def test_monthly_rolls_year():
    now = datetime(2026, 12, 20, 12, 0, tzinfo=UTC)
    result = compute_next_run(Monthly(time="08:00", day_of_month=15), "UTC", now)
    assert result == datetime(2027, 1, 15, 8, 0, tzinfo=UTC)


def test_monthly_clamps_february():
    now = datetime(2026, 1, 31, 10, 0, tzinfo=UTC)
    result = compute_next_run(Monthly(time="09:00", day_of_month=30), "UTC", now)
    assert result == datetime(2026, 2, 28, 9, 0, tzinfo=UTC)


def test_monthly_after_clamped_day_goes_to_full_day_next_month():
    now = datetime(2026, 4, 30, 10, 0, tzinfo=UTC)
    result = compute_next_run(Monthly(time="09:00", day_of_month=31), "UTC", now)
    assert result == datetime(2026, 5, 31, 9, 0, tzinfo=UTC)


# ──────────────────────────────
# Once / Relative
# ──────────────────────────────

def test_once_in_future():
    schedule = Once(date=date(2026, 3, 16), time="09:00")
    result = compute_next_run(schedule, "Europe/Warsaw", warsaw(2026, 3, 10, 10, 0))
    assert result == warsaw(2026, 3, 16, 9, 0)


def test_once_in_past_is_none_every_time():
    schedule = Once(date=date(2026, 3, 9), time="09:00")
    now = datetime(2026, 3, 10, tzinfo=UTC)
    assert compute_next_run(schedule, "UTC", now) is None
    assert compute_next_run(schedule, "UTC", now + timedelta(days=30)) is None


def test_once_exactly_now_is_none():
    schedule = Once(date=date(2026, 3, 10), time="09:00")
    assert compute_next_run(schedule, "UTC", datetime(2026, 3, 10, 9, 0, tzinfo=UTC)) is None


def test_unexpanded_schedules_raise():
    now = datetime(2026, 3, 10, tzinfo=UTC)
    with pytest.raises(ScheduleComputationError):
        compute_next_run(Relative(minutes_from_creation=5), "UTC", now)
    with pytest.raises(ScheduleComputationError):
        compute_next_run(MultipleDays(time="09:00", days_of_week=frozenset({1})), "UTC", now)


def test_unknown_zone_raises_computation_error():
    with pytest.raises(ScheduleComputationError):
        compute_next_run(Daily(time="09:00"), "Nowhere/Special", datetime(2026, 3, 10, tzinfo=UTC))


def test_calendar_overflow_raises_computation_error():
    now = datetime(9999, 12, 31, 23, 0, tzinfo=UTC)
    with pytest.raises(ScheduleComputationError):
        compute_next_run(Daily(time="09:00"), "UTC", now)
