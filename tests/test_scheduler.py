"""
Tests for the periodic summary scheduler.

Time is driven through injected clocks and sleeps; nothing waits on the
wall clock.
"""

import asyncio
import logging

import pytest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from services import expenses_service
from services.expense_store import ExpenseStore
from services.scheduler import (
    SummaryJob,
    SummaryScheduler,
    monthly_window,
    next_daily,
    next_monthly,
    next_weekly,
    weekly_window,
)

UTC = timezone.utc


def at(year, month, day, hour=0, minute=0, tz=UTC):
    return datetime(year, month, day, hour, minute, tzinfo=tz)


class StopLoop(Exception):
    pass


class FakeTime:
    """Clock and sleep pair; sleeping moves the clock forward."""

    def __init__(self, now, max_sleeps):
        self.now = now
        self.sleeps = []
        self.max_sleeps = max_sleeps

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        if len(self.sleeps) >= self.max_sleeps:
            raise StopLoop
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def store():
    store = ExpenseStore()
    for category, amount, day in [
        ("Food", 10, "2024-12-03"),
        ("Food", 50, "2024-12-04"),
        ("Travel", 20, "2024-12-01"),
        ("Shopping", 7, "2024-11-30"),
        ("Utilities", 40, "2024-12-31"),
        ("Entertainment", 15, "2025-01-01"),
    ]:
        expenses_service.add_expense(store, {"category": category, "amount": amount, "date": day})
    return store


class TestFireTimes:
    """Tests for the next-run calculations."""

    def test_daily(self):
        assert next_daily(at(2024, 12, 3, 15, 30)) == at(2024, 12, 4)
        assert next_daily(at(2024, 12, 31)) == at(2025, 1, 1)

    def test_weekly_fires_on_sunday(self):
        # 2024-12-03 is a Tuesday
        assert next_weekly(at(2024, 12, 3, 12)) == at(2024, 12, 8)
        assert next_weekly(at(2024, 12, 8)) == at(2024, 12, 15)
        assert next_weekly(at(2024, 12, 7, 23, 59)) == at(2024, 12, 8)

    def test_monthly_fires_on_the_first(self):
        assert next_monthly(at(2024, 12, 3)) == at(2025, 1, 1)
        assert next_monthly(at(2024, 12, 1)) == at(2025, 1, 1)
        assert next_monthly(at(2024, 11, 30, 23, 59)) == at(2024, 12, 1)
        assert next_monthly(at(2024, 1, 31, 12)) == at(2024, 2, 1)


class TestWindows:
    def test_weekly_window(self):
        assert weekly_window(date(2024, 12, 8)) == (date(2024, 12, 1), date(2024, 12, 8))

    def test_monthly_window_is_previous_month(self):
        assert monthly_window(date(2025, 1, 1)) == (date(2024, 12, 1), date(2024, 12, 31))
        assert monthly_window(date(2024, 3, 1)) == (date(2024, 2, 1), date(2024, 2, 29))


class TestRunPending:
    """Tests for SummaryScheduler.run_pending."""

    def test_nothing_runs_before_first_fire(self, store):
        scheduler = SummaryScheduler(store)
        scheduler.start(at(2024, 12, 3, 12))
        assert scheduler.run_pending(at(2024, 12, 3, 23, 59)) == []

    def test_daily_summary_covers_today(self, store, caplog):
        caplog.set_level(logging.INFO)
        scheduler = SummaryScheduler(store)
        scheduler.start(at(2024, 12, 3, 12))

        results = scheduler.run_pending(at(2024, 12, 4))

        assert [r.job for r in results] == ["daily"]
        daily = results[0]
        assert (daily.start_date, daily.end_date) == (date(2024, 12, 4), date(2024, 12, 4))
        assert daily.summary.total == 50
        assert "Daily expense summary (2024-12-04 to 2024-12-04): total=50, count=1" in caplog.text
        assert scheduler.jobs[0].next_run == at(2024, 12, 5)

    def test_sunday_runs_daily_and_weekly(self, store):
        scheduler = SummaryScheduler(store)
        scheduler.start(at(2024, 12, 7, 12))

        results = {r.job: r for r in scheduler.run_pending(at(2024, 12, 8))}

        assert set(results) == {"daily", "weekly"}
        weekly = results["weekly"]
        assert (weekly.start_date, weekly.end_date) == (date(2024, 12, 1), date(2024, 12, 8))
        assert [e.id for e in weekly.summary.expenses] == [1, 2, 3]
        assert weekly.summary.total == 80

    def test_first_of_month_summarizes_previous_month(self, store):
        scheduler = SummaryScheduler(store)
        scheduler.start(at(2024, 12, 31, 8))

        results = {r.job: r for r in scheduler.run_pending(at(2025, 1, 1))}

        monthly = results["monthly"]
        assert (monthly.start_date, monthly.end_date) == (date(2024, 12, 1), date(2024, 12, 31))
        assert monthly.summary.total == 120
        assert results["daily"].summary.total == 15

    def test_missed_fires_run_once_for_latest(self, store):
        scheduler = SummaryScheduler(store)
        scheduler.start(at(2024, 12, 1, 12))

        results = [r for r in scheduler.run_pending(at(2024, 12, 4, 6)) if r.job == "daily"]

        assert len(results) == 1
        assert results[0].start_date == date(2024, 12, 4)
        assert scheduler.jobs[0].next_run == at(2024, 12, 5)

    def test_today_follows_scheduler_timezone(self, store):
        tokyo = timezone(timedelta(hours=9))
        scheduler = SummaryScheduler(store, clock=lambda: at(2024, 12, 3, 23, 30), tz=tokyo)
        scheduler.start()

        # 23:30 UTC is already 08:30 on the 4th in UTC+9
        assert scheduler.jobs[0].next_run == at(2024, 12, 5, tz=tokyo)

        results = scheduler.run_pending(at(2024, 12, 5, tz=tokyo))
        assert results[0].start_date == date(2024, 12, 5)

    def test_naive_clock_is_read_in_scheduler_timezone(self, store):
        scheduler = SummaryScheduler(store, clock=lambda: datetime(2024, 12, 3, 12))
        assert scheduler.now() == at(2024, 12, 3, 12)


class TestDaylightSaving:
    """Fire times in a zone that changes its UTC offset."""

    NEW_YORK = ZoneInfo("America/New_York")

    def test_wait_spans_short_spring_forward_day(self, store):
        # 2024-03-10 has 23 hours in New York
        now = datetime(2024, 3, 10, 0, 0, 1, tzinfo=self.NEW_YORK)
        scheduler = SummaryScheduler(store, tz=self.NEW_YORK)
        scheduler.start(now)

        assert scheduler.jobs[0].next_run == datetime(2024, 3, 11, tzinfo=self.NEW_YORK)
        assert scheduler.seconds_until_next_run(now) == 23 * 3600 - 1

    def test_wait_spans_long_fall_back_day(self, store):
        # 2024-11-03 has 25 hours in New York
        now = datetime(2024, 11, 3, 0, 0, 1, tzinfo=self.NEW_YORK)
        scheduler = SummaryScheduler(store, tz=self.NEW_YORK)
        scheduler.start(now)

        assert scheduler.seconds_until_next_run(now) == 25 * 3600 - 1

    def test_loop_wakes_at_local_midnight(self, store, caplog):
        caplog.set_level(logging.INFO)
        # 05:00:01 UTC is 00:00:01 EST on 2024-03-10
        fake = FakeTime(datetime(2024, 3, 10, 5, 0, 1, tzinfo=UTC), max_sleeps=2)
        scheduler = SummaryScheduler(store, clock=fake.clock, tz=self.NEW_YORK, sleep=fake.sleep)

        with pytest.raises(StopLoop):
            asyncio.run(scheduler.run_forever())

        assert fake.sleeps[0] == 23 * 3600 - 1
        assert scheduler.now() == datetime(2024, 3, 11, tzinfo=self.NEW_YORK)
        assert "Daily expense summary (2024-03-11 to 2024-03-11)" in caplog.text


class TestRunForever:
    """Tests for the background loop."""

    def test_sleeps_until_next_fire_and_runs_it(self, store, caplog):
        caplog.set_level(logging.INFO)
        fake = FakeTime(at(2024, 12, 3, 12), max_sleeps=2)
        scheduler = SummaryScheduler(store, clock=fake.clock, sleep=fake.sleep)

        with pytest.raises(StopLoop):
            asyncio.run(scheduler.run_forever())

        assert fake.sleeps == [12 * 3600, 24 * 3600]
        assert "Daily expense summary (2024-12-04 to 2024-12-04)" in caplog.text

    def test_failing_job_is_logged_and_loop_continues(self, store, caplog):
        def broken_window(today):
            raise RuntimeError("window unavailable")

        fake = FakeTime(at(2024, 12, 3, 12), max_sleeps=2)
        scheduler = SummaryScheduler(
            store,
            clock=fake.clock,
            sleep=fake.sleep,
            jobs=[SummaryJob("daily", next_daily, broken_window)],
        )

        with pytest.raises(StopLoop):
            asyncio.run(scheduler.run_forever())

        assert fake.sleeps == [12 * 3600, 24 * 3600]
        assert "Scheduled expense summary failed: window unavailable" in caplog.text
        assert scheduler.jobs[0].next_run == at(2024, 12, 5)

    def test_stops_on_cancel(self, store):
        async def run():
            scheduler = SummaryScheduler(store, clock=lambda: at(2024, 12, 3, 12))
            task = asyncio.create_task(scheduler.run_forever())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())
