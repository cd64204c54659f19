"""Periodic expense summaries written to the application log."""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Awaitable, Callable, List, Optional

from models.expense import ExpenseFilter, ExpenseSummary
from services import expenses_service
from services.expense_store import ExpenseStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


# --- Fire times (all strictly after `after`, at local midnight) ---

def next_daily(after: datetime) -> datetime:
    return _midnight(after.date() + timedelta(days=1), after.tzinfo)


def next_weekly(after: datetime) -> datetime:
    """Next Sunday midnight."""
    days_ahead = (6 - after.weekday()) % 7
    candidate = _midnight(after.date() + timedelta(days=days_ahead), after.tzinfo)
    if candidate <= after:
        candidate += timedelta(days=7)
    return candidate


def next_monthly(after: datetime) -> datetime:
    """Midnight on the first day of the next month."""
    first = after.date().replace(day=1)
    candidate = _midnight(first, after.tzinfo)
    if candidate <= after:
        candidate = _midnight((first + timedelta(days=32)).replace(day=1), after.tzinfo)
    return candidate


# --- Summary windows ---

def daily_window(today: date):
    return today, today


def weekly_window(today: date):
    return today - timedelta(days=7), today


def monthly_window(today: date):
    """First to last day of the month before `today`."""
    last = today.replace(day=1) - timedelta(days=1)
    return last.replace(day=1), last


@dataclass
class SummaryJob:
    name: str
    next_fire: Callable[[datetime], datetime]
    window: Callable[[date], tuple]
    next_run: Optional[datetime] = None


@dataclass
class ScheduledSummary:
    job: str
    start_date: date
    end_date: date
    summary: ExpenseSummary = field(repr=False)


def default_jobs() -> List[SummaryJob]:
    return [
        SummaryJob("daily", next_daily, daily_window),
        SummaryJob("weekly", next_weekly, weekly_window),
        SummaryJob("monthly", next_monthly, monthly_window),
    ]


class SummaryScheduler:
    """
    Runs the daily, weekly and monthly expense summaries.

    Time comes from the injected `clock` and waiting goes through the
    injected `sleep`, so tests can move time forward without waiting on the
    wall clock. Each job's "today" is the date of its fire time in `tz`.
    """

    def __init__(
        self,
        store: ExpenseStore,
        clock: Clock = utc_now,
        tz: tzinfo = timezone.utc,
        sleep: Sleep = asyncio.sleep,
        jobs: Optional[List[SummaryJob]] = None,
    ):
        self.store = store
        self._clock = clock
        self._tz = tz
        self._sleep = sleep
        self.jobs = jobs if jobs is not None else default_jobs()
        self._started = False

    def now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=self._tz)
        return now.astimezone(self._tz)

    def start(self, now: Optional[datetime] = None) -> None:
        """Schedules every job at its first fire time after `now`."""
        now = now or self.now()
        for job in self.jobs:
            job.next_run = job.next_fire(now)
            logger.info(f"Scheduled {job.name} expense summary for {job.next_run.isoformat()}")
        self._started = True

    def run_pending(self, now: Optional[datetime] = None) -> List[ScheduledSummary]:
        """
        Runs every job that is due at `now`.

        A job that missed several fire times runs once, for the most recent
        one, and is moved to its next fire time after `now`.
        """
        now = now or self.now()
        if not self._started:
            self.start(now)
        results = []
        for job in self.jobs:
            if job.next_run is None or job.next_run > now:
                continue
            fire = job.next_run
            following = job.next_fire(fire)
            while following <= now:
                fire, following = following, job.next_fire(following)
            job.next_run = following
            results.append(self.run_job(job, fire.date()))
        return results

    def run_job(self, job: SummaryJob, today: date) -> ScheduledSummary:
        start, end = job.window(today)
        summary = expenses_service.summarize(
            self.store,
            ExpenseFilter(start_date=start.isoformat(), end_date=end.isoformat()),
        )
        logger.info(
            f"{job.name.capitalize()} expense summary ({start} to {end}): "
            f"total={summary.total}, count={len(summary.expenses)}"
        )
        for expense in summary.expenses:
            logger.debug(f"  #{expense.id} {expense.date} {expense.category.value} {expense.amount}")
        return ScheduledSummary(job=job.name, start_date=start, end_date=end, summary=summary)

    def seconds_until_next_run(self, now: datetime) -> float:
        upcoming = [job.next_run for job in self.jobs if job.next_run is not None]
        if not upcoming:
            return 0.0
        # Subtract in UTC; same-zone arithmetic ignores DST offset changes
        next_run = min(upcoming).astimezone(timezone.utc)
        return max((next_run - now.astimezone(timezone.utc)).total_seconds(), 0.0)

    async def run_forever(self) -> None:
        """Runs due jobs, then sleeps until the next one. Stops when cancelled."""
        if not self._started:
            self.start()
        while True:
            now = self.now()
            try:
                self.run_pending(now)
            except Exception as e:
                logger.exception(f"Scheduled expense summary failed: {e}")
            await self._sleep(self.seconds_until_next_run(now))
