"""
Collection Scheduler

Decides which sources are due, runs them and advances next_scheduled_run.

Due rules (all in UTC, `last` = last_collected):

    manual   never due
    (never collected) due
    hourly   at least one hour since last
    daily    calendar day changed since last
    weekly   today is day_of_week (0=Sunday) and at least 7 calendar days since last
    monthly  today is day_of_month (clamped to month length) and at least one
             calendar month since last
"""
import calendar
import time
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from src.harvester.collectors.base import failed_result
from src.harvester.collectors.manager import CollectorManager, snapshot_from_row
from src.harvester.db.repository import DataSourceRepository
from src.harvester.db.session import SessionFactory, get_db_session
from src.harvester.models.collection import CollectionResult, RunTrigger
from src.harvester.models.source import DataSourceSnapshot, Frequency, Schedule
from src.harvester.monitoring.run_ledger import RunLedger
from src.harvester.utils.logger import bound_source_context, get_logger
from src.harvester.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)

CollectorFn = Callable[[DataSourceSnapshot], CollectionResult]


def js_weekday(value: date) -> int:
    """Weekday with 0=Sunday .. 6=Saturday."""
    return (value.weekday() + 1) % 7


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: date, months: int, day: Optional[int] = None) -> date:
    """Shift a date by whole months, clamping the day to the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    target_day = min(day or value.day, days_in_month(year, month))
    return date(year, month, target_day)


def is_due(schedule: Schedule, last_run: Optional[datetime], now: datetime) -> bool:
    """
    Whether a source with this schedule should run at `now`.

    Args:
        schedule: Source schedule
        last_run: Last collection time, None if never collected
        now: Evaluation time

    Returns:
        True when due
    """
    if schedule.frequency == Frequency.MANUAL:
        return False
    if last_run is None:
        return True

    now = ensure_utc(now)
    last_run = ensure_utc(last_run)
    today, last_day = now.date(), last_run.date()

    if schedule.frequency == Frequency.HOURLY:
        return now - last_run >= timedelta(hours=1)

    if schedule.frequency == Frequency.DAILY:
        return today > last_day

    if schedule.frequency == Frequency.WEEKLY:
        if schedule.day_of_week is not None and js_weekday(today) != schedule.day_of_week:
            return False
        return (today - last_day).days >= 7

    if schedule.frequency == Frequency.MONTHLY:
        if schedule.day_of_month is not None:
            if today.day != min(schedule.day_of_month, days_in_month(today.year, today.month)):
                return False
        return add_months(last_day, 1) <= today

    return False


def next_run_after(schedule: Schedule, now: datetime) -> Optional[datetime]:
    """
    Next scheduled run counted from `now`.

    Weekly runs move forward to day_of_week; monthly runs land on
    day_of_month clamped to the month length. Manual schedules have none.
    """
    now = ensure_utc(now)

    if schedule.frequency == Frequency.HOURLY:
        return now + timedelta(hours=1)

    if schedule.frequency == Frequency.DAILY:
        return now + timedelta(days=1)

    if schedule.frequency == Frequency.WEEKLY:
        next_run = now + timedelta(days=7)
        if schedule.day_of_week is not None:
            shift = (schedule.day_of_week - js_weekday(next_run.date())) % 7
            next_run += timedelta(days=shift)
        return next_run

    if schedule.frequency == Frequency.MONTHLY:
        target = add_months(now.date(), 1, day=schedule.day_of_month)
        return now.replace(year=target.year, month=target.month, day=target.day)

    return None


class CollectionScheduler:
    """
    Drives recurring collections.

    Runs go through the injected manager, or through a caller-supplied
    collector function whose results are recorded by the run ledger. A
    forced run skips only the due check.

    Args:
        manager: Collector manager used when no collector function is given
        session_factory: Session factory (defaults to the manager's)
        ledger: Run ledger for collector-function runs
        clock: Wall clock
    """

    def __init__(
        self,
        manager: Optional[CollectorManager] = None,
        session_factory: Optional[SessionFactory] = None,
        ledger: Optional[RunLedger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.manager = manager
        self.session_factory = session_factory or (manager.session_factory if manager else None)
        self.ledger = ledger or (manager.ledger if manager else RunLedger(self.session_factory, clock=clock))
        self.clock = clock
        self.sources = DataSourceRepository()

    def _collectable_sources(self) -> List[DataSourceSnapshot]:
        with get_db_session(self.session_factory) as session:
            return [snapshot_from_row(row) for row in self.sources.get_collectable(session)]

    def find_due_data_sources(self, now: Optional[datetime] = None) -> List[DataSourceSnapshot]:
        """
        Non-inactive sources whose schedule says they are due.

        Args:
            now: Evaluation time (defaults to the clock)
        """
        now = now or self.clock()
        candidates = self._collectable_sources()
        due = [s for s in candidates if is_due(s.schedule, s.last_collected, now)]
        logger.info("due_data_sources_found", due=len(due), candidates=len(candidates))
        return due

    def schedule_next_run(self, source: DataSourceSnapshot, now: Optional[datetime] = None) -> Optional[datetime]:
        """Store and return the next run time for a source."""
        next_run = next_run_after(source.schedule, now or self.clock())
        if next_run is None:
            return None
        with get_db_session(self.session_factory) as session:
            self.sources.set_next_scheduled_run(session, source.id, next_run)
        logger.info("next_run_scheduled", source_id=source.id, next_run=next_run.isoformat())
        return next_run

    def run_scheduled_collections(
        self,
        collector_fn: Optional[CollectorFn] = None,
        *,
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> Dict[int, CollectionResult]:
        """
        Run every due source (every non-inactive source when forced).

        Each run is recorded exactly once and the source's next run is
        advanced afterwards.

        Args:
            collector_fn: Runs one source; the manager is used when omitted
            force: Skip the due check
            now: Evaluation time

        Returns:
            Result per source id
        """
        now = now or self.clock()
        trigger = RunTrigger.FORCED if force else RunTrigger.SCHEDULED
        sources = self._collectable_sources() if force else self.find_due_data_sources(now)
        logger.info("scheduled_collections_started", sources=len(sources), forced=force)

        if collector_fn is None:
            if self.manager is None:
                raise ValueError("A collector function or a CollectorManager is required")
            results = self.manager.execute_many([s.id for s in sources], trigger=trigger)
        else:
            results = {s.id: self._run_with_function(collector_fn, s, trigger) for s in sources}

        for source in sources:
            try:
                self.schedule_next_run(source, now)
            except Exception as e:
                logger.exception("next_run_schedule_failed", source_id=source.id, error=str(e))

        logger.info(
            "scheduled_collections_complete",
            total=len(results),
            successful=sum(1 for r in results.values() if r.success),
            forced=force
        )
        return results

    def _run_with_function(
        self,
        collector_fn: CollectorFn,
        source: DataSourceSnapshot,
        trigger: RunTrigger,
    ) -> CollectionResult:
        started_at = self.clock()
        start = time.monotonic()
        with bound_source_context(source_id=source.id, source_name=source.name):
            try:
                result = collector_fn(source)
            except Exception as e:
                logger.exception("scheduled_collector_failed", error=str(e))
                result = failed_result(source.id, f"Internal error: {e}", e)
            if not isinstance(result, CollectionResult):
                logger.error("scheduled_collector_returned_no_result", returned=type(result).__name__)
                result = failed_result(source.id, "Collector function returned no result")
            elif result.source_id != source.id:
                result = result.model_copy(update={"source_id": source.id})

            duration_ms = int((time.monotonic() - start) * 1000)
            try:
                self.ledger.record_result(result, duration_ms=duration_ms, started_at=started_at, trigger=trigger)
            except Exception as e:
                logger.exception("scheduled_run_record_failed", error=str(e))
                return failed_result(source.id, f"Failed to record collection run: {e}", e)
        return result
