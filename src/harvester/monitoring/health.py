"""
Health Monitor

Aggregates the run ledger into per-source statistics and a system-wide
health verdict. check_health and get_collection_run_stats only read.
"""
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from config.settings import settings
from src.harvester.db.models import CollectionRun
from src.harvester.db.repository import CollectionRunRepository, DataSourceRepository
from src.harvester.db.session import SessionFactory, get_db_session
from src.harvester.models.collection import (
    SEVERITY_RANK,
    HealthIssue,
    HealthReport,
    HealthStatus,
    RunStats,
    RunStatus,
    Severity,
)
from src.harvester.monitoring.run_ledger import RunLedger
from src.harvester.utils.logger import get_logger
from src.harvester.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)

FAILED = RunStatus.ERROR.value


def _first_error_message(run: CollectionRun) -> str:
    for entry in run.error_log or []:
        if entry.get("message"):
            return entry["message"]
    return run.message or "Collection failed"


def order_issues(issues: List[HealthIssue]) -> List[HealthIssue]:
    """Most severe first, then most recent first; undated issues last within a severity."""
    floor = datetime.min.replace(tzinfo=utcnow().tzinfo)
    by_time = sorted(issues, key=lambda i: ensure_utc(i.timestamp) or floor, reverse=True)
    return sorted(by_time, key=lambda i: SEVERITY_RANK[i.severity])


class HealthMonitor:
    """
    Run statistics and health checks.

    Args:
        session_factory: Session factory (defaults to the settings database)
        ledger: Run ledger used by record_collection_run
        collector_ids: Returns the ids of the registered collectors
        clock: Wall clock
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        ledger: Optional[RunLedger] = None,
        collector_ids: Callable[[], Iterable[str]] = lambda: (),
        clock: Callable[[], datetime] = utcnow,
        stale_days: Optional[int] = None,
        warning_ratio: Optional[float] = None,
        degraded_success_rate: Optional[float] = None,
        stats_window: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.ledger = ledger or RunLedger(session_factory, clock=clock)
        self.collector_ids = collector_ids
        self.clock = clock
        self.stale_days = stale_days if stale_days is not None else settings.health_stale_days
        self.warning_ratio = warning_ratio if warning_ratio is not None else settings.health_warning_ratio
        self.degraded_success_rate = (
            degraded_success_rate if degraded_success_rate is not None else settings.health_degraded_success_rate
        )
        self.stats_window = stats_window or settings.run_stats_window
        self.runs = CollectionRunRepository()
        self.sources = DataSourceRepository()

    def record_collection_run(self, source_id: int, records: List[str], duration_ms: int,
                              success: bool, error_message: Optional[str] = None, **kwargs) -> CollectionRun:
        """Persist a run and update the source; see RunLedger.record_collection_run."""
        return self.ledger.record_collection_run(
            source_id, records, duration_ms, success, error_message, **kwargs
        )

    def get_collection_run_stats(self, source_id: int, lookback: Optional[int] = None) -> Optional[RunStats]:
        """
        Aggregate the last `lookback` runs of a source.

        Partial runs count as successful; only error runs count as failures.

        Returns:
            RunStats, or None when the source has no runs
        """
        limit = lookback or self.stats_window
        with get_db_session(self.session_factory) as session:
            runs = self.runs.get_recent_runs(session, source_id, limit=limit)
            return self._stats_from_runs(source_id, runs)

    @staticmethod
    def _stats_from_runs(source_id: int, runs: List[CollectionRun]) -> Optional[RunStats]:
        total = len(runs)
        if total == 0:
            return None
        succeeded = sum(1 for r in runs if r.status != FAILED)
        return RunStats(
            source_id=source_id,
            total_runs=total,
            success_rate=round(succeeded / total * 100, 2),
            average_duration_ms=sum(r.duration_ms for r in runs) / total,
            average_item_count=sum(r.item_count for r in runs) / total,
            last_run_at=ensure_utc(runs[0].started_at),
            last_run_status=runs[0].status,
        )

    def check_health(self, period_hours: Optional[int] = None) -> HealthReport:
        """
        Build a health snapshot over the last `period_hours`.

        Returns:
            HealthReport with counts, overall status and ordered issues
        """
        period_hours = period_hours or settings.health_lookback_hours
        now = self.clock()
        since = now - timedelta(hours=period_hours)
        collector_ids = set(self.collector_ids())
        issues: List[HealthIssue] = []

        with get_db_session(self.session_factory) as session:
            sources = self.sources.get_all(session)
            recent = self.runs.get_runs_since(session, since)
            names = {s.id: s.name for s in sources}
            active = [s for s in sources if s.status == "active"]
            errored = [s for s in sources if s.status == "error"]

            for source in errored:
                issues.append(HealthIssue(
                    type="source",
                    severity=Severity.ERROR,
                    id=str(source.id),
                    name=source.name,
                    message=source.error_message or "Source is in error state",
                    timestamp=ensure_utc(source.last_collected),
                ))

            warning_ids = set()
            for source in active:
                if source.frequency == "manual":
                    continue
                last = ensure_utc(source.last_collected) or ensure_utc(source.created_at)
                if last is not None and now - last > timedelta(days=self.stale_days):
                    warning_ids.add(source.id)
                    issues.append(HealthIssue(
                        type="source",
                        severity=Severity.WARNING,
                        id=str(source.id),
                        name=source.name,
                        message=f"Source hasn't been collected in {(now - last).days} days",
                        timestamp=last,
                    ))

            for source in active:
                stats = self._stats_from_runs(
                    source.id, self.runs.get_recent_runs(session, source.id, limit=self.stats_window)
                )
                if stats and stats.total_runs >= 3 and stats.success_rate < self.degraded_success_rate:
                    warning_ids.add(source.id)
                    issues.append(HealthIssue(
                        type="source",
                        severity=Severity.WARNING,
                        id=str(source.id),
                        name=source.name,
                        message=f"Success rate {stats.success_rate:.0f}% over the last {stats.total_runs} runs",
                        timestamp=stats.last_run_at,
                    ))

            if collector_ids:
                for source in active + errored:
                    if source.collector_type not in collector_ids:
                        issues.append(HealthIssue(
                            type="source",
                            severity=Severity.ERROR,
                            id=str(source.id),
                            name=source.name,
                            message=f"No collector registered for type {source.collector_type}",
                            timestamp=ensure_utc(source.last_collected),
                        ))
            elif active:
                issues.append(HealthIssue(
                    type="collector",
                    severity=Severity.CRITICAL,
                    name="collector registry",
                    message=f"No collectors registered for {len(active)} active sources",
                    timestamp=now,
                ))

            failed = [r for r in recent if r.status == FAILED]
            for run in failed:
                issues.append(HealthIssue(
                    type="collection",
                    severity=Severity.ERROR,
                    id=str(run.id),
                    name=names.get(run.source_id, "Unknown source"),
                    message=_first_error_message(run),
                    timestamp=ensure_utc(run.started_at),
                ))
            if recent and len(failed) == len(recent):
                issues.append(HealthIssue(
                    type="collection",
                    severity=Severity.CRITICAL,
                    name="recent collections",
                    message=f"All {len(recent)} collections in the last {period_hours} hours failed",
                    timestamp=ensure_utc(recent[0].started_at),
                ))

            source_counts = {
                "total": len(sources),
                "active": len(active),
                "warning": len(warning_ids),
                "error": len(errored),
            }
            recent_counts = {
                "total": len(recent),
                "successful": len(recent) - len(failed),
                "failed": len(failed),
            }

        severities = [i.severity for i in issues]
        warnings = severities.count(Severity.WARNING)
        if Severity.CRITICAL in severities:
            status = HealthStatus.UNHEALTHY
        elif Severity.ERROR in severities:
            status = HealthStatus.DEGRADED
        elif warnings > 0 and warnings > source_counts["total"] * self.warning_ratio:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        report = HealthReport(
            status=status,
            checked_at=now,
            period_hours=period_hours,
            collectors={"total": len(collector_ids), "active": len(collector_ids)},
            sources=source_counts,
            recent_collections=recent_counts,
            issues=order_issues(issues),
        )
        logger.info(
            "health_check_complete",
            status=status.value,
            issues=len(issues),
            recent_runs=recent_counts["total"]
        )
        return report
