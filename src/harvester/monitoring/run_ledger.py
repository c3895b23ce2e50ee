"""
Run Ledger

Writes one CollectionRun per execution attempt and applies the outcome to
the data source (status, last_collected, error_message) in the same
transaction. The manager and the scheduler both record through here.
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from src.harvester.db.models import CollectionRun
from src.harvester.db.repository import CollectionRunRepository, DataSourceRepository
from src.harvester.db.session import SessionFactory, get_db_session
from src.harvester.errors import ErrorType, SourceNotFoundError
from src.harvester.models.collection import CollectionResult, RunStatus, RunTrigger
from src.harvester.utils.logger import get_logger
from src.harvester.utils.timeutils import utcnow

logger = get_logger(__name__)


def run_status(success: bool, error_log: List[Dict[str, Any]]) -> RunStatus:
    if not success:
        return RunStatus.ERROR
    if error_log:
        return RunStatus.PARTIAL
    return RunStatus.SUCCESS


class RunLedger:
    """
    Append-only writer for collection runs.

    Args:
        session_factory: Session factory (defaults to the settings database)
        clock: Source of the finish timestamp
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.runs = CollectionRunRepository()
        self.sources = DataSourceRepository()

    def record_collection_run(
        self,
        source_id: int,
        property_ids: List[str],
        duration_ms: int,
        success: bool,
        error_message: Optional[str] = None,
        *,
        started_at: Optional[datetime] = None,
        item_count: Optional[int] = None,
        error_log: Optional[List[Dict[str, Any]]] = None,
        trigger: RunTrigger = RunTrigger.MANUAL,
        message: Optional[str] = None,
        raw_artifact_path: Optional[str] = None,
    ) -> CollectionRun:
        """
        Persist one run and update its source.

        Failed runs always record an item count of zero and at least one
        error-log entry.

        Args:
            source_id: Data source id
            property_ids: Natural keys persisted by the run
            duration_ms: Wall time of the execution
            success: Whether the run succeeded
            error_message: Failure message, stored on the source when failed
            started_at: Run start (defaults to now)
            item_count: Rows scraped (defaults to len(property_ids))
            error_log: Error-log entries
            trigger: manual, scheduled or forced
            message: Summary message
            raw_artifact_path: Raw JSON artifact, if any

        Returns:
            The created CollectionRun

        Raises:
            SourceNotFoundError: If the source does not exist
        """
        finished_at = self.clock()
        log = list(error_log or [])
        if not success and not log:
            log.append({
                "message": error_message or "Collection failed",
                "timestamp": finished_at.isoformat(),
                "error_type": ErrorType.UNKNOWN.value,
            })

        status = run_status(success, log)
        count = (item_count if item_count is not None else len(property_ids)) if success else 0

        with get_db_session(self.session_factory) as session:
            source = self.sources.record_outcome(
                session,
                source_id,
                success=success,
                finished_at=finished_at,
                error_message=error_message or message,
            )
            if source is None:
                raise SourceNotFoundError(f"Data source {source_id} not found")

            run = self.runs.create_run(
                session,
                source_id=source_id,
                started_at=started_at or finished_at,
                status=status.value,
                trigger=trigger.value,
                duration_ms=int(duration_ms),
                item_count=count,
                success_count=len(property_ids) if success else 0,
                error_count=len(log),
                message=message or error_message,
                error_log=log,
                property_ids=list(property_ids),
                raw_artifact_path=raw_artifact_path,
            )

        logger.info(
            "collection_run_ledger_entry",
            source_id=source_id,
            run_id=run.id,
            status=status.value,
            trigger=trigger.value,
            duration_ms=int(duration_ms)
        )
        return run

    def record_result(
        self,
        result: CollectionResult,
        duration_ms: int,
        started_at: datetime,
        trigger: RunTrigger = RunTrigger.MANUAL,
    ) -> CollectionRun:
        """Record a CollectionResult returned by a collector."""
        return self.record_collection_run(
            result.source_id,
            result.saved_ids,
            duration_ms,
            result.success,
            None if result.success else result.message,
            started_at=started_at,
            item_count=result.item_count,
            error_log=result.errors,
            trigger=trigger,
            message=result.message,
            raw_artifact_path=result.raw_artifact_path,
        )
