"""
Collector Manager

Owns the collector registry and the in-memory source catalog, runs one or
many collections and writes exactly one run record per attempt.

Every exception raised inside a collection is converted into a failed
CollectionResult here, so one source can never break another source's run
or the scheduler loop.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from config.settings import settings
from src.harvester.collectors.base import CollectorDefinition, CollectorRegistry, failed_result
from src.harvester.db.models import DataSource
from src.harvester.db.repository import DataSourceRepository
from src.harvester.db.session import SessionFactory, get_db_session
from src.harvester.errors import SourceNotFoundError
from src.harvester.models.collection import CollectionResult, RunTrigger, ValidationResult
from src.harvester.models.source import (
    DataSourceConfig,
    DataSourceSnapshot,
    Region,
    Schedule,
    SourceStatus,
)
from src.harvester.monitoring.run_ledger import RunLedger
from src.harvester.utils.logger import bound_source_context, get_logger
from src.harvester.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]


def snapshot_from_row(row: DataSource) -> DataSourceSnapshot:
    """Detach a DataSource row into an immutable snapshot."""
    return DataSourceSnapshot(
        id=row.id,
        name=row.name,
        source_type=row.source_type,
        url=row.url,
        region=Region(state=row.state, county=row.county),
        collector_type=row.collector_type,
        schedule=Schedule(
            frequency=row.frequency,
            day_of_week=row.day_of_week,
            day_of_month=row.day_of_month,
        ),
        metadata=dict(row.source_metadata or {}),
        status=row.status,
        last_collected=ensure_utc(row.last_collected),
        next_scheduled_run=ensure_utc(row.next_scheduled_run),
        error_message=row.error_message,
    )


class CollectorManager:
    """
    Registry of collectors plus catalog of configured sources.

    Constructed explicitly and handed to the scheduler and service layer.

    Args:
        session_factory: Session factory (defaults to the settings database)
        registry: Collector registry (a new one by default)
        ledger: Run ledger (one on the same session factory by default)
        max_concurrency: Default pool size for execute_many
        validate_before_run: Run validate_source before every execution
        clock: Wall clock for run timestamps
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        registry: Optional[CollectorRegistry] = None,
        ledger: Optional[RunLedger] = None,
        max_concurrency: Optional[int] = None,
        validate_before_run: Optional[bool] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.registry = registry or CollectorRegistry()
        self.ledger = ledger or RunLedger(session_factory, clock=clock)
        self.max_concurrency = max_concurrency or settings.collection_max_concurrency
        self.validate_before_run = (
            validate_before_run if validate_before_run is not None else settings.validate_sources_before_run
        )
        self.clock = clock
        self.sources = DataSourceRepository()
        self._catalog: Dict[int, DataSourceSnapshot] = {}
        self._catalog_lock = threading.Lock()
        self._listeners: List[Listener] = []

    # Events

    def add_listener(self, listener: Listener) -> None:
        """Subscribe to lifecycle events (name, payload)."""
        self._listeners.append(listener)

    def _emit(self, event: str, **payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logger.warning("lifecycle_listener_failed", lifecycle_event=event, error=str(e))

    # Catalog

    def initialize(self) -> List[DataSourceSnapshot]:
        """Load every non-inactive source from the store into the catalog."""
        with get_db_session(self.session_factory) as session:
            rows = self.sources.get_collectable(session)
            snapshots = [snapshot_from_row(row) for row in rows]

        with self._catalog_lock:
            self._catalog = {s.id: s for s in snapshots}

        logger.info("collector_manager_initialized", sources=len(snapshots), collectors=len(self.registry))
        self._emit("initialized", source_count=len(snapshots))
        return snapshots

    def register_collector(self, definition: CollectorDefinition) -> None:
        """
        Register a collector definition.

        Raises:
            DuplicateCollectorError: If the id is already registered
        """
        self.registry.register(definition)
        self._emit("collector_registered", collector_id=definition.id)

    def get_collectors(self) -> List[CollectorDefinition]:
        return self.registry.list()

    def add_source(self, config: DataSourceConfig) -> DataSourceSnapshot:
        """
        Persist a new data source and add it to the catalog.

        Returns:
            Snapshot of the stored source
        """
        with get_db_session(self.session_factory) as session:
            row = self.sources.create(
                session,
                name=config.name,
                source_type=config.source_type.value,
                url=config.url,
                state=config.region.state,
                county=config.region.county,
                collector_type=config.collector_type,
                frequency=config.schedule.frequency.value,
                day_of_week=config.schedule.day_of_week,
                day_of_month=config.schedule.day_of_month,
                source_metadata=dict(config.metadata),
                status=config.status.value,
            )
            snapshot = snapshot_from_row(row)

        with self._catalog_lock:
            self._catalog[snapshot.id] = snapshot

        logger.info("data_source_added", source_id=snapshot.id, name=snapshot.name)
        self._emit("source_added", source_id=snapshot.id, name=snapshot.name)
        return snapshot

    def get_sources(self) -> List[DataSourceSnapshot]:
        with self._catalog_lock:
            return sorted(self._catalog.values(), key=lambda s: s.id)

    def get_source(self, source_id: int) -> DataSourceSnapshot:
        """
        Resolve a source from the catalog, falling back to the store.

        Raises:
            SourceNotFoundError: If no such source exists
        """
        with self._catalog_lock:
            snapshot = self._catalog.get(source_id)
        if snapshot is not None:
            return snapshot
        return self._refresh_source(source_id)

    def _refresh_source(self, source_id: int) -> DataSourceSnapshot:
        with get_db_session(self.session_factory) as session:
            row = self.sources.get_by_id(session, source_id)
            if row is None:
                raise SourceNotFoundError(f"Data source with ID {source_id} not found")
            snapshot = snapshot_from_row(row)

        with self._catalog_lock:
            if snapshot.status == SourceStatus.INACTIVE:
                self._catalog.pop(source_id, None)
            else:
                self._catalog[source_id] = snapshot
        return snapshot

    # Execution

    def validate_source(self, source_id: int) -> ValidationResult:
        """
        Validate a source with its collector.

        Raises:
            SourceNotFoundError: If no such source exists
        """
        source = self.get_source(source_id)
        collector = self.registry.get(source.collector_type)
        if collector is None:
            return ValidationResult(valid=False, message=f"No collector found for type {source.collector_type}")
        try:
            return collector.validate_source(source)
        except Exception as e:
            logger.warning("source_validation_crashed", source_id=source_id, error=str(e))
            return ValidationResult(valid=False, message=f"Validation error: {e}")

    def execute_collection(self, source_id: int, trigger: RunTrigger = RunTrigger.MANUAL) -> CollectionResult:
        """
        Run one source and record the outcome.

        Exactly one CollectionRun is written whatever happens inside the
        collector.

        Raises:
            SourceNotFoundError: If no such source exists
        """
        source = self.get_source(source_id)
        started_at = self.clock()
        start = time.monotonic()

        with bound_source_context(source_id=source.id, source_name=source.name):
            logger.info("collection_started", collector_type=source.collector_type, trigger=trigger.value)
            self._emit("collection_started", source_id=source.id, name=source.name, trigger=trigger.value)

            result = self._run_collector(source)
            duration_ms = int((time.monotonic() - start) * 1000)

            try:
                self.ledger.record_result(result, duration_ms=duration_ms, started_at=started_at, trigger=trigger)
            except Exception as e:
                logger.exception("collection_run_record_failed", error=str(e))
                raise

            self._refresh_source(source.id)

            if result.success:
                logger.info(
                    "collection_completed",
                    duration_ms=duration_ms,
                    item_count=result.item_count,
                    saved=len(result.saved_ids),
                    record_errors=len(result.errors)
                )
                self._emit(
                    "collection_completed",
                    source_id=source.id,
                    name=source.name,
                    duration_ms=duration_ms,
                    item_count=result.item_count,
                    saved=len(result.saved_ids),
                    record_errors=len(result.errors),
                )
            else:
                logger.error("collection_error", duration_ms=duration_ms, message=result.message)
                self._emit(
                    "collection_error",
                    source_id=source.id,
                    name=source.name,
                    duration_ms=duration_ms,
                    message=result.message,
                )
        return result

    def _run_collector(self, source: DataSourceSnapshot) -> CollectionResult:
        collector = self.registry.get(source.collector_type)
        if collector is None:
            return failed_result(source.id, f"No collector found for type {source.collector_type}")

        if self.validate_before_run:
            validation = self.validate_source(source.id)
            if not validation.valid:
                return failed_result(source.id, f"Source validation failed: {validation.message}")

        try:
            result = collector.execute(source)
        except Exception as e:
            logger.exception("collector_raised", collector_type=source.collector_type, error=str(e))
            return failed_result(source.id, f"Internal error: {e}", e)

        if not isinstance(result, CollectionResult):
            return failed_result(source.id, f"Collector {collector.id} returned no result")
        return result

    def execute_many(
        self,
        source_ids: Optional[Iterable[int]] = None,
        max_concurrency: Optional[int] = None,
        trigger: RunTrigger = RunTrigger.MANUAL,
    ) -> Dict[int, CollectionResult]:
        """
        Run several sources on a bounded thread pool.

        Args:
            source_ids: Sources to run (all catalog sources by default)
            max_concurrency: Pool size (defaults to the manager setting)
            trigger: Recorded on every run

        Returns:
            Result per source id; a source that could not run at all gets a
            failed result
        """
        ids = list(source_ids) if source_ids is not None else [s.id for s in self.get_sources()]
        if not ids:
            return {}
        workers = max(1, min(max_concurrency or self.max_concurrency, len(ids)))

        def run_isolated(source_id: int) -> CollectionResult:
            try:
                return self.execute_collection(source_id, trigger=trigger)
            except Exception as e:
                logger.error("collection_isolated_failure", source_id=source_id, error=str(e))
                return failed_result(source_id, f"Internal error: {e}", e)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="collector") as pool:
            results = list(pool.map(run_isolated, ids))

        outcome = dict(zip(ids, results))
        logger.info(
            "parallel_collections_complete",
            total=len(ids),
            successful=sum(1 for r in results if r.success),
            max_concurrency=workers
        )
        return outcome
