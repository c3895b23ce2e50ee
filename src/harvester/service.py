"""
Collection Service

Wires the registry, manager, scheduler and health monitor together and
exposes the operations used by the CLI, scripts and Airflow DAGs.
"""
from typing import Dict, List, Optional

from config.settings import settings
from src.harvester.collectors.base import CollectorRegistry
from src.harvester.collectors.http import HttpFetcher
from src.harvester.collectors.manager import CollectorManager
from src.harvester.collectors.table_scraper import build_default_collectors
from src.harvester.db.session import SessionFactory
from src.harvester.db.store import PropertyStore
from src.harvester.models.collection import CollectionResult, HealthReport, RunStats, RunTrigger
from src.harvester.models.source import DataSourceConfig, DataSourceSnapshot
from src.harvester.monitoring.health import HealthMonitor
from src.harvester.monitoring.notifications import SlackLifecycleListener
from src.harvester.monitoring.run_ledger import RunLedger
from src.harvester.pipelines.geocoding import NominatimGeocoder
from src.harvester.pipelines.transformation import TransformationPipeline
from src.harvester.scheduling.scheduler import CollectionScheduler
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)


class CollectionService:
    """
    Facade over the collection engine.

    Usage:
        service = CollectionService.build()
        service.run_due_sources()
    """

    def __init__(
        self,
        manager: CollectorManager,
        scheduler: CollectionScheduler,
        monitor: HealthMonitor,
    ):
        self.manager = manager
        self.scheduler = scheduler
        self.monitor = monitor
        self._initialized = False

    @classmethod
    def build(
        cls,
        session_factory: Optional[SessionFactory] = None,
        fetcher=None,
        geocoder=None,
        **collector_kwargs,
    ) -> "CollectionService":
        """
        Assemble the default engine.

        Geocoding is wired in only when enabled in settings or a geocoder
        is passed explicitly.

        Args:
            session_factory: Session factory (defaults to the settings database)
            fetcher: HTTP collaborator shared by the collectors
            geocoder: Geocoder for the pipeline
            **collector_kwargs: Passed to every TableScrapeCollector
        """
        if geocoder is None and settings.geocoding_enabled:
            geocoder = NominatimGeocoder()

        ledger = RunLedger(session_factory)
        registry = CollectorRegistry()
        collectors = build_default_collectors(
            fetcher=fetcher or HttpFetcher(),
            pipeline=TransformationPipeline.default(geocoder=geocoder),
            store=PropertyStore(session_factory),
            session_factory=session_factory,
            **collector_kwargs,
        )
        for collector in collectors:
            registry.register(collector.as_definition())

        manager = CollectorManager(session_factory, registry=registry, ledger=ledger)
        if settings.alert_enable_slack:
            manager.add_listener(SlackLifecycleListener())

        scheduler = CollectionScheduler(manager, session_factory, ledger=ledger)
        monitor = HealthMonitor(
            session_factory,
            ledger=ledger,
            collector_ids=lambda: [c.id for c in registry.list()],
        )
        logger.info("collection_service_built", collectors=len(registry), geocoding=geocoder is not None)
        return cls(manager, scheduler, monitor)

    def initialize(self) -> None:
        if not self._initialized:
            self.manager.initialize()
            self._initialized = True

    def add_source(self, config: DataSourceConfig) -> DataSourceSnapshot:
        self.initialize()
        return self.manager.add_source(config)

    def list_sources(self) -> List[DataSourceSnapshot]:
        self.initialize()
        return self.manager.get_sources()

    def run_source(self, source_id: int) -> CollectionResult:
        """Run one source manually."""
        self.initialize()
        return self.manager.execute_collection(source_id, trigger=RunTrigger.MANUAL)

    def run_due_sources(self, force: bool = False) -> Dict[int, CollectionResult]:
        """Run every due source, or every non-inactive source when forced."""
        self.initialize()
        return self.scheduler.run_scheduled_collections(force=force)

    def source_stats(self, source_id: int) -> Optional[RunStats]:
        return self.monitor.get_collection_run_stats(source_id)

    def health_snapshot(self, period_hours: Optional[int] = None) -> HealthReport:
        return self.monitor.check_health(period_hours)
