"""
Collectors Package

Collector contract, registry, the table scrape collector and the manager
that runs them.
"""
from src.harvester.collectors.base import CollectorDefinition, CollectorRegistry
from src.harvester.collectors.http import HttpFetcher
from src.harvester.collectors.table_scraper import TableScrapeCollector, build_default_collectors
from src.harvester.collectors.manager import CollectorManager

__all__ = [
    "CollectorDefinition",
    "CollectorRegistry",
    "HttpFetcher",
    "TableScrapeCollector",
    "build_default_collectors",
    "CollectorManager",
]
