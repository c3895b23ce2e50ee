"""
Seed Data Sources

Registers the St. Mary's County tax sale source if it is not configured yet.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.harvester.models.source import DataSourceConfig, Frequency, Region, Schedule, SourceType
from src.harvester.service import CollectionService
from src.harvester.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

SEED_SOURCES = [
    DataSourceConfig(
        name="St. Mary's County Tax Sale",
        source_type=SourceType.COUNTY_WEBSITE,
        url="https://www.stmaryscountymd.gov/treasurer/taxsale/",
        region=Region(state="MD", county="St. Mary's"),
        collector_type="stmarys-county-collector",
        schedule=Schedule(frequency=Frequency.WEEKLY, day_of_week=1),
        metadata={
            "column_map": {
                "Tax Acct#": "tax_account_number",
                "Owner": "owner_name",
                "Property Description": "property_description",
                "Amount Due": "tax_due",
            },
        },
    ),
]


def main():
    setup_logging()
    service = CollectionService.build()
    existing = {s.name for s in service.list_sources()}

    for config in SEED_SOURCES:
        if config.name in existing:
            logger.info("seed_source_exists", name=config.name)
            continue
        snapshot = service.add_source(config)
        logger.info("seed_source_added", source_id=snapshot.id, name=snapshot.name)


if __name__ == "__main__":
    main()
