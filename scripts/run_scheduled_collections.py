"""
Run Scheduled Collections

Runs every due data source once; --force runs every non-inactive source.
Suitable for cron when Airflow is not deployed.
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.harvester.service import CollectionService
from src.harvester.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run due data source collections")
    parser.add_argument("--force", action="store_true", help="Ignore schedules and run every source")
    args = parser.parse_args()

    setup_logging()
    results = CollectionService.build().run_due_sources(force=args.force)

    failed = [sid for sid, result in results.items() if not result.success]
    logger.info(
        "scheduled_collections_script_complete",
        total=len(results),
        failed=len(failed),
        failed_sources=failed
    )
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
