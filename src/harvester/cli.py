"""
Command line entry point.

    harvester init-db
    harvester add-source --file source.json
    harvester list-sources
    harvester run SOURCE_ID
    harvester run-due [--force]
    harvester health [--hours 24]
"""
import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from src.harvester.db.session import create_all_tables, health_check
from src.harvester.errors import SourceNotFoundError
from src.harvester.models.source import DataSourceConfig
from src.harvester.service import CollectionService
from src.harvester.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="harvester", description="Property data collection engine")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables")

    add = commands.add_parser("add-source", help="Register a data source from a JSON file")
    add.add_argument("--file", type=Path, required=True, help="JSON file with the source configuration")

    commands.add_parser("list-sources", help="List configured data sources")

    run = commands.add_parser("run", help="Collect one source now")
    run.add_argument("source_id", type=int)

    due = commands.add_parser("run-due", help="Collect every due source")
    due.add_argument("--force", action="store_true", help="Run every non-inactive source regardless of schedule")

    health = commands.add_parser("health", help="Print a health report")
    health.add_argument("--hours", type=int, default=None, help="Lookback window in hours")

    return parser.parse_args(argv)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    if args.command == "init-db":
        create_all_tables()
        return 0

    service = CollectionService.build()

    if args.command == "add-source":
        try:
            config = DataSourceConfig.model_validate_json(args.file.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error("source_config_invalid", path=str(args.file), error=str(e))
            return 2
        _print_json(service.add_source(config).summary())
        return 0

    if args.command == "list-sources":
        _print_json([s.summary() for s in service.list_sources()])
        return 0

    if args.command == "run":
        try:
            result = service.run_source(args.source_id)
        except SourceNotFoundError as e:
            logger.error("source_not_found", source_id=args.source_id, error=str(e))
            return 2
        _print_json(result.model_dump(mode="json"))
        return 0 if result.success else 1

    if args.command == "run-due":
        results = service.run_due_sources(force=args.force)
        _print_json({sid: r.model_dump(mode="json", exclude={"errors"}) for sid, r in results.items()})
        return 0 if all(r.success for r in results.values()) else 1

    if args.command == "health":
        if not health_check(service.monitor.session_factory):
            logger.error("health_check_aborted", reason="database unreachable")
            return 1
        report = service.health_snapshot(args.hours)
        _print_json(report.model_dump(mode="json"))
        return 0 if report.status.value != "unhealthy" else 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
