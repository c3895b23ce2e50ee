"""
Create Database Tables Using SQLAlchemy

Creates all tables directly with create_all(). Useful for local setup and
testing; production databases are managed with Alembic migrations.
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

import sqlalchemy as sa

from src.harvester.db.session import create_all_tables, drop_all_tables, get_engine
from src.harvester.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Create harvester database tables")
    parser.add_argument("--reset", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    setup_logging()
    engine = get_engine()

    if args.reset:
        drop_all_tables(engine)

    create_all_tables(engine)

    tables = sorted(sa.inspect(engine).get_table_names())
    logger.info("database_setup_complete", tables=tables)


if __name__ == "__main__":
    main()
