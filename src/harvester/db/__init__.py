"""
Database Package

Database models, connection management, and data persistence layer.
"""
from src.harvester.db.base import Base
from src.harvester.db.session import (
    build_engine,
    build_session_factory,
    get_engine,
    get_session_factory,
    get_db_session,
    health_check,
    create_all_tables,
    drop_all_tables,
    with_retry,
)
from src.harvester.db.models import DataSource, CollectionRun, Property
from src.harvester.db.repository import (
    BaseRepository,
    DataSourceRepository,
    CollectionRunRepository,
    PropertyRepository,
)
from src.harvester.db.store import PropertyStore

__all__ = [
    # Base
    "Base",
    # Session management
    "build_engine",
    "build_session_factory",
    "get_engine",
    "get_session_factory",
    "get_db_session",
    "health_check",
    "create_all_tables",
    "drop_all_tables",
    "with_retry",
    # Models
    "DataSource",
    "CollectionRun",
    "Property",
    # Repositories
    "BaseRepository",
    "DataSourceRepository",
    "CollectionRunRepository",
    "PropertyRepository",
    "PropertyStore",
]
