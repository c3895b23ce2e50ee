"""
Repositories

Queries for data sources, the collection run ledger and properties. Each
method works inside a session supplied by the caller; commits belong to
get_db_session().
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import select, func, desc
from sqlalchemy.orm import Session

from src.harvester.db.models import DataSource, CollectionRun, Property
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class BaseRepository:
    """Lookup, listing and insert shared by the model repositories."""

    def __init__(self, model: Type[T]):
        self.model = model

    def get_by_id(self, session: Session, id_value: Any) -> Optional[T]:
        instance = session.get(self.model, id_value)
        if instance is None:
            logger.debug("repository_miss", model=self.model.__name__, id=id_value)
        return instance

    def get_all(self, session: Session, limit: Optional[int] = None, offset: int = 0) -> List[T]:
        """Rows in primary key order, optionally paginated."""
        query = select(self.model).order_by(self.model.id).offset(offset)
        if limit:
            query = query.limit(limit)
        return list(session.scalars(query))

    def create(self, session: Session, **values) -> T:
        """Insert a row and flush so its id is populated."""
        instance = self.model(**values)
        session.add(instance)
        session.flush()
        logger.info("repository_row_inserted", model=self.model.__name__, id=instance.id)
        return instance

    def count(self, session: Session) -> int:
        return session.execute(select(func.count()).select_from(self.model)).scalar_one()


class DataSourceRepository(BaseRepository):
    """Repository for configured data sources."""

    def __init__(self):
        super().__init__(DataSource)

    def get_collectable(self, session: Session) -> List[DataSource]:
        """Get every source that is not inactive, in id order."""
        query = (
            select(DataSource)
            .where(DataSource.status != "inactive")
            .order_by(DataSource.id)
        )
        return list(session.execute(query).scalars().all())

    def record_outcome(
        self,
        session: Session,
        source_id: int,
        success: bool,
        finished_at: datetime,
        error_message: Optional[str] = None,
    ) -> Optional[DataSource]:
        """
        Apply a run outcome to the source status fields.

        Inactive sources keep their status; only last_collected and the
        error message change for them.

        Returns:
            Updated source or None if it does not exist
        """
        source = self.get_by_id(session, source_id)
        if source is None:
            logger.warning("data_source_not_found", source_id=source_id)
            return None

        source.last_collected = finished_at
        if success:
            source.error_message = None
            if source.status != "inactive":
                source.status = "active"
        else:
            source.error_message = error_message
            if source.status != "inactive":
                source.status = "error"

        session.flush()
        logger.info(
            "data_source_outcome_recorded",
            source_id=source_id,
            status=source.status,
            success=success
        )
        return source

    def set_next_scheduled_run(self, session: Session, source_id: int, next_run: datetime) -> None:
        source = self.get_by_id(session, source_id)
        if source is None:
            logger.warning("data_source_not_found", source_id=source_id)
            return
        source.next_scheduled_run = next_run
        session.flush()


class CollectionRunRepository(BaseRepository):
    """
    Repository for the collection run ledger.

    Append-only: runs are created and read, never updated or deleted.
    """

    def __init__(self):
        super().__init__(CollectionRun)

    def create_run(self, session: Session, **kwargs) -> CollectionRun:
        run = self.create(session, **kwargs)
        logger.info(
            "collection_run_recorded",
            run_id=run.id,
            source_id=run.source_id,
            status=run.status,
            item_count=run.item_count
        )
        return run

    def get_recent_runs(self, session: Session, source_id: int, limit: int = 10) -> List[CollectionRun]:
        """
        Get the most recent runs of a source, newest first.

        Args:
            session: Database session
            source_id: Data source id
            limit: Maximum number of runs

        Returns:
            List of CollectionRun instances
        """
        query = (
            select(CollectionRun)
            .where(CollectionRun.source_id == source_id)
            .order_by(desc(CollectionRun.started_at), desc(CollectionRun.id))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())

    def get_runs_since(self, session: Session, since: datetime) -> List[CollectionRun]:
        query = (
            select(CollectionRun)
            .where(CollectionRun.started_at >= since)
            .order_by(desc(CollectionRun.started_at), desc(CollectionRun.id))
        )
        return list(session.execute(query).scalars().all())

    def count_for_source(self, session: Session, source_id: int) -> int:
        query = select(func.count()).select_from(CollectionRun).where(CollectionRun.source_id == source_id)
        return session.execute(query).scalar_one()


class PropertyRepository(BaseRepository):
    """Repository for canonical property listings."""

    # Provenance of the first sighting survives reruns
    FIRST_SEEN_FIELDS = ("source_id", "collected_at")

    def __init__(self):
        super().__init__(Property)

    def get_by_parcel(self, session: Session, parcel_id: str) -> Optional[Property]:
        """
        Get property by natural key.

        Args:
            session: Database session
            parcel_id: Parcel / tax account id

        Returns:
            Property instance or None
        """
        query = select(Property).where(Property.parcel_id == parcel_id)
        return session.execute(query).scalar_one_or_none()

    def upsert_by_natural_key(
        self,
        session: Session,
        data: Dict[str, Any],
        updated_at: datetime,
    ) -> Tuple[Property, bool]:
        """
        Insert or update a property keyed by parcel_id.

        Existing rows are mutated in place and stamped with last_updated;
        new rows are inserted with their provenance.

        Args:
            session: Database session
            data: Flat column values including parcel_id and source_id
            updated_at: Timestamp written to last_updated on updates

        Returns:
            Tuple of (property, created)
        """
        parcel_id = data["parcel_id"]
        existing = self.get_by_parcel(session, parcel_id)

        if existing is not None:
            for key, value in data.items():
                if key in self.FIRST_SEEN_FIELDS:
                    continue
                setattr(existing, key, value)
            existing.last_source_id = data.get("source_id")
            existing.last_updated = updated_at
            session.flush()
            logger.debug("property_updated", parcel_id=parcel_id)
            return existing, False

        instance = Property(**data)
        instance.last_source_id = data.get("source_id")
        session.add(instance)
        session.flush()
        logger.debug("property_inserted", parcel_id=parcel_id)
        return instance, True
