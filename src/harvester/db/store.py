"""
Property Store

Persists standardized properties one short transaction per record so that
concurrent collections only contend on the same parcel_id.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.harvester.db.repository import PropertyRepository
from src.harvester.db.session import SessionFactory, get_db_session, with_retry
from src.harvester.errors import StorageError
from src.harvester.models.property import StandardizedProperty
from src.harvester.utils.logger import get_logger
from src.harvester.utils.timeutils import utcnow

logger = get_logger(__name__)


class PropertyStore:
    """
    Idempotent upsert of canonical properties.

    Two runs racing on one parcel_id: the loser of the insert hits the
    unique constraint, and is retried once as an update. The later write
    wins and no duplicate row is created.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory
        self.repository = PropertyRepository()

    def save(self, record: StandardizedProperty, now: Optional[datetime] = None) -> str:
        """
        Upsert one record.

        Args:
            record: Validated canonical property
            now: Timestamp for last_updated (defaults to current UTC time)

        Returns:
            The parcel_id that was written

        Raises:
            StorageError: When the write fails
        """
        now = now or utcnow()
        row = record.to_row()
        try:
            try:
                return self._upsert(row, now)
            except IntegrityError:
                logger.info("property_upsert_conflict_retry", parcel_id=record.parcel_id)
                return self._upsert(row, now)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to persist parcel {record.parcel_id}: {e}",
                source=record.source_id,
                details={"parcel_id": record.parcel_id},
            ) from e

    @with_retry(max_retries=3, retry_delay=1)
    def _upsert(self, row: dict, now: datetime) -> str:
        with get_db_session(self.session_factory) as session:
            instance, created = self.repository.upsert_by_natural_key(session, row, updated_at=now)
            parcel_id = instance.parcel_id
        logger.debug("property_saved", parcel_id=parcel_id, created=created)
        return parcel_id
