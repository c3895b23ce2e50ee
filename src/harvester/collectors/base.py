"""
Collector Contract

A collector is a plain record of metadata plus two callables:

    validate_source(source) -> ValidationResult   (no side effects)
    execute(source) -> CollectionResult           (never raises for run failures)

Definitions are registered by id in a CollectorRegistry and looked up by a
source's collector_type.
"""
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from src.harvester.errors import DuplicateCollectorError, build_error_entry
from src.harvester.models.collection import CollectionResult, ValidationResult
from src.harvester.models.source import DataSourceSnapshot, Region, SourceType
from src.harvester.utils.logger import get_logger
from src.harvester.utils.timeutils import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class CollectorDefinition:
    """
    Registered collector.

    Attributes:
        id: Key matched against DataSource.collector_type
        name: Human readable name
        description: What the collector gathers
        supported_source_types: Source types the collector accepts
        validate_source: Structural and liveness checks for a source
        execute: Runs one collection
    """
    id: str
    name: str
    description: str
    supported_source_types: Sequence[SourceType]
    validate_source: Callable[[DataSourceSnapshot], ValidationResult]
    execute: Callable[[DataSourceSnapshot], CollectionResult]

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "supported_source_types": [t.value for t in self.supported_source_types],
        }


class CollectorRegistry:
    """Lookup table of collector definitions keyed by id."""

    def __init__(self):
        self._collectors: Dict[str, CollectorDefinition] = {}
        self._lock = threading.Lock()

    def register(self, definition: CollectorDefinition) -> None:
        """
        Register a collector.

        Raises:
            DuplicateCollectorError: If the id is already taken; the existing
                definition is kept
        """
        with self._lock:
            if definition.id in self._collectors:
                raise DuplicateCollectorError(f"Collector with ID {definition.id} is already registered")
            self._collectors[definition.id] = definition
        logger.info("collector_registered", collector_id=definition.id, name=definition.name)

    def get(self, collector_id: str) -> Optional[CollectorDefinition]:
        return self._collectors.get(collector_id)

    def list(self) -> List[CollectorDefinition]:
        with self._lock:
            return list(self._collectors.values())

    def __contains__(self, collector_id: str) -> bool:
        return collector_id in self._collectors

    def __len__(self) -> int:
        return len(self._collectors)


def check_source_structure(
    collector_id: str,
    supported_source_types: Sequence[SourceType],
    source: DataSourceSnapshot,
    required_region: Optional[Region] = None,
) -> ValidationResult:
    """
    Structural checks shared by every collector.

    Returns:
        ValidationResult with the first problem found
    """
    if source.collector_type != collector_id:
        return ValidationResult(
            valid=False,
            message=f"Source uses collector '{source.collector_type}', not '{collector_id}'",
        )
    if source.source_type not in supported_source_types:
        return ValidationResult(
            valid=False,
            message=f"Source type '{source.source_type.value}' is not supported by {collector_id}",
        )
    if not source.url:
        return ValidationResult(valid=False, message="Source URL is required")
    if not source.region.state:
        return ValidationResult(valid=False, message="Source region must include a state")

    if required_region is not None:
        if source.region.state != required_region.state:
            return ValidationResult(
                valid=False,
                message=f"State must be {required_region.state} for {collector_id}",
            )
        if required_region.county and source.region.county != required_region.county:
            return ValidationResult(
                valid=False,
                message=f"County must be {required_region.county} for {collector_id}",
            )
    return ValidationResult(valid=True)


def failed_result(source_id: int, message: str, exc: Optional[BaseException] = None) -> CollectionResult:
    """Build the CollectionResult for a source-level failure."""
    errors = [build_error_entry(exc)] if exc is not None else []
    return CollectionResult(
        source_id=source_id,
        timestamp=utcnow(),
        success=False,
        message=message,
        errors=errors,
    )
