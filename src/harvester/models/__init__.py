"""
Domain Models

Pydantic models for sources, canonical properties and collection outcomes.
"""
from src.harvester.models.property import (
    CANONICAL_FIELDS,
    PropertyType,
    TaxStatus,
    RawRecord,
    StandardizedProperty,
)
from src.harvester.models.source import (
    Frequency,
    SourceStatus,
    SourceType,
    Region,
    Schedule,
    DataSourceConfig,
    DataSourceSnapshot,
    TableSourceOptions,
)
from src.harvester.models.collection import (
    CollectionResult,
    ValidationResult,
    RunStatus,
    RunTrigger,
    RunStats,
    HealthIssue,
    HealthReport,
    HealthStatus,
    Severity,
)

__all__ = [
    "CANONICAL_FIELDS",
    "PropertyType",
    "TaxStatus",
    "RawRecord",
    "StandardizedProperty",
    "Frequency",
    "SourceStatus",
    "SourceType",
    "Region",
    "Schedule",
    "DataSourceConfig",
    "DataSourceSnapshot",
    "TableSourceOptions",
    "CollectionResult",
    "ValidationResult",
    "RunStatus",
    "RunTrigger",
    "RunStats",
    "HealthIssue",
    "HealthReport",
    "HealthStatus",
    "Severity",
]
