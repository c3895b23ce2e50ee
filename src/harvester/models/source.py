"""
Data Source Models

Pydantic models describing configured data sources and their schedules.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from src.harvester.models.property import CANONICAL_FIELDS


class Frequency(str, Enum):
    """How often a source should be collected."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MANUAL = "manual"


class SourceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class SourceType(str, Enum):
    COUNTY_WEBSITE = "county-website"
    STATE_RECORDS = "state-records"
    TAX_DATABASE = "tax-database"
    API = "api"
    PDF = "pdf"


class Region(BaseModel):
    """Geographic scope of a source."""

    state: str = Field(..., description="Two-letter state code", min_length=2, max_length=2)
    county: Optional[str] = Field(None, description="County name")

    @field_validator("state")
    @classmethod
    def upper_state(cls, v: str) -> str:
        return v.strip().upper()


class Schedule(BaseModel):
    """
    Collection schedule.

    Attributes:
        frequency: Recurrence of the collection
        day_of_week: 0=Sunday .. 6=Saturday, used by weekly schedules
        day_of_month: 1..31, used by monthly schedules (clamped to month length)
    """

    frequency: Frequency = Field(Frequency.DAILY, description="Collection frequency")
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="0=Sunday .. 6=Saturday")
    day_of_month: Optional[int] = Field(None, ge=1, le=31, description="Day of month")


class DetailPageConfig(BaseModel):
    """
    Phase-2 enrichment settings for a table source.

    The identifier is read from `key_field` of each phase-1 row and split
    into segments: `district` is the first `district_length` characters and
    `account` is the last `account_length` characters.
    """

    url_template: str = Field(..., description="Detail URL with {district}/{account}/{key} placeholders")
    key_field: str = Field("tax_account_number", description="Canonical field holding the identifier")
    district_length: int = Field(2, ge=0)
    account_length: int = Field(6, ge=1)
    labels: Dict[str, str] = Field(default_factory=dict, description="Detail label text -> canonical field")

    @field_validator("labels")
    @classmethod
    def known_label_targets(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(set(v.values()) - CANONICAL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown canonical fields in detail labels: {', '.join(unknown)}")
        return v


class TableSourceOptions(BaseModel):
    """Source metadata understood by the table scrape collector."""

    table_selector: str = "table"
    column_map: Dict[str, str] = Field(default_factory=dict, description="Header text -> canonical field")
    detail: Optional[DetailPageConfig] = None
    field_defaults: Dict[str, str] = Field(
        default_factory=dict, description="Canonical field -> value used when a row has none"
    )
    save_raw: Optional[bool] = None
    version: str = "v1"
    tax_year: Optional[int] = Field(None, ge=1900, le=2100)

    model_config = {"extra": "allow"}

    @field_validator("column_map")
    @classmethod
    def known_column_targets(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(set(v.values()) - CANONICAL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown canonical fields in column_map: {', '.join(unknown)}")
        return {header.strip(): field for header, field in v.items()}

    @field_validator("field_defaults")
    @classmethod
    def known_default_fields(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(set(v) - CANONICAL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown canonical fields in field_defaults: {', '.join(unknown)}")
        return v


class DataSourceConfig(BaseModel):
    """
    Configuration for a new data source.

    Metadata is validated here so a bad column map fails when the source is
    loaded, not halfway through a run.
    """

    name: str = Field(..., min_length=1)
    source_type: SourceType = SourceType.COUNTY_WEBSITE
    url: str = Field(..., min_length=1)
    region: Region
    collector_type: str = Field(..., min_length=1)
    schedule: Schedule = Field(default_factory=Schedule)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    status: SourceStatus = SourceStatus.ACTIVE

    @model_validator(mode="after")
    def check_metadata(self) -> "DataSourceConfig":
        TableSourceOptions.model_validate(self.metadata)
        return self


class DataSourceSnapshot(DataSourceConfig):
    """A persisted data source together with its run state."""

    id: int
    last_collected: Optional[datetime] = None
    next_scheduled_run: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def options(self) -> TableSourceOptions:
        return TableSourceOptions.model_validate(self.metadata)

    def summary(self) -> Dict[str, Any]:
        """Flat view used by CLI listings."""
        return {
            "id": self.id,
            "name": self.name,
            "collector_type": self.collector_type,
            "frequency": self.schedule.frequency.value,
            "status": self.status.value,
            "last_collected": self.last_collected.isoformat() if self.last_collected else None,
            "next_scheduled_run": self.next_scheduled_run.isoformat() if self.next_scheduled_run else None,
            "error_message": self.error_message,
        }
