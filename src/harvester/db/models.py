"""
SQLAlchemy ORM Models

Tables for configured data sources, the append-only collection run ledger
and the canonical property listings keyed by parcel_id.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String, Integer, Numeric, DateTime, Text, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from src.harvester.db.base import Base, TimestampMixin, JSONType


class DataSource(Base, TimestampMixin):
    """
    Configured collection target.

    Status, last_collected and error_message are written by the run ledger;
    next_scheduled_run by the scheduler.
    """
    __tablename__ = "data_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Display name"
    )
    source_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="county-website, state-records, tax-database, api, pdf"
    )
    url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Index page URL"
    )
    state: Mapped[str] = mapped_column(
        String(2),
        nullable=False,
        comment="State abbreviation"
    )
    county: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="County name"
    )
    collector_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Registered collector id"
    )

    # Schedule
    frequency: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="daily",
        comment="hourly, daily, weekly, monthly, manual"
    )
    day_of_week: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="0=Sunday .. 6=Saturday"
    )
    day_of_month: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="1..31"
    )

    source_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
        comment="Collector options (column map, detail page settings)"
    )

    # Run state
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
        index=True,
        comment="active, inactive, error"
    )
    last_collected: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Finish time of the most recent run"
    )
    next_scheduled_run: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Next run computed by the scheduler"
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Message of the last failed run"
    )

    __table_args__ = (
        CheckConstraint("status IN ('active', 'inactive', 'error')", name="ck_data_sources_status"),
    )

    def __repr__(self) -> str:
        return f"<DataSource(id={self.id}, name={self.name!r}, status={self.status})>"


class CollectionRun(Base):
    """
    Append-only ledger entry, one per execution attempt.

    Rows are never updated after insert.
    """
    __tablename__ = "collection_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("data_sources.id"),
        nullable=False,
        comment="Collected data source"
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the run started"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="success, partial, error"
    )
    trigger: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="manual",
        comment="manual, scheduled, forced"
    )

    # Stats
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_log: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="List of {message, timestamp, error_type, step, record_key, stack}"
    )
    property_ids: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Parcel ids persisted by the run"
    )
    raw_artifact_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_collection_runs_source_started", "source_id", "started_at"),
        CheckConstraint("status IN ('success', 'partial', 'error')", name="ck_collection_runs_status"),
    )

    def __repr__(self) -> str:
        return f"<CollectionRun(id={self.id}, source_id={self.source_id}, status={self.status})>"


class Property(Base, TimestampMixin):
    """
    Canonical property listing.

    One row per parcel_id regardless of how many times sources are collected.
    """
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    parcel_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Natural key (parcel or tax account id)"
    )
    tax_account_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    owner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    property_address: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Standardized property address"
    )
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    county: Mapped[str] = mapped_column(String(100), nullable=False)
    zip_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, comment="5-digit ZIP code")
    property_type: Mapped[str] = mapped_column(String(30), nullable=False, default="unknown")
    legal_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    latitude: Mapped[Optional[float]] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=True)
    assessed_value: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)
    tax_due: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)
    tax_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")
    sale_amount: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)

    property_details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    tax_info: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    sale_info: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    location: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    # Provenance
    raw_data: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Merged raw fields from index and detail pages"
    )
    processing_notes: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    possible_duplicate_of: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("data_sources.id"),
        nullable=False,
        comment="Source that first reported the parcel"
    )
    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="First collection time"
    )
    last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last time a rerun refreshed this row"
    )
    last_source_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Source of the most recent refresh"
    )

    __table_args__ = (
        Index("idx_properties_state_county", "state", "county"),
    )

    def __repr__(self) -> str:
        return f"<Property(parcel_id={self.parcel_id!r}, address={self.property_address!r})>"
