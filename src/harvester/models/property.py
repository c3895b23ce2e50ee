"""
Property Data Models

Pydantic models for the canonical property record every source is mapped into.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# Flat canonical field names accepted as column-map and label targets.
CANONICAL_FIELDS = frozenset({
    "parcel_id",
    "tax_account_number",
    "owner_name",
    "property_address",
    "city",
    "state",
    "county",
    "zip_code",
    "property_type",
    "property_description",
    "legal_description",
    "land_area",
    "building_area",
    "year_built",
    "zoning",
    "assessed_value",
    "land_value",
    "improvement_value",
    "tax_year",
    "tax_status",
    "tax_due",
    "sale_type",
    "sale_status",
    "sale_amount",
})


class PropertyType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    AGRICULTURAL = "agricultural"
    VACANT_LAND = "vacant_land"
    UNKNOWN = "unknown"


class TaxStatus(str, Enum):
    CURRENT = "current"
    DELINQUENT = "delinquent"
    UNKNOWN = "unknown"


class PropertyDetails(BaseModel):
    land_area: Optional[float] = Field(None, ge=0, description="Land area")
    land_area_unit: Optional[str] = Field(None, description="SQFT or ACRES")
    building_area: Optional[float] = Field(None, ge=0, description="Building area in square feet")
    year_built: Optional[int] = Field(None, description="Year built")
    zoning: Optional[str] = Field(None, description="Zoning code")


class TaxInfo(BaseModel):
    assessed_value: Optional[float] = Field(None, description="Total assessed value")
    land_value: Optional[float] = Field(None, description="Assessed land value")
    improvement_value: Optional[float] = Field(None, description="Assessed improvement value")
    tax_year: Optional[int] = Field(None, description="Tax year the listing belongs to")
    tax_status: TaxStatus = Field(TaxStatus.UNKNOWN, description="Tax payment status")
    tax_due: Optional[float] = Field(None, description="Amount due")


class SaleInfo(BaseModel):
    sale_type: Optional[str] = Field(None, description="Tax sale, auction, ...")
    sale_status: Optional[str] = Field(None, description="Status of the sale")
    sale_amount: Optional[float] = Field(None, description="Sale or minimum bid amount")


class Location(BaseModel):
    latitude: Optional[float] = Field(None, description="WGS84 latitude", ge=-90, le=90)
    longitude: Optional[float] = Field(None, description="WGS84 longitude", ge=-180, le=180)
    formatted_address: Optional[str] = Field(None, description="Address returned by the geocoder")


class RawRecord(BaseModel):
    """
    Untyped field bag scraped from one source row.

    Attributes:
        source_id: Data source the row came from
        row_index: Position of the row in the index table
        fields: Header text -> cell text
    """

    source_id: int
    row_index: int = 0
    fields: Dict[str, Any] = Field(default_factory=dict)


class StandardizedProperty(BaseModel):
    """
    Canonical property listing keyed by parcel_id.

    Provenance fields (raw_data, source_id, collected_at) describe where the
    values came from; processing_notes and possible_duplicate_of are set by
    pipeline steps.
    """

    parcel_id: str = Field(..., min_length=1, description="Natural key")
    tax_account_number: Optional[str] = None
    owner_name: Optional[str] = None
    property_address: Optional[str] = None
    city: Optional[str] = None
    state: str = Field(..., min_length=2, max_length=2)
    county: str = Field(..., min_length=1)
    zip_code: Optional[str] = None
    property_type: PropertyType = PropertyType.UNKNOWN
    legal_description: Optional[str] = None

    property_details: PropertyDetails = Field(default_factory=PropertyDetails)
    tax_info: TaxInfo = Field(default_factory=TaxInfo)
    sale_info: SaleInfo = Field(default_factory=SaleInfo)
    location: Location = Field(default_factory=Location)

    raw_data: Dict[str, Any] = Field(default_factory=dict)
    source_id: int
    collected_at: datetime
    processing_notes: List[str] = Field(default_factory=list)
    possible_duplicate_of: Optional[str] = None

    @field_validator("parcel_id")
    @classmethod
    def strip_parcel(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("parcel_id must not be blank")
        return v

    def to_row(self) -> Dict[str, Any]:
        """Flatten into the column layout used by the properties table."""
        return {
            "parcel_id": self.parcel_id,
            "tax_account_number": self.tax_account_number,
            "owner_name": self.owner_name,
            "property_address": self.property_address,
            "city": self.city,
            "state": self.state,
            "county": self.county,
            "zip_code": self.zip_code,
            "property_type": self.property_type.value,
            "legal_description": self.legal_description,
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "assessed_value": self.tax_info.assessed_value,
            "tax_due": self.tax_info.tax_due,
            "tax_status": self.tax_info.tax_status.value,
            "sale_amount": self.sale_info.sale_amount,
            "property_details": self.property_details.model_dump(mode="json"),
            "tax_info": self.tax_info.model_dump(mode="json"),
            "sale_info": self.sale_info.model_dump(mode="json"),
            "location": self.location.model_dump(mode="json"),
            "raw_data": self.raw_data,
            "processing_notes": list(self.processing_notes),
            "possible_duplicate_of": self.possible_duplicate_of,
            "source_id": self.source_id,
            "collected_at": self.collected_at,
        }
