"""
Column Mapping

Maps header-keyed raw rows onto canonical field names. A per-source
column map is consulted first, then the built-in alias lists in priority
order, then values already stored under canonical names (detail-page
enrichment).
"""
import re
from typing import Any, Dict, List, Mapping, Optional

from src.harvester.models.property import CANONICAL_FIELDS

# Canonical field -> header aliases, highest priority first
DEFAULT_ALIASES: Dict[str, List[str]] = {
    "parcel_id": ["Tax Acct#", "Account Number", "Tax Account", "Parcel ID", "Parcel Number", "Parcel", "APN", "PIN"],
    "tax_account_number": ["Tax Acct#", "Account Number", "Tax Account", "Account"],
    "owner_name": ["Owner", "Owner Name", "Property Owner"],
    "property_address": ["Address", "Property Address", "Premises Address", "Situs Address", "Location"],
    "city": ["City"],
    "state": ["State"],
    "county": ["County"],
    "zip_code": ["Zip", "Zip Code", "ZIP Code", "Postal Code"],
    "property_type": ["Property Type", "Type", "Land Use", "Use Code"],
    "property_description": ["Description", "Property Description"],
    "legal_description": ["Legal Description", "Legal"],
    "land_area": ["Land Area", "Lot Size", "Acreage", "Acres"],
    "building_area": ["Building Area", "Living Area", "Square Feet", "Sq Ft"],
    "year_built": ["Year Built"],
    "zoning": ["Zoning"],
    "assessed_value": ["Assessed Value", "Total Assessment", "Assessment"],
    "land_value": ["Land Value"],
    "improvement_value": ["Improvement Value", "Improvements"],
    "tax_year": ["Tax Year"],
    "tax_status": ["Tax Status", "Status"],
    "tax_due": ["Amount Due", "Taxes Due", "Total Due", "Balance Due"],
    "sale_type": ["Sale Type"],
    "sale_status": ["Sale Status"],
    "sale_amount": ["Sale Amount", "Minimum Bid", "Opening Bid", "Amount Due"],
}


def normalize_header(header: str) -> str:
    """Lowercase, collapse whitespace and drop a trailing colon."""
    return re.sub(r"\s+", " ", str(header)).strip().rstrip(":").strip().lower()


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class ColumnMapper:
    """
    Resolves canonical fields from one raw row.

    Args:
        column_map: Explicit header text -> canonical field table
        aliases: Alias lists to fall back on
    """

    def __init__(
        self,
        column_map: Optional[Mapping[str, str]] = None,
        aliases: Optional[Mapping[str, List[str]]] = None,
    ):
        self.column_map = {normalize_header(h): f for h, f in (column_map or {}).items()}
        unknown = sorted(set(self.column_map.values()) - CANONICAL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown canonical fields: {', '.join(unknown)}")
        self.aliases = {
            field: [normalize_header(a) for a in names]
            for field, names in (aliases or DEFAULT_ALIASES).items()
        }

    def map_fields(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Map a raw row onto canonical names.

        Unrecognized headers are ignored and missing fields are simply
        absent from the result.

        Args:
            fields: Header text -> raw value

        Returns:
            Canonical field -> raw value
        """
        by_header = {normalize_header(k): v for k, v in fields.items() if k not in CANONICAL_FIELDS}
        mapped: Dict[str, Any] = {}

        for header, field in self.column_map.items():
            value = by_header.get(header)
            if field not in mapped and _present(value):
                mapped[field] = value

        for field, names in self.aliases.items():
            if field in mapped:
                continue
            for name in names:
                value = by_header.get(name)
                if _present(value):
                    mapped[field] = value
                    break

        for field in CANONICAL_FIELDS:
            if field not in mapped and _present(fields.get(field)):
                mapped[field] = fields[field]

        return mapped
