"""
Transformers Package

Field-level normalization helpers used by the transformation pipeline.
"""
from src.harvester.transformers.address_standardizer import AddressStandardizer, NormalizedAddress
from src.harvester.transformers.column_mapping import ColumnMapper, DEFAULT_ALIASES
from src.harvester.transformers.numeric import parse_currency, parse_number, parse_area

__all__ = [
    "AddressStandardizer",
    "NormalizedAddress",
    "ColumnMapper",
    "DEFAULT_ALIASES",
    "parse_currency",
    "parse_number",
    "parse_area",
]
