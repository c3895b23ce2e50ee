"""
Numeric Field Parsing

Lenient parsers for currency, integer and area text scraped from county
pages. Every parser returns None instead of raising when the text cannot
be interpreted.
"""
import re
from typing import Any, Optional, Tuple

from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_ACRE_PATTERN = re.compile(r"\bac(re)?s?\b|\bacreage\b", re.IGNORECASE)


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a number out of free text.

    Currency symbols, thousands separators and units are stripped first.

    Args:
        value: Raw cell value

    Returns:
        Parsed float or None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        return None

    negative = text.startswith("(") and text.endswith(")")
    cleaned = _NON_NUMERIC.sub("", text)
    # A dash is only meaningful as a leading sign
    if "-" in cleaned[1:]:
        cleaned = cleaned[0] + cleaned[1:].replace("-", "")
    if cleaned in ("", "-", ".", "-.") or cleaned.count(".") > 1:
        logger.debug("numeric_parse_failed", value=text[:50])
        return None

    try:
        number = float(cleaned)
    except ValueError:
        logger.debug("numeric_parse_failed", value=text[:50])
        return None
    return -abs(number) if negative else number


def parse_currency(value: Any) -> Optional[float]:
    """Parse a dollar amount such as "$1,234.50"; None when malformed."""
    number = parse_number(value)
    if number is None:
        return None
    return round(number, 2)


def parse_int(value: Any) -> Optional[int]:
    number = parse_number(value)
    if number is None:
        return None
    return int(number)


def parse_year(value: Any, earliest: int = 1600, latest: int = 2100) -> Optional[int]:
    year = parse_int(value)
    if year is None or not earliest <= year <= latest:
        return None
    return year


def parse_area(value: Any) -> Tuple[Optional[float], Optional[str]]:
    """
    Parse an area value and its unit.

    Args:
        value: Text like "1.25 Acres" or "2,400 sq ft"

    Returns:
        Tuple of (value, unit) with unit ACRES or SQFT; (None, None) when
        no number is present
    """
    number = parse_number(value)
    if number is None:
        return None, None
    unit = "ACRES" if _ACRE_PATTERN.search(str(value)) else "SQFT"
    return number, unit
