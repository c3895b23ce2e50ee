"""
Keyword classifiers for property type and tax status text.
"""
from typing import Optional

from src.harvester.models.property import PropertyType, TaxStatus

# Checked in order; the first matching group wins
PROPERTY_TYPE_KEYWORDS = [
    (PropertyType.VACANT_LAND, ("vacant", "land only", "unimproved", "lot")),
    (PropertyType.COMMERCIAL, ("commercial", "retail", "office", "store", "restaurant")),
    (PropertyType.INDUSTRIAL, ("industrial", "warehouse", "manufactur")),
    (PropertyType.AGRICULTURAL, ("agricultur", "farm", "timber")),
    (PropertyType.RESIDENTIAL, (
        "residential", "dwelling", "single family", "sfr", "townho", "condo",
        "multi family", "multi-family", "duplex", "house", "home", "apartment",
    )),
]

DELINQUENT_KEYWORDS = ("delinquent", "foreclosure", "tax sale", "unpaid", "lien")
CURRENT_KEYWORDS = ("paid", "current")


def determine_property_type(*texts: Optional[str]) -> PropertyType:
    """
    Classify a property from its type or description text.

    Args:
        texts: Candidate strings, e.g. the type column and the description

    Returns:
        Matching PropertyType, UNKNOWN when nothing matches
    """
    combined = " ".join(t for t in texts if t).lower()
    if not combined:
        return PropertyType.UNKNOWN
    for property_type, keywords in PROPERTY_TYPE_KEYWORDS:
        if any(k in combined for k in keywords):
            return property_type
    if "land" in combined:
        return PropertyType.VACANT_LAND
    return PropertyType.UNKNOWN


def determine_tax_status(status_text: Optional[str], tax_due: Optional[float]) -> TaxStatus:
    text = (status_text or "").lower()
    if any(k in text for k in DELINQUENT_KEYWORDS):
        return TaxStatus.DELINQUENT
    if any(k in text for k in CURRENT_KEYWORDS):
        return TaxStatus.CURRENT
    if tax_due is not None and tax_due > 0:
        return TaxStatus.DELINQUENT
    return TaxStatus.UNKNOWN
