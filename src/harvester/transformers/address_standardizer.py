"""
Address Standardization Transformer

Normalizes scraped property addresses so listings from different county
pages compare equal: upper case, USPS street-type and directional
abbreviations, two-letter state codes and five-digit ZIP codes.
"""
import re
from dataclasses import dataclass
from typing import Optional

from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class NormalizedAddress:
    """
    Normalized address components.

    Attributes:
        street: Street line including unit (e.g. "123 N MAIN ST APT 4")
        city: City name in upper case
        state: Two-letter state code
        zip_code: 5-digit ZIP code
    """
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    @property
    def full_address(self) -> Optional[str]:
        locality = " ".join(p for p in (self.state, self.zip_code) if p)
        parts = [p for p in (self.street, self.city, locality) if p]
        return ", ".join(parts) if parts else None


# "street, city, ST 12345" with an optional ZIP+4 suffix
LOCALITY_PATTERN = re.compile(
    r"^(?P<street>[^,]+),\s*(?P<city>[^,]+),\s*(?P<state>[A-Za-z]{2}|[A-Za-z ]{4,})\.?\s+(?P<zip>\d{5})(?:-\d{4})?\s*$"
)
UNIT_PATTERN = re.compile(r"\s*(?:#|\bAPT\b|\bAPARTMENT\b|\bUNIT\b|\bSUITE\b|\bSTE\b|\bLOT\b)\s*([A-Z0-9\-]+)\s*$")


class AddressStandardizer:
    """
    Standardizes addresses to one comparable format across data sources.
    """

    STREET_TYPES = {
        'ALLEY': 'ALY', 'AVENUE': 'AVE', 'BOULEVARD': 'BLVD', 'CIRCLE': 'CIR',
        'COURT': 'CT', 'COVE': 'CV', 'CROSSING': 'XING', 'DRIVE': 'DR',
        'HIGHWAY': 'HWY', 'LANE': 'LN', 'PARKWAY': 'PKWY', 'PLACE': 'PL',
        'ROAD': 'RD', 'ROUTE': 'RTE', 'STREET': 'ST', 'TERRACE': 'TER',
        'TRAIL': 'TRL', 'POINT': 'PT', 'RIDGE': 'RDG', 'SQUARE': 'SQ',
    }

    DIRECTIONS = {
        'NORTH': 'N', 'SOUTH': 'S', 'EAST': 'E', 'WEST': 'W',
        'NORTHEAST': 'NE', 'NORTHWEST': 'NW', 'SOUTHEAST': 'SE', 'SOUTHWEST': 'SW'
    }

    UNIT_TYPES = {'APARTMENT': 'APT', 'SUITE': 'STE', '#': 'UNIT'}

    STATE_CODES = {
        'ALABAMA': 'AL', 'ALASKA': 'AK', 'ARIZONA': 'AZ', 'ARKANSAS': 'AR',
        'CALIFORNIA': 'CA', 'COLORADO': 'CO', 'CONNECTICUT': 'CT', 'DELAWARE': 'DE',
        'DISTRICT OF COLUMBIA': 'DC', 'FLORIDA': 'FL', 'GEORGIA': 'GA', 'HAWAII': 'HI',
        'IDAHO': 'ID', 'ILLINOIS': 'IL', 'INDIANA': 'IN', 'IOWA': 'IA',
        'KANSAS': 'KS', 'KENTUCKY': 'KY', 'LOUISIANA': 'LA', 'MAINE': 'ME',
        'MARYLAND': 'MD', 'MASSACHUSETTS': 'MA', 'MICHIGAN': 'MI', 'MINNESOTA': 'MN',
        'MISSISSIPPI': 'MS', 'MISSOURI': 'MO', 'MONTANA': 'MT', 'NEBRASKA': 'NE',
        'NEVADA': 'NV', 'NEW HAMPSHIRE': 'NH', 'NEW JERSEY': 'NJ', 'NEW MEXICO': 'NM',
        'NEW YORK': 'NY', 'NORTH CAROLINA': 'NC', 'NORTH DAKOTA': 'ND', 'OHIO': 'OH',
        'OKLAHOMA': 'OK', 'OREGON': 'OR', 'PENNSYLVANIA': 'PA', 'RHODE ISLAND': 'RI',
        'SOUTH CAROLINA': 'SC', 'SOUTH DAKOTA': 'SD', 'TENNESSEE': 'TN', 'TEXAS': 'TX',
        'UTAH': 'UT', 'VERMONT': 'VT', 'VIRGINIA': 'VA', 'WASHINGTON': 'WA',
        'WEST VIRGINIA': 'WV', 'WISCONSIN': 'WI', 'WYOMING': 'WY',
    }

    def standardize(self, address: Optional[str], city: Optional[str] = None,
                    state: Optional[str] = None, zip_code: Optional[str] = None) -> NormalizedAddress:
        """
        Standardize an address line.

        City, state and ZIP are taken from the explicit arguments first and
        otherwise parsed from a "street, city, ST 12345" address line.

        Args:
            address: Raw address line
            city: City name
            state: State name or code
            zip_code: ZIP code

        Returns:
            NormalizedAddress with normalized components
        """
        street = address.strip() if address else None

        if street:
            match = LOCALITY_PATTERN.match(street)
            if match:
                street = match.group("street")
                city = city or match.group("city")
                state = state or match.group("state")
                zip_code = zip_code or match.group("zip")

        result = NormalizedAddress(
            street=self.normalize_street(street) if street else None,
            city=" ".join(city.upper().split()) if city and city.strip() else None,
            state=self.normalize_state(state),
            zip_code=self.normalize_zip(zip_code),
        )
        logger.debug(
            "address_standardized",
            original=(address or "")[:50],
            standardized=(result.full_address or "")[:50]
        )
        return result

    def normalize_street(self, street: str) -> Optional[str]:
        """
        Normalize one street line.

        Returns:
            Upper-case street with abbreviations applied, or None if empty
        """
        text = street.upper()
        text = re.sub(r"[.,]", " ", text)
        text = " ".join(text.split())
        if not text:
            return None

        unit = None
        unit_match = UNIT_PATTERN.search(text)
        if unit_match:
            raw_type = unit_match.group(0).strip().split()[0]
            raw_type = '#' if raw_type.startswith('#') else raw_type
            unit = f"{self.UNIT_TYPES.get(raw_type, raw_type)} {unit_match.group(1)}"
            text = text[:unit_match.start()].strip()

        tokens = text.split()
        # Directionals only as a prefix after the house number or as the final suffix
        if len(tokens) > 2 and tokens[0][0].isdigit() and tokens[1] in self.DIRECTIONS:
            tokens[1] = self.DIRECTIONS[tokens[1]]
        if len(tokens) > 2 and tokens[-1] in self.DIRECTIONS:
            tokens[-1] = self.DIRECTIONS[tokens[-1]]

        type_index = len(tokens) - 1
        if tokens and tokens[-1] in self.DIRECTIONS.values() and len(tokens) > 2:
            type_index -= 1
        if type_index > 0 and tokens[type_index] in self.STREET_TYPES:
            tokens[type_index] = self.STREET_TYPES[tokens[type_index]]

        if unit:
            tokens.append(unit)
        return " ".join(tokens)

    def normalize_state(self, state: Optional[str]) -> Optional[str]:
        """Map a state name or code to its two-letter code."""
        if not state:
            return None
        text = " ".join(state.strip().upper().rstrip(".").split())
        if len(text) == 2 and text.isalpha():
            return text
        return self.STATE_CODES.get(text)

    @staticmethod
    def normalize_zip(zip_code: Optional[str]) -> Optional[str]:
        """
        Normalize ZIP code to 5 digits.

        Args:
            zip_code: Raw ZIP code

        Returns:
            5-digit ZIP code or None
        """
        if not zip_code:
            return None

        digits = re.sub(r'\D', '', str(zip_code))
        if len(digits) >= 5:
            return digits[:5]

        return None
