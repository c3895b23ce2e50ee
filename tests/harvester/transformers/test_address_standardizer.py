"""
Unit tests for address_standardizer module
"""
import pytest

from src.harvester.transformers.address_standardizer import AddressStandardizer, NormalizedAddress


@pytest.fixture
def standardizer():
    return AddressStandardizer()


class TestAddressStandardizer:
    """Tests for AddressStandardizer class"""

    def test_standardize_simple_address(self, standardizer):
        result = standardizer.standardize("123 Main Street", city="Orlando", state="FL", zip_code="32801")

        assert result.street == "123 MAIN ST"
        assert result.city == "ORLANDO"
        assert result.state == "FL"
        assert result.zip_code == "32801"
        assert result.full_address == "123 MAIN ST, ORLANDO, FL 32801"

    def test_directional_prefix(self, standardizer):
        assert standardizer.normalize_street("456 North Oak Avenue") == "456 N OAK AVE"

    def test_directional_suffix(self, standardizer):
        assert standardizer.normalize_street("100 Main Street West") == "100 MAIN ST W"

    @pytest.mark.parametrize("raw,expected", [
        ("789 Elm Street APT 4B", "789 ELM ST APT 4B"),
        ("12 Harbor Rd Suite 200", "12 HARBOR RD STE 200"),
        ("5 Bay Drive #7", "5 BAY DR UNIT 7"),
    ])
    def test_units(self, standardizer, raw, expected):
        assert standardizer.normalize_street(raw) == expected

    def test_punctuation_and_spacing(self, standardizer):
        assert standardizer.normalize_street("  22  Main   St.  ") == "22 MAIN ST"

    def test_locality_parsed_from_address_line(self, standardizer):
        result = standardizer.standardize("22 Main Street, Leonardtown, Maryland 20650-1234")

        assert result == NormalizedAddress(street="22 MAIN ST", city="LEONARDTOWN", state="MD", zip_code="20650")

    def test_explicit_components_win(self, standardizer):
        result = standardizer.standardize("22 Main Street, Leonardtown, MD 20650", city="Hollywood")

        assert result.city == "HOLLYWOOD"
        assert result.zip_code == "20650"

    def test_empty_address(self, standardizer):
        result = standardizer.standardize(None, state="md")

        assert result.street is None
        assert result.state == "MD"
        assert result.full_address == "MD"

    @pytest.mark.parametrize("raw,expected", [
        ("Maryland", "MD"),
        ("district of columbia", "DC"),
        ("Texas.", "TX"),
        ("Narnia", None),
        (None, None),
    ])
    def test_normalize_state(self, standardizer, raw, expected):
        assert standardizer.normalize_state(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("20650", "20650"),
        ("20650-1234", "20650"),
        ("2065", None),
        ("", None),
    ])
    def test_normalize_zip(self, standardizer, raw, expected):
        assert standardizer.normalize_zip(raw) == expected
