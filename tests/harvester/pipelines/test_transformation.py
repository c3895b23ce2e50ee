"""
Tests for the transformation pipeline and its steps.
"""
from unittest.mock import MagicMock

import pytest
import requests

from conftest import utc
from src.harvester.errors import SourceConnectionError
from src.harvester.models.property import PropertyType, RawRecord, TaxStatus
from src.harvester.pipelines.geocoding import GeocodingResult, NominatimGeocoder
from src.harvester.pipelines.transformation import (
    MemoryErrorSink,
    SourceContext,
    TransformationPipeline,
    TransformationStep,
)


def _context(**overrides) -> SourceContext:
    values = dict(
        source_id=1,
        source_name="Test County",
        state="MD",
        county="St. Mary's",
        collected_at=utc(2024, 3, 4, 10),
        tax_year=2024,
    )
    values.update(overrides)
    return SourceContext(**values)


def _raw(index=0, **fields) -> RawRecord:
    base = {
        "Tax Acct#": "01-123456",
        "Owner": " SMITH   JOHN ",
        "Property Address": "22 Main Street, Leonardtown, MD 20650",
        "Amount Due": "$1,234.50",
        "Property Description": "Single family dwelling",
    }
    base.update(fields)
    return RawRecord(source_id=1, row_index=index, fields=base)


class TestTransform:
    """Tests for the default step chain."""

    def test_standardized_record(self):
        record = TransformationPipeline.default().transform(_raw(), _context())

        assert record.parcel_id == "01-123456"
        assert record.owner_name == "SMITH JOHN"
        assert record.property_address == "22 MAIN ST"
        assert record.city == "LEONARDTOWN"
        assert record.state == "MD"
        assert record.zip_code == "20650"
        assert record.county == "St. Mary's"
        assert record.property_type == PropertyType.RESIDENTIAL
        assert record.tax_info.tax_due == 1234.5
        assert record.tax_info.tax_status == TaxStatus.DELINQUENT
        assert record.tax_info.tax_year == 2024
        assert record.collected_at == utc(2024, 3, 4, 10)
        assert record.raw_data["Tax Acct#"] == "01-123456"

    def test_deterministic_for_same_context(self):
        pipeline = TransformationPipeline.default()

        first = pipeline.transform(_raw(), _context())
        second = pipeline.transform(_raw(), _context())

        assert first == second

    def test_unparseable_money_noted(self):
        record = TransformationPipeline.default().transform(_raw(**{"Amount Due": "see office"}), _context())

        assert record.tax_info.tax_due is None
        assert record.processing_notes == ["unparseable tax_due: see office", "unparseable sale_amount: see office"]

    def test_implausible_year_rejected(self):
        sink = MemoryErrorSink()

        results = TransformationPipeline.default().run([_raw(**{"Year Built": "2090"})], _context(), sink)

        assert results == []
        assert sink.errors[0].step == "validate"
        assert "2090" in sink.errors[0].message

    def test_missing_state_rejected(self):
        sink = MemoryErrorSink()

        TransformationPipeline.default().run([_raw()], _context(state="", county=None), sink)

        assert sink.errors[0].step == "validate"
        assert sink.errors[0].error_type == "VALIDATION_ERROR"


class TestRun:
    """Tests for batch isolation."""

    def test_bad_record_does_not_stop_batch(self):
        sink = MemoryErrorSink()
        raws = [
            _raw(0),
            _raw(1, **{"Tax Acct#": ""}),
            _raw(2, **{"Tax Acct#": "03-111222", "Property Address": "9 Point Road"}),
        ]

        results = TransformationPipeline.default().run(raws, _context(), sink)

        assert [r.parcel_id for r in results] == ["01-123456", "03-111222"]
        assert len(sink) == 1
        entry = sink.entries()[0]
        assert entry["record_key"] == "row:1"
        assert entry["step"] == "standardize"

    def test_unexpected_exception_tagged_with_step(self):
        def broken(record, context):
            raise KeyError("boom")

        pipeline = TransformationPipeline.default()
        pipeline.register_step(TransformationStep("enrich_owner", broken), before="validate")
        sink = MemoryErrorSink()

        pipeline.run([_raw()], _context(), sink)

        assert sink.errors[0].step == "enrich_owner"
        assert sink.errors[0].record_key == "01-123456"
        assert sink.errors[0].error_type == "TRANSFORMATION_ERROR"


class TestRegisterStep:
    """Tests for step registration."""

    def test_order(self):
        pipeline = TransformationPipeline.default()
        pipeline.register_step(TransformationStep("custom", lambda r, c: r), before="geocode")

        assert pipeline.step_names == [
            "standardize", "normalize_address", "custom", "geocode", "fuzzy_dedupe", "validate",
        ]

    def test_duplicate_name_rejected(self):
        pipeline = TransformationPipeline.default()

        with pytest.raises(ValueError):
            pipeline.register_step(TransformationStep("validate", lambda r, c: r))

    def test_unknown_anchor_rejected(self):
        with pytest.raises(ValueError):
            TransformationPipeline().register_step(TransformationStep("x", lambda r, c: r), before="missing")


class TestGeocodeStep:
    """Tests for the geocode step."""

    def test_coordinates_added(self):
        geocoder = MagicMock()
        geocoder.geocode.return_value = GeocodingResult(38.29, -76.63, "22 Main St, Leonardtown")

        record = TransformationPipeline.default(geocoder=geocoder).transform(_raw(), _context())

        geocoder.geocode.assert_called_once_with("22 MAIN ST, LEONARDTOWN, MD 20650")
        assert record.location.latitude == 38.29
        assert record.location.longitude == -76.63

    def test_failure_keeps_record(self):
        geocoder = MagicMock()
        geocoder.geocode.side_effect = SourceConnectionError("Geocoding request failed: timeout")
        sink = MemoryErrorSink()

        results = TransformationPipeline.default(geocoder=geocoder).run([_raw()], _context(), sink)

        assert len(results) == 1
        assert results[0].location.latitude is None
        assert "geocoding failed" in results[0].processing_notes
        assert len(sink) == 0

    def test_unexpected_geocoder_error_keeps_record(self):
        geocoder = MagicMock()
        geocoder.geocode.side_effect = RuntimeError("cache corrupted")
        sink = MemoryErrorSink()

        results = TransformationPipeline.default(geocoder=geocoder).run([_raw()], _context(), sink)

        assert len(results) == 1
        assert "geocoding failed" in results[0].processing_notes
        assert len(sink) == 0

    def test_malformed_reply_keeps_record(self):
        session = MagicMock()
        session.get.return_value.json.return_value = [{"display_name": "Leonardtown"}]
        geocoder = NominatimGeocoder(base_url="https://geo.test/search", session=session)
        sink = MemoryErrorSink()

        results = TransformationPipeline.default(geocoder=geocoder).run([_raw()], _context(), sink)

        assert len(results) == 1
        assert results[0].location.latitude is None
        assert "geocoding failed" in results[0].processing_notes
        assert len(sink) == 0


class TestFuzzyDedupe:
    """Tests for possible duplicate annotation."""

    def test_similar_address_annotated(self):
        sink = MemoryErrorSink()
        raws = [
            _raw(0),
            _raw(1, **{"Tax Acct#": "01-123457", "Property Address": "22 Main St., Leonardtown, MD 20650"}),
        ]

        results = TransformationPipeline.default().run(raws, _context(), sink)

        assert len(results) == 2
        assert results[0].possible_duplicate_of is None
        assert results[1].possible_duplicate_of == "01-123456"

    def test_same_parcel_not_flagged(self):
        results = TransformationPipeline.default().run([_raw(0), _raw(1)], _context(), MemoryErrorSink())

        assert [r.possible_duplicate_of for r in results] == [None, None]

    def test_rejected_record_not_matched(self):
        sink = MemoryErrorSink()
        raws = [
            _raw(0, **{"Year Built": "2090"}),
            _raw(1, **{"Tax Acct#": "01-123457", "Property Address": "22 Main St., Leonardtown, MD 20650"}),
        ]

        results = TransformationPipeline.default().run(raws, _context(), sink)

        assert [r.parcel_id for r in results] == ["01-123457"]
        assert results[0].possible_duplicate_of is None
        assert sink.errors[0].step == "validate"


class TestNominatimGeocoder:
    """Tests for NominatimGeocoder with a mocked HTTP session."""

    def _session(self, payload):
        session = MagicMock()
        response = MagicMock()
        response.json.return_value = payload
        session.get.return_value = response
        return session

    def test_match_cached(self):
        session = self._session([{"lat": "38.29", "lon": "-76.63", "display_name": "Leonardtown"}])
        geocoder = NominatimGeocoder(base_url="https://geo.test/search", session=session)

        first = geocoder.geocode("22 MAIN ST, LEONARDTOWN, MD 20650")
        second = geocoder.geocode("22 main st, leonardtown, md 20650")

        assert first == second == GeocodingResult(38.29, -76.63, "Leonardtown")
        assert session.get.call_count == 1

    def test_no_match(self):
        geocoder = NominatimGeocoder(base_url="https://geo.test/search", session=self._session([]))

        assert geocoder.geocode("nowhere") is None

    def test_cache_evicts_oldest(self):
        session = self._session([])
        geocoder = NominatimGeocoder(base_url="https://geo.test/search", cache_size=1, session=session)

        geocoder.geocode("a")
        geocoder.geocode("b")
        geocoder.geocode("a")

        assert session.get.call_count == 3

    def test_request_failure(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        geocoder = NominatimGeocoder(base_url="https://geo.test/search", session=session)

        with pytest.raises(SourceConnectionError):
            geocoder.geocode("22 MAIN ST")

    def test_reply_without_coordinates(self):
        session = self._session([{"display_name": "Leonardtown"}])
        geocoder = NominatimGeocoder(base_url="https://geo.test/search", session=session)

        with pytest.raises(SourceConnectionError, match="Malformed geocoding response"):
            geocoder.geocode("22 MAIN ST")
        with pytest.raises(SourceConnectionError):
            geocoder.geocode("22 MAIN ST")

        assert session.get.call_count == 2
