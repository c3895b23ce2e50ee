"""
Tests for the two-phase table scrape collector.

Network access is replaced by FakeFetcher; properties go to a temporary
SQLite database.
"""
import itertools
import json
from pathlib import Path

import pytest

from conftest import INDEX_URL, LISTING_HEADERS, LISTING_ROWS, FakeFetcher, detail_html, table_html, utc
from src.harvester.collectors.table_scraper import (
    SDAT_DETAIL_URL,
    TableScrapeCollector,
    build_default_collectors,
    build_detail_url,
)
from src.harvester.db.models import Property
from src.harvester.db.session import get_db_session
from src.harvester.db.store import PropertyStore
from src.harvester.errors import ParsingError
from src.harvester.models.source import DataSourceSnapshot, DetailPageConfig, Region, SourceType
from src.harvester.pipelines.transformation import TransformationPipeline

STARTED = utc(2024, 3, 4, 10)


def _snapshot(**overrides) -> DataSourceSnapshot:
    values = dict(
        id=1,
        name="Test County Tax Sale",
        source_type=SourceType.COUNTY_WEBSITE,
        url=INDEX_URL,
        region=Region(state="MD", county="St. Mary's"),
        collector_type="county-tax-sale",
        metadata={},
    )
    values.update(overrides)
    return DataSourceSnapshot(**values)


def _stored(session_factory):
    with get_db_session(session_factory) as session:
        return {p.parcel_id: p for p in session.query(Property).all()}


@pytest.fixture
def make_collector(session_factory, tmp_path):
    def factory(fetcher, **kwargs):
        kwargs.setdefault("save_raw", False)
        return TableScrapeCollector(
            fetcher=fetcher,
            pipeline=TransformationPipeline.default(),
            store=PropertyStore(session_factory),
            raw_data_dir=str(tmp_path / "raw"),
            detail_delay_seconds=0,
            sleep=lambda seconds: None,
            clock=lambda: STARTED,
            **kwargs,
        )
    return factory


def _sdat_pages(values_by_account):
    detail = DetailPageConfig(url_template=SDAT_DETAIL_URL)
    return {build_detail_url(detail, account): detail_html(values) for account, values in values_by_account.items()}


class TestBuildDetailUrl:
    """Tests for detail URL construction."""

    def test_splits_district_and_account(self):
        detail = DetailPageConfig(url_template="https://x.test/{district}/{account}/{key}")

        assert build_detail_url(detail, "01-123456") == "https://x.test/01/123456/01123456"

    def test_too_short_identifier(self):
        detail = DetailPageConfig(url_template="https://x.test/{district}/{account}")

        with pytest.raises(ParsingError):
            build_detail_url(detail, "1")


class TestTableScrapeCollector:
    """Tests for TableScrapeCollector.execute."""

    def test_collects_every_row(self, make_collector, fake_fetcher, session_factory):
        result = make_collector(fake_fetcher).execute(_snapshot())

        assert result.success is True
        assert result.item_count == 3
        assert result.saved_ids == ["01-123456", "02-654321", "03-111222"]
        assert result.errors == []

        stored = _stored(session_factory)
        assert stored["01-123456"].tax_due == 1234.5
        assert stored["01-123456"].property_address == "22 MAIN ST"
        assert stored["01-123456"].city == "LEONARDTOWN"
        assert stored["02-654321"].property_type == "vacant_land"
        assert stored["03-111222"].county == "St. Mary's"

    def test_malformed_currency_becomes_none(self, make_collector, session_factory):
        rows = [list(r) for r in LISTING_ROWS]
        rows[1][3] = "N/A"
        fetcher = FakeFetcher({INDEX_URL: table_html(LISTING_HEADERS, rows)})

        result = make_collector(fetcher).execute(_snapshot())

        assert result.success is True
        assert len(result.saved_ids) == 3
        stored = _stored(session_factory)["02-654321"]
        assert stored.tax_due is None
        assert any("tax_due" in note for note in stored.processing_notes)

    def test_row_without_identifier_is_isolated(self, make_collector, session_factory):
        rows = [list(r) for r in LISTING_ROWS]
        rows[1][0] = ""
        fetcher = FakeFetcher({INDEX_URL: table_html(LISTING_HEADERS, rows)})

        result = make_collector(fetcher).execute(_snapshot())

        assert result.success is True
        assert result.item_count == 3
        assert result.saved_ids == ["01-123456", "03-111222"]
        assert len(result.errors) == 1
        assert result.errors[0]["record_key"] == "row:1"
        assert result.errors[0]["error_type"] == "VALIDATION_ERROR"
        assert result.errors[0]["step"] == "standardize"

    def test_rerun_is_idempotent(self, make_collector, fake_fetcher, session_factory):
        collector = make_collector(fake_fetcher)

        first = collector.execute(_snapshot())
        second = collector.execute(_snapshot())

        assert first.saved_ids == second.saved_ids
        assert len(_stored(session_factory)) == 3

    def test_empty_table_fails(self, make_collector):
        fetcher = FakeFetcher({INDEX_URL: table_html(LISTING_HEADERS, [])})

        result = make_collector(fetcher).execute(_snapshot())

        assert result.success is False
        assert result.message == "No data found in the table"

    def test_unreachable_index_fails(self, make_collector):
        result = make_collector(FakeFetcher({})).execute(_snapshot())

        assert result.success is False
        assert result.saved_ids == []
        assert result.errors[0]["error_type"] == "CONNECTION_ERROR"

    def test_missing_table_fails_with_parsing_error(self, make_collector):
        fetcher = FakeFetcher({INDEX_URL: "<html><body>Maintenance</body></html>"})

        result = make_collector(fetcher).execute(_snapshot())

        assert result.success is False
        assert result.errors[0]["error_type"] == "PARSING_ERROR"

    def test_column_map_from_metadata(self, make_collector, session_factory):
        fetcher = FakeFetcher({INDEX_URL: table_html(["Acct", "Taxpayer", "Due"], [["77-000001", "LEE ANN", "$10.00"]])})
        source = _snapshot(metadata={"column_map": {"Acct": "parcel_id", "Taxpayer": "owner_name", "Due": "tax_due"}})

        result = make_collector(fetcher).execute(source)

        assert result.saved_ids == ["77-000001"]
        stored = _stored(session_factory)["77-000001"]
        assert stored.owner_name == "LEE ANN"
        assert stored.tax_due == 10.0

    def test_saves_raw_artifact(self, make_collector, fake_fetcher, tmp_path):
        result = make_collector(fake_fetcher, save_raw=True).execute(_snapshot())

        expected = tmp_path / "raw" / "MD" / "St_Mary_s" / "2024" / "MD_St_Mary_s_2024_03042024_v1.json"
        assert result.raw_artifact_path == str(expected)
        rows = json.loads(Path(result.raw_artifact_path).read_text())
        assert len(rows) == 3
        assert rows[0]["Tax Acct#"] == "01-123456"


class TestDetailEnrichment:
    """Tests for phase-two detail page enrichment."""

    @pytest.fixture
    def stmarys(self, make_collector):
        def factory(fetcher, **kwargs):
            collectors = build_default_collectors(fetcher=fetcher)
            preset = next(c for c in collectors if c.collector_id == "stmarys-county-collector")
            return make_collector(
                fetcher,
                collector_id=preset.collector_id,
                defaults=preset.defaults,
                required_region=preset.required_region,
                **kwargs,
            )
        return factory

    def _source(self):
        return _snapshot(collector_type="stmarys-county-collector")

    def test_detail_values_merged(self, stmarys, listing_page, session_factory):
        pages = {INDEX_URL: listing_page}
        pages.update(_sdat_pages({
            "01-123456": {"Year Built": "1978", "Land Area": "1.5 acres", "Total": "$150,000", "Zoning": "RL"},
            "02-654321": {"Zoning": "AG"},
            "03-111222": {"Year Built": "2001"},
        }))
        fetcher = FakeFetcher(pages)

        result = stmarys(fetcher).execute(self._source())

        assert result.success is True
        assert result.errors == []
        assert len(fetcher.requests) == 4
        stored = _stored(session_factory)["01-123456"]
        assert stored.assessed_value == 150000.0
        assert stored.property_details["year_built"] == 1978
        assert stored.property_details["land_area"] == 1.5
        assert stored.property_details["land_area_unit"] == "ACRES"
        assert stored.property_details["zoning"] == "RL"

    def test_failed_detail_keeps_row(self, stmarys, listing_page, session_factory):
        pages = {INDEX_URL: listing_page}
        pages.update(_sdat_pages({"01-123456": {"Zoning": "RL"}, "03-111222": {"Zoning": "C1"}}))

        result = stmarys(FakeFetcher(pages)).execute(self._source())

        assert result.success is True
        assert len(result.saved_ids) == 3
        assert len(result.errors) == 1
        assert result.errors[0]["record_key"] == "02-654321"
        assert result.errors[0]["error_type"] == "CONNECTION_ERROR"
        assert _stored(session_factory)["02-654321"].property_details["zoning"] is None

    def test_delay_between_detail_fetches(self, stmarys, listing_page):
        pages = {INDEX_URL: listing_page}
        pages.update(_sdat_pages({"01-123456": {}, "02-654321": {}, "03-111222": {}}))
        delays = []

        collector = stmarys(FakeFetcher(pages))
        collector.detail_delay_seconds = 0.5
        collector._sleep = delays.append
        collector.execute(self._source())

        assert delays == [0.5, 0.5]

    def test_run_budget_keeps_remaining_rows_unenriched(self, stmarys, listing_page, session_factory):
        pages = {INDEX_URL: listing_page}
        pages.update(_sdat_pages({"01-123456": {"Zoning": "RL"}, "02-654321": {}, "03-111222": {}}))
        fetcher = FakeFetcher(pages)
        ticks = itertools.count(0, 10)

        collector = stmarys(fetcher, run_timeout_seconds=15, monotonic=lambda: next(ticks))
        result = collector.execute(self._source())

        assert result.success is True
        assert len(result.saved_ids) == 3
        assert len(fetcher.requests) == 2
        assert [e["error_type"] for e in result.errors] == ["TIMEOUT_ERROR"]

    def test_unexpected_detail_error_keeps_row(self, stmarys, listing_page, session_factory):
        pages = {INDEX_URL: listing_page}
        pages.update(_sdat_pages({"01-123456": {"Zoning": "RL"}, "03-111222": {"Zoning": "C1"}}))
        detail = DetailPageConfig(url_template=SDAT_DETAIL_URL)
        pages[build_detail_url(detail, "02-654321")] = TimeoutError("read timed out")

        result = stmarys(FakeFetcher(pages)).execute(self._source())

        assert result.success is True
        assert len(result.saved_ids) == 3
        assert len(result.errors) == 1
        assert result.errors[0]["step"] == "enrich"
        assert result.errors[0]["record_key"] == "02-654321"
        assert _stored(session_factory)["03-111222"].property_details["zoning"] == "C1"

    def test_sale_fields_defaulted(self, stmarys, listing_page, session_factory):
        pages = {INDEX_URL: listing_page}
        pages.update(_sdat_pages({"01-123456": {}, "02-654321": {}, "03-111222": {}}))

        stmarys(FakeFetcher(pages)).execute(self._source())

        stored = _stored(session_factory)
        assert len(stored) == 3
        for prop in stored.values():
            assert prop.sale_info["sale_type"] == "Tax Lien"
            assert prop.sale_info["sale_status"] == "Pending"

    def test_validate_requires_region(self, stmarys, fake_fetcher):
        source = _snapshot(collector_type="stmarys-county-collector", region=Region(state="MD", county="Calvert"))

        result = stmarys(fake_fetcher).validate_source(source)

        assert result.valid is False
        assert "St. Mary's" in result.message


class TestValidateSource:
    """Tests for TableScrapeCollector.validate_source."""

    def test_valid_source(self, make_collector, fake_fetcher):
        assert make_collector(fake_fetcher).validate_source(_snapshot()).valid is True

    def test_unreachable_url(self, make_collector):
        result = make_collector(FakeFetcher({}, reachable=False)).validate_source(_snapshot())

        assert result.valid is False
        assert result.message == "URL returned status 503"

    def test_unsupported_source_type(self, make_collector, fake_fetcher):
        result = make_collector(fake_fetcher).validate_source(_snapshot(source_type=SourceType.PDF))

        assert result.valid is False

    def test_bad_options(self, make_collector, fake_fetcher):
        collector = make_collector(fake_fetcher, defaults={"tax_year": 1200})

        result = collector.validate_source(_snapshot())

        assert result.valid is False
        assert result.message.startswith("Invalid collector options")

    def test_unknown_default_field(self, make_collector, fake_fetcher):
        collector = make_collector(fake_fetcher, defaults={"field_defaults": {"bogus": "x"}})

        result = collector.validate_source(_snapshot())

        assert result.valid is False
        assert "bogus" in result.message
