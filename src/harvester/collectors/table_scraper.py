"""
Table Scrape Collector

Collects tax sale listings published as an HTML table:

1. Fetch the index page and parse the listing table into header-keyed rows.
2. Optionally save the raw rows as a JSON artifact.
3. Optionally fetch a detail page per row and merge labelled values.
4. Transform rows through the pipeline and upsert them by parcel_id.

Row-level problems (detail fetch failures, rejected rows, failed writes)
are logged and recorded without failing the run.
"""
import json
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from config.settings import settings
from src.harvester.collectors.base import CollectorDefinition, check_source_structure, failed_result
from src.harvester.collectors.http import Fetcher, HttpFetcher
from src.harvester.collectors.markup import MarkupDocument, parse_table
from src.harvester.db.store import PropertyStore
from src.harvester.errors import (
    CollectionError,
    ErrorType,
    ParsingError,
    SourceValidationError,
    StorageError,
    build_error_entry,
)
from src.harvester.models.collection import CollectionResult, ValidationResult
from src.harvester.models.property import RawRecord
from src.harvester.models.source import (
    DataSourceSnapshot,
    DetailPageConfig,
    Region,
    SourceType,
    TableSourceOptions,
)
from src.harvester.pipelines.transformation import (
    MemoryErrorSink,
    RecordError,
    SourceContext,
    TransformationPipeline,
)
from src.harvester.transformers.column_mapping import ColumnMapper
from src.harvester.utils.logger import bound_source_context, get_logger
from src.harvester.utils.timeutils import utcnow

logger = get_logger(__name__)

SDAT_DETAIL_URL = (
    "https://sdat.dat.maryland.gov/RealProperty/Pages/viewdetails.aspx"
    "?County=19&SearchType=ACCT&District={district}&AccountNumber={account}"
)

SDAT_LABELS = {
    "Premises Address": "property_address",
    "Owner Name": "owner_name",
    "Legal Description": "legal_description",
    "Land": "land_value",
    "Improvements": "improvement_value",
    "Total": "assessed_value",
    "Year Built": "year_built",
    "Land Area": "land_area",
    "Zoning": "zoning",
}


def build_detail_url(detail: DetailPageConfig, key: str) -> str:
    """
    Build a detail page URL from a row identifier.

    The identifier is compacted to its letters and digits; `district` is
    its first district_length characters and `account` its last
    account_length characters.
    """
    compact = re.sub(r"[^0-9A-Za-z]", "", key)
    if len(compact) < detail.district_length + 1:
        raise ParsingError(f"Identifier '{key}' is too short to split", details={"key": key})
    return detail.url_template.format(
        district=compact[:detail.district_length],
        account=compact[-detail.account_length:],
        key=compact,
    )


def _path_segment(text: str) -> str:
    return re.sub(r"[^0-9A-Za-z]+", "_", text).strip("_") or "unknown"


class TableScrapeCollector:
    """
    Two-phase HTML table collector.

    Source metadata (validated as TableSourceOptions) selects the table,
    maps headers to canonical fields and configures detail enrichment.
    Collaborators are injectable for testing.

    Args:
        collector_id: Registry key
        name: Human readable name
        description: What the collector gathers
        supported_source_types: Accepted source types
        defaults: Metadata applied under each source's own metadata
        required_region: Region every source must match
        fetcher: Network collaborator (defaults to HttpFetcher)
        pipeline: Transformation pipeline (defaults to the standard steps)
        store: Property store (defaults to the settings database)
        sleep: Blocking delay between detail fetches
        clock: Wall clock for timestamps
        monotonic: Clock for the run time budget
    """

    def __init__(
        self,
        collector_id: str = "county-tax-sale",
        name: str = "County Tax Sale Table Collector",
        description: str = "Collects tax sale listings from a county web page table",
        supported_source_types: Sequence[SourceType] = (SourceType.COUNTY_WEBSITE, SourceType.TAX_DATABASE),
        defaults: Optional[Dict[str, Any]] = None,
        required_region: Optional[Region] = None,
        fetcher: Optional[Fetcher] = None,
        pipeline: Optional[TransformationPipeline] = None,
        store: Optional[PropertyStore] = None,
        detail_delay_seconds: Optional[float] = None,
        run_timeout_seconds: Optional[float] = None,
        raw_data_dir: Optional[str] = None,
        save_raw: Optional[bool] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.collector_id = collector_id
        self.name = name
        self.description = description
        self.supported_source_types = tuple(supported_source_types)
        self.defaults = defaults or {}
        self.required_region = required_region
        self.fetcher = fetcher or HttpFetcher()
        self.pipeline = pipeline or TransformationPipeline.default()
        self.store = store or PropertyStore()
        self.detail_delay_seconds = (
            detail_delay_seconds if detail_delay_seconds is not None else settings.detail_fetch_delay_seconds
        )
        self.run_timeout_seconds = (
            run_timeout_seconds if run_timeout_seconds is not None else settings.collection_run_timeout_seconds
        )
        self.raw_data_dir = Path(raw_data_dir or settings.raw_data_dir)
        self.save_raw = save_raw if save_raw is not None else settings.save_raw_artifacts
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic

    def as_definition(self) -> CollectorDefinition:
        return CollectorDefinition(
            id=self.collector_id,
            name=self.name,
            description=self.description,
            supported_source_types=self.supported_source_types,
            validate_source=self.validate_source,
            execute=self.execute,
        )

    def options_for(self, source: DataSourceSnapshot) -> TableSourceOptions:
        """
        Resolve collector options for a source.

        Raises:
            SourceValidationError: When the merged metadata is invalid
        """
        try:
            return TableSourceOptions.model_validate({**self.defaults, **source.metadata})
        except ValidationError as e:
            raise SourceValidationError(
                f"Invalid collector options: {e.errors()[0]['msg']}",
                source=source.id,
            ) from e

    def validate_source(self, source: DataSourceSnapshot) -> ValidationResult:
        """Structural checks, option parsing and a HEAD check of the index page."""
        result = check_source_structure(
            self.collector_id, self.supported_source_types, source, self.required_region
        )
        if not result.valid:
            return result
        try:
            self.options_for(source)
        except SourceValidationError as e:
            return ValidationResult(valid=False, message=e.message)
        return self.fetcher.check_url(source.url)

    def execute(self, source: DataSourceSnapshot) -> CollectionResult:
        """
        Run one collection.

        Returns:
            CollectionResult; source-level errors give success=False
        """
        started_at = self._clock()
        deadline = self._monotonic() + self.run_timeout_seconds

        with bound_source_context(source_id=source.id, source_name=source.name, collector_type=self.collector_id):
            logger.info("collection_execute_started", url=source.url)
            try:
                return self._collect(source, started_at, deadline)
            except CollectionError as e:
                logger.error(
                    "collection_execute_failed",
                    error=e.message,
                    error_type=e.error_type.value
                )
                return failed_result(source.id, e.message, e)
            except Exception as e:
                logger.exception("collection_execute_crashed", error=str(e))
                return failed_result(source.id, f"Unexpected error: {e}", e)

    def _collect(self, source: DataSourceSnapshot, started_at: datetime, deadline: float) -> CollectionResult:
        options = self.options_for(source)

        html = self.fetcher.fetch(source.url)
        rows = parse_table(html, options.table_selector)
        logger.info("index_table_parsed", rows=len(rows))
        if not rows:
            return failed_result(source.id, "No data found in the table")

        raw_artifact_path = None
        save_raw = options.save_raw if options.save_raw is not None else self.save_raw
        if save_raw:
            raw_artifact_path = self._save_raw_artifact(rows, source, options, started_at)

        errors: List[Dict[str, Any]] = []
        if options.detail is not None:
            rows = self._enrich_rows(rows, options, deadline, errors)
        if options.field_defaults:
            rows = [{**options.field_defaults, **row} for row in rows]

        context = SourceContext(
            source_id=source.id,
            source_name=source.name,
            state=source.region.state,
            county=source.region.county,
            collected_at=started_at,
            tax_year=options.tax_year or started_at.year,
            column_map=options.column_map,
        )
        sink = MemoryErrorSink()
        records = [RawRecord(source_id=source.id, row_index=i, fields=row) for i, row in enumerate(rows)]
        properties = self.pipeline.run(records, context, sink)

        saved_ids: List[str] = []
        for record in properties:
            try:
                parcel_id = self.store.save(record, now=self._clock())
            except StorageError as e:
                sink.record(RecordError.from_exception(e, record_key=record.parcel_id, step="persist"))
                logger.error("property_save_failed", parcel_id=record.parcel_id, error=e.message)
                continue
            if parcel_id not in saved_ids:
                saved_ids.append(parcel_id)

        errors.extend(sink.entries())
        message = f"Collected {len(rows)} rows, saved {len(saved_ids)} properties"
        logger.info(
            "collection_execute_completed",
            rows=len(rows),
            saved=len(saved_ids),
            record_errors=len(errors)
        )
        return CollectionResult(
            source_id=source.id,
            timestamp=self._clock(),
            success=True,
            message=message,
            saved_ids=saved_ids,
            raw_artifact_path=raw_artifact_path,
            item_count=len(rows),
            errors=errors,
        )

    def _enrich_rows(
        self,
        rows: List[Dict[str, str]],
        options: TableSourceOptions,
        deadline: float,
        errors: List[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """
        Merge detail page values into each row.

        A failed detail fetch keeps the row unenriched. Once the run time
        budget is spent the remaining rows are kept as they are.
        """
        detail = options.detail
        mapper = ColumnMapper(options.column_map)
        enriched: List[Dict[str, Any]] = []
        fetched = 0

        for index, row in enumerate(rows):
            if self._monotonic() >= deadline:
                remaining = len(rows) - index
                timeout = CollectionError(
                    f"Run time budget of {self.run_timeout_seconds}s exhausted; "
                    f"{remaining} rows kept without detail enrichment",
                    error_type=ErrorType.TIMEOUT,
                )
                errors.append(build_error_entry(timeout, step="enrich", include_stack=False))
                logger.warning("detail_enrichment_budget_exhausted", remaining_rows=remaining)
                enriched.extend(rows[index:])
                break

            key = mapper.map_fields(row).get(detail.key_field)
            if not key:
                missing = ParsingError(f"Row has no {detail.key_field} for detail lookup")
                errors.append(build_error_entry(missing, step="enrich", record_key=f"row:{index}", include_stack=False))
                enriched.append(row)
                continue

            if fetched:
                self._sleep(self.detail_delay_seconds)
            fetched += 1

            try:
                url = build_detail_url(detail, str(key))
                document = MarkupDocument(self.fetcher.fetch(url))
                values = document.labeled_values(detail.labels)
            except CollectionError as e:
                errors.append(build_error_entry(e, step="enrich", record_key=str(key)))
                logger.warning("detail_enrichment_failed", record_key=key, error=e.message)
                enriched.append(row)
                continue
            except Exception as e:
                errors.append(build_error_entry(e, step="enrich", record_key=str(key)))
                logger.warning(
                    "detail_enrichment_crashed",
                    record_key=key,
                    error=str(e),
                    error_type=type(e).__name__
                )
                enriched.append(row)
                continue

            merged: Dict[str, Any] = dict(row)
            merged.update(values)
            enriched.append(merged)

        logger.info("detail_enrichment_complete", rows=len(rows), fetched=fetched)
        return enriched

    def _save_raw_artifact(
        self,
        rows: List[Dict[str, str]],
        source: DataSourceSnapshot,
        options: TableSourceOptions,
        started_at: datetime,
    ) -> str:
        """
        Write the index rows as JSON.

        Layout: <dir>/<STATE>/<County>/<year>/<STATE>_<County>_<year>_<MMDDYYYY>_<version>.json

        Raises:
            StorageError: When the file cannot be written
        """
        state = _path_segment(source.region.state)
        county = _path_segment(source.region.county or "statewide")
        year = str(options.tax_year or started_at.year)
        folder = self.raw_data_dir / state / county / year
        filename = f"{state}_{county}_{year}_{started_at.strftime('%m%d%Y')}_{options.version}.json"
        path = folder / filename

        try:
            folder.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(rows, fh, indent=2)
        except OSError as e:
            raise StorageError(f"Failed to save raw data to {path}: {e}", source=source.id) from e

        logger.info("raw_artifact_saved", path=str(path), rows=len(rows))
        return str(path)


def build_default_collectors(
    fetcher: Optional[Fetcher] = None,
    pipeline: Optional[TransformationPipeline] = None,
    store: Optional[PropertyStore] = None,
    session_factory: Optional[Callable[[], Any]] = None,
    **kwargs: Any,
) -> List[TableScrapeCollector]:
    """
    The generic table collector plus the St. Mary's County preset.

    Both share the same collaborators.
    """
    fetcher = fetcher or HttpFetcher()
    pipeline = pipeline or TransformationPipeline.default()
    store = store or PropertyStore(session_factory)
    return [
        TableScrapeCollector(fetcher=fetcher, pipeline=pipeline, store=store, **kwargs),
        TableScrapeCollector(
            collector_id="stmarys-county-collector",
            name="St. Mary's County Tax Sale Collector",
            description="Collects tax sale property data from St. Mary's County, Maryland",
            supported_source_types=(SourceType.COUNTY_WEBSITE,),
            defaults={
                "detail": {
                    "url_template": SDAT_DETAIL_URL,
                    "key_field": "tax_account_number",
                    "district_length": 2,
                    "account_length": 6,
                    "labels": SDAT_LABELS,
                },
                "field_defaults": {"sale_type": "Tax Lien", "sale_status": "Pending"},
            },
            required_region=Region(state="MD", county="St. Mary's"),
            fetcher=fetcher,
            pipeline=pipeline,
            store=store,
            **kwargs,
        ),
    ]
