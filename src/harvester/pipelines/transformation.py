"""
Transformation Pipeline

Ordered, named steps that turn raw scraped rows into canonical
StandardizedProperty records:

    standardize -> normalize_address -> geocode -> fuzzy_dedupe -> validate

Each step is a function (record, context) -> record that returns a new
dict and may raise StepError. The driver isolates records: one rejected
row is written to the error sink and the batch continues.
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime
from difflib import SequenceMatcher
from functools import cached_property
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from pydantic import ValidationError

from config.settings import settings
from src.harvester.errors import ErrorType, StepError, build_error_entry
from src.harvester.models.property import RawRecord, StandardizedProperty
from src.harvester.pipelines.geocoding import Geocoder
from src.harvester.transformers.address_standardizer import AddressStandardizer
from src.harvester.transformers.classification import determine_property_type, determine_tax_status
from src.harvester.transformers.column_mapping import ColumnMapper
from src.harvester.transformers.numeric import parse_area, parse_currency, parse_number, parse_year
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)

REQUIRED_FIELDS = ("parcel_id", "state", "county")


@dataclass(frozen=True)
class SourceContext:
    """
    Everything a step may depend on besides the record itself.

    Timestamps come from here, never from the clock, so transforming the
    same row twice with the same context gives the same output.
    """
    source_id: int
    source_name: str
    state: str
    county: Optional[str]
    collected_at: datetime
    tax_year: Optional[int] = None
    column_map: Mapping[str, str] = field(default_factory=dict)
    # Normalized address -> parcel_id of records accepted earlier in this run
    dedupe_index: Dict[str, str] = field(default_factory=dict, compare=False)

    @cached_property
    def mapper(self) -> ColumnMapper:
        return ColumnMapper(self.column_map)


@dataclass(frozen=True)
class TransformationStep:
    name: str
    transform: Callable[[Dict[str, Any], SourceContext], Dict[str, Any]]


@dataclass
class RecordError:
    """One rejected record as stored in the error sink."""
    step: str
    message: str
    error_type: str
    record_key: str
    timestamp: str
    stack: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException, record_key: str, step: Optional[str] = None) -> "RecordError":
        entry = build_error_entry(exc, step=step, record_key=record_key)
        return cls(
            step=entry.get("step", "unknown"),
            message=entry["message"],
            error_type=entry["error_type"],
            record_key=record_key,
            timestamp=entry["timestamp"],
            stack=entry.get("stack"),
        )

    def to_log_entry(self) -> Dict[str, Any]:
        entry = {
            "message": self.message,
            "timestamp": self.timestamp,
            "error_type": self.error_type,
            "step": self.step,
            "record_key": self.record_key,
        }
        if self.stack:
            entry["stack"] = self.stack
        return entry


class ErrorSink(Protocol):
    def record(self, error: RecordError) -> None:
        ...


class MemoryErrorSink:
    """Collects record errors for the duration of one run."""

    def __init__(self):
        self.errors: List[RecordError] = []

    def record(self, error: RecordError) -> None:
        self.errors.append(error)

    def __len__(self) -> int:
        return len(self.errors)

    def entries(self) -> List[Dict[str, Any]]:
        return [e.to_log_entry() for e in self.errors]


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


# Steps


def standardize(record: Dict[str, Any], context: SourceContext) -> Dict[str, Any]:
    """
    Map raw header-keyed fields onto the canonical nested shape.

    Unrecognized fields are dropped, missing ones become None, and numeric
    text that cannot be parsed becomes None with a processing note.
    """
    raw = dict(record.get("raw_data") or {})
    mapped = context.mapper.map_fields(raw)
    notes: List[str] = []

    parcel_id = _clean_text(mapped.get("parcel_id"))
    if not parcel_id:
        raise StepError(
            "standardize",
            "Record has no parcel or account identifier",
            source=context.source_id,
            error_type=ErrorType.VALIDATION,
        )

    def money(name: str) -> Optional[float]:
        text = mapped.get(name)
        value = parse_currency(text)
        if value is None and _clean_text(text):
            notes.append(f"unparseable {name}: {_clean_text(text)}")
        return value

    land_area, land_unit = parse_area(mapped.get("land_area"))
    building_area = parse_number(mapped.get("building_area"))
    tax_due = money("tax_due")
    type_text = _clean_text(mapped.get("property_type"))
    description = _clean_text(mapped.get("property_description"))
    status_text = _clean_text(mapped.get("tax_status"))

    return {
        "parcel_id": parcel_id,
        "tax_account_number": _clean_text(mapped.get("tax_account_number")),
        "owner_name": _clean_text(mapped.get("owner_name")),
        "property_address": _clean_text(mapped.get("property_address")),
        "city": _clean_text(mapped.get("city")),
        "state": _clean_text(mapped.get("state")) or context.state,
        "county": _clean_text(mapped.get("county")) or context.county,
        "zip_code": _clean_text(mapped.get("zip_code")),
        "property_type": determine_property_type(type_text, description).value,
        "legal_description": _clean_text(mapped.get("legal_description")),
        "property_details": {
            "land_area": land_area,
            "land_area_unit": land_unit,
            "building_area": building_area,
            "year_built": parse_year(mapped.get("year_built")),
            "zoning": _clean_text(mapped.get("zoning")),
        },
        "tax_info": {
            "assessed_value": money("assessed_value"),
            "land_value": money("land_value"),
            "improvement_value": money("improvement_value"),
            "tax_year": parse_year(mapped.get("tax_year")) or context.tax_year,
            "tax_status": determine_tax_status(status_text, tax_due).value,
            "tax_due": tax_due,
        },
        "sale_info": {
            "sale_type": _clean_text(mapped.get("sale_type")),
            "sale_status": _clean_text(mapped.get("sale_status")),
            "sale_amount": money("sale_amount"),
        },
        "location": {"latitude": None, "longitude": None, "formatted_address": None},
        "raw_data": raw,
        "source_id": context.source_id,
        "collected_at": context.collected_at,
        "processing_notes": notes,
        "possible_duplicate_of": None,
    }


_address_standardizer = AddressStandardizer()


def normalize_address(record: Dict[str, Any], context: SourceContext) -> Dict[str, Any]:
    """Abbreviate and upper-case the address; fill city/ZIP from the address line."""
    out = copy.deepcopy(record)
    normalized = _address_standardizer.standardize(
        record.get("property_address"),
        city=record.get("city"),
        state=record.get("state"),
        zip_code=record.get("zip_code"),
    )
    out["property_address"] = normalized.street
    out["city"] = normalized.city
    out["state"] = normalized.state or _address_standardizer.normalize_state(context.state)
    out["zip_code"] = normalized.zip_code
    if out.get("county"):
        out["county"] = " ".join(str(out["county"]).split())
    return out


def full_address(record: Dict[str, Any]) -> Optional[str]:
    street = record.get("property_address")
    if not street:
        return None
    locality = " ".join(p for p in (record.get("state"), record.get("zip_code")) if p)
    return ", ".join(p for p in (street, record.get("city"), locality) if p)


def make_geocode_step(geocoder: Optional[Geocoder]) -> TransformationStep:
    """
    Build the geocode step.

    Lookup failures are logged and the record continues without
    coordinates. With no geocoder configured the step passes records
    through unchanged.
    """
    def geocode(record: Dict[str, Any], context: SourceContext) -> Dict[str, Any]:
        if geocoder is None:
            return record
        address = full_address(record)
        if not address:
            return record

        out = copy.deepcopy(record)
        try:
            result = geocoder.geocode(address)
        except Exception as e:
            logger.warning(
                "geocoding_failed",
                parcel_id=record.get("parcel_id"),
                error=str(e),
                error_type=type(e).__name__
            )
            out["processing_notes"].append("geocoding failed")
            return out

        if result is not None:
            out["location"] = {
                "latitude": result.latitude,
                "longitude": result.longitude,
                "formatted_address": result.formatted_address,
            }
        return out

    return TransformationStep("geocode", geocode)


def make_dedupe_step(threshold: Optional[float] = None) -> TransformationStep:
    """
    Build the fuzzy duplicate detector.

    A record whose normalized address is at least `threshold` similar to an
    earlier accepted record in the same run, but with a different parcel_id, is
    annotated with possible_duplicate_of. Nothing is dropped.
    """
    threshold = threshold if threshold is not None else settings.dedupe_similarity_threshold

    def fuzzy_dedupe(record: Dict[str, Any], context: SourceContext) -> Dict[str, Any]:
        address = full_address(record)
        if not address:
            return record

        parcel_id = record["parcel_id"]
        best_parcel, best_ratio = None, 0.0
        for seen_address, seen_parcel in context.dedupe_index.items():
            if seen_parcel == parcel_id:
                continue
            ratio = SequenceMatcher(None, address, seen_address).ratio()
            if ratio >= threshold and ratio > best_ratio:
                best_parcel, best_ratio = seen_parcel, ratio

        if best_parcel is None:
            return record

        out = copy.deepcopy(record)
        out["possible_duplicate_of"] = best_parcel
        out["processing_notes"].append(f"address {best_ratio:.2f} similar to parcel {best_parcel}")
        logger.info(
            "possible_duplicate_detected",
            parcel_id=parcel_id,
            duplicate_of=best_parcel,
            similarity=round(best_ratio, 3)
        )
        return out

    return TransformationStep("fuzzy_dedupe", fuzzy_dedupe)


def validate(record: Dict[str, Any], context: SourceContext) -> Dict[str, Any]:
    """Reject records missing required fields or with impossible values."""
    missing = [name for name in REQUIRED_FIELDS if not record.get(name)]
    if missing:
        raise StepError(
            "validate",
            f"Missing required fields: {', '.join(missing)}",
            source=context.source_id,
            error_type=ErrorType.VALIDATION,
        )

    year_built = record["property_details"].get("year_built")
    if year_built is not None and year_built > context.collected_at.year + 1:
        raise StepError(
            "validate",
            f"Implausible year built: {year_built}",
            source=context.source_id,
            error_type=ErrorType.VALIDATION,
        )

    try:
        StandardizedProperty.model_validate(record)
    except ValidationError as e:
        raise StepError(
            "validate",
            f"Schema validation failed: {e.errors()[0]['loc']} {e.errors()[0]['msg']}",
            source=context.source_id,
            error_type=ErrorType.VALIDATION,
        ) from e
    return record


class TransformationPipeline:
    """
    Runs records through the registered steps in order.

    Usage:
        pipeline = TransformationPipeline.default()
        records = pipeline.run(raw_records, context, sink)
    """

    def __init__(self, steps: Optional[Iterable[TransformationStep]] = None):
        self._steps: List[TransformationStep] = []
        for step in steps or []:
            self.register_step(step)

    @classmethod
    def default(
        cls,
        geocoder: Optional[Geocoder] = None,
        dedupe_threshold: Optional[float] = None,
    ) -> "TransformationPipeline":
        return cls([
            TransformationStep("standardize", standardize),
            TransformationStep("normalize_address", normalize_address),
            make_geocode_step(geocoder),
            make_dedupe_step(dedupe_threshold),
            TransformationStep("validate", validate),
        ])

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def register_step(self, step: TransformationStep, before: Optional[str] = None) -> None:
        """
        Add a step at the end, or before the named step.

        Raises:
            ValueError: If a step with the same name exists or `before` is unknown
        """
        if step.name in self.step_names:
            raise ValueError(f"Transformation step '{step.name}' is already registered")
        if before is None:
            self._steps.append(step)
        else:
            if before not in self.step_names:
                raise ValueError(f"Unknown transformation step '{before}'")
            self._steps.insert(self.step_names.index(before), step)
        logger.debug("transformation_step_registered", step=step.name)

    def transform(self, raw: RawRecord, context: SourceContext) -> StandardizedProperty:
        """
        Transform one raw record.

        Raises:
            StepError: Tagged with the step that rejected the record
        """
        record: Dict[str, Any] = {"raw_data": dict(raw.fields)}
        for step in self._steps:
            try:
                record = step.transform(record, context)
            except StepError:
                raise
            except Exception as e:
                raise StepError(step.name, f"{type(e).__name__}: {e}", source=context.source_id) from e

        try:
            result = StandardizedProperty.model_validate(record)
        except ValidationError as e:
            raise StepError("validate", str(e), source=context.source_id, error_type=ErrorType.VALIDATION) from e

        # Only accepted records are candidates for later duplicate matches
        address = full_address(record)
        if address:
            context.dedupe_index.setdefault(address, result.parcel_id)
        return result

    def run(
        self,
        raw_records: Iterable[RawRecord],
        context: SourceContext,
        sink: ErrorSink,
    ) -> List[StandardizedProperty]:
        """
        Transform a batch, isolating failures per record.

        Args:
            raw_records: Rows scraped from the source
            context: Source context shared by the batch
            sink: Receives one RecordError per rejected row

        Returns:
            Records that passed every step, in input order
        """
        results: List[StandardizedProperty] = []
        rejected = 0
        for raw in raw_records:
            try:
                results.append(self.transform(raw, context))
            except StepError as e:
                rejected += 1
                record_key = self._record_key(raw, context)
                sink.record(RecordError.from_exception(e, record_key=record_key))
                logger.warning(
                    "record_rejected",
                    step=e.step,
                    record_key=record_key,
                    error=e.message
                )

        logger.info(
            "transformation_complete",
            source_id=context.source_id,
            accepted=len(results),
            rejected=rejected
        )
        return results

    @staticmethod
    def _record_key(raw: RawRecord, context: SourceContext) -> str:
        parcel = _clean_text(context.mapper.map_fields(raw.fields).get("parcel_id"))
        return parcel or f"row:{raw.row_index}"
