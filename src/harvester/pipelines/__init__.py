"""
Pipelines Package

Record transformation pipeline and its geocoding collaborator.
"""
from src.harvester.pipelines.transformation import (
    SourceContext,
    TransformationStep,
    TransformationPipeline,
    RecordError,
    MemoryErrorSink,
)
from src.harvester.pipelines.geocoding import NominatimGeocoder, GeocodingResult

__all__ = [
    "SourceContext",
    "TransformationStep",
    "TransformationPipeline",
    "RecordError",
    "MemoryErrorSink",
    "NominatimGeocoder",
    "GeocodingResult",
]
