"""
Collection Result Models

Outcome objects returned by collectors, the run ledger and the health monitor.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ValidationResult(BaseModel):
    valid: bool
    message: Optional[str] = None


class CollectionResult(BaseModel):
    """
    Outcome of one collector execution.

    Attributes:
        source_id: Data source that was collected
        timestamp: When the execution finished
        success: False when a source-level error aborted the run
        message: Summary for operators
        saved_ids: Natural keys of the properties persisted in this run
        raw_artifact_path: Where the raw index rows were written, if saved
        item_count: Rows scraped from the index page
        errors: Record-level error-log entries
    """

    source_id: int
    timestamp: datetime
    success: bool
    message: str = ""
    saved_ids: List[str] = Field(default_factory=list)
    raw_artifact_path: Optional[str] = None
    item_count: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class RunTrigger(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    FORCED = "forced"


class RunStats(BaseModel):
    """Aggregate of the most recent runs of one source."""

    source_id: int
    total_runs: int
    success_rate: float = Field(..., description="Percentage of runs that did not fail")
    average_duration_ms: float
    average_item_count: float
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[RunStatus] = None


class Severity(str, Enum):
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"


SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.ERROR: 1, Severity.WARNING: 2}


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthIssue(BaseModel):
    type: str = Field(..., description="collector, source or collection")
    severity: Severity
    id: Optional[str] = None
    name: str
    message: str
    timestamp: Optional[datetime] = None


class HealthReport(BaseModel):
    """System-wide health snapshot."""

    status: HealthStatus
    checked_at: datetime
    period_hours: int
    collectors: Dict[str, int]
    sources: Dict[str, int]
    recent_collections: Dict[str, int]
    issues: List[HealthIssue] = Field(default_factory=list)
