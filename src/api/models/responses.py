"""Pydantic response models for API endpoints."""

from datetime import date, datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""

    status: str  # "healthy" or "unhealthy"
    version: str
    database_available: bool
    missing_tables: list[str] = []
    jira_configured: bool = False
    gitlab_configured: bool = False
    timestamp: str  # ISO 8601 UTC
    error: str | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    code: str
    details: list[str] = []


class ErrorCodes:
    """Error code constants."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TraceEntry(BaseModel):
    type: str
    message: str


class DraftOut(BaseModel):
    start: datetime
    end: datetime
    ticket: str
    label: str
    state: str  # "new", "duplicate" or "overlap"


class DraftsResponse(BaseModel):
    run_id: str
    drafts: list[DraftOut]
    validation_errors: list[str] = []
    trace: list[TraceEntry] = []


class DifferenceOut(BaseModel):
    type: str
    message: str
    local_value: str = ""
    remote_value: str = ""
    worklog_id: str | None = None


class DayComparisonOut(BaseModel):
    day: date
    kind: str
    matches: bool
    local_start: datetime | None = None
    local_end: datetime | None = None
    local_pause_minutes: int = 0
    local_net_minutes: int = 0
    remote_start: datetime | None = None
    remote_end: datetime | None = None
    remote_pause_minutes: int = 0
    remote_net_minutes: int = 0
    differences: list[DifferenceOut] = []


class ComparisonResponse(BaseModel):
    days: list[DayComparisonOut]
    warnings: list[str] = []


class IntervalOut(BaseModel):
    start: datetime
    end: datetime


class OperationOut(BaseModel):
    type: str
    worklog_id: str
    ticket: str
    new_start: datetime | None = None
    new_duration_seconds: int | None = None
    split_parts: list[IntervalOut] = []
    label: str = ""
    description: str


class AdjustmentPlanResponse(BaseModel):
    day: date
    operations: list[OperationOut]
    pause_total_minutes: int
    paid_non_work_minutes: int
    remote_gap_total_minutes: int
    warnings: list[str] = []
