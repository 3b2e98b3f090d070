"""API Pydantic models."""

from .requests import (
    AdjustmentPlanRequest,
    CommitIn,
    ComparisonRequest,
    DraftsRequest,
    MeetingRuleIn,
    RemoteWorklogIn,
)
from .responses import (
    AdjustmentPlanResponse,
    ComparisonResponse,
    DraftsResponse,
    ErrorCodes,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "AdjustmentPlanRequest",
    "AdjustmentPlanResponse",
    "CommitIn",
    "ComparisonRequest",
    "ComparisonResponse",
    "DraftsRequest",
    "DraftsResponse",
    "ErrorCodes",
    "ErrorResponse",
    "HealthResponse",
    "MeetingRuleIn",
    "RemoteWorklogIn",
]
