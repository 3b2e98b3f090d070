"""Reconciliation endpoints: drafts, comparisons and adjustment plans."""

import sqlite3
from datetime import datetime
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status

from api.dependencies import api_error, verify_api_key
from api.logging import RequestLog, log_request
from api.models.requests import (
    AdjustmentPlanRequest,
    ComparisonRequest,
    DraftsRequest,
    RemoteWorklogIn,
)
from api.models.responses import (
    AdjustmentPlanResponse,
    ComparisonResponse,
    DayComparisonOut,
    DifferenceOut,
    DraftOut,
    DraftsResponse,
    ErrorCodes,
    IntervalOut,
    OperationOut,
    TraceEntry,
)
from core.config import (
    LOCAL_TIMEZONE,
    MAX_UPLOAD_SIZE_BYTES,
    MEETING_ISSUE_KEY,
    MEETING_RULES,
    NON_MEETING_HINTS,
    TITLE_REPLACEMENTS,
    ReconcileSettings,
    parse_hints,
    parse_meeting_rules,
    parse_title_replacements,
)
from core.errors import ConfigurationError, ParseError
from core.trace import PassTrace
from core.validation import validate_date_range, validate_drafts
from models.events import SourceCommit
from models.worklogs import RemoteWorklogRecord
from services.adjustments import generate_plan
from services.attendance import load_attendance_rows
from services.comparison import compare, group_records_by_day
from services.delta import classify_segments
from services.reconcile import run_reconciliation

router = APIRouter(prefix="/v1")


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def to_local(dt: datetime) -> datetime:
    """Naive local wall-clock time for an incoming (possibly aware) datetime."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(LOCAL_TIMEZONE).replace(tzinfo=None)


def to_records(worklogs: list[RemoteWorklogIn]) -> list[RemoteWorklogRecord]:
    return [
        RemoteWorklogRecord(
            id=w.id,
            ticket=w.ticket.strip().upper(),
            author_id=w.author_id,
            started=to_local(w.started),
            time_spent=w.time_spent_seconds,
        )
        for w in worklogs
    ]


def _minutes(delta) -> int:
    return int(delta.total_seconds() // 60)


async def _check_size(request: Request, request_log: RequestLog):
    body = await request.body()
    request_log.payload_size_bytes = len(body)
    if len(body) > MAX_UPLOAD_SIZE_BYTES:
        max_mb = MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)
        raise api_error(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            f"Payload exceeds maximum size of {max_mb} MB",
            ErrorCodes.PAYLOAD_TOO_LARGE,
            [f"Payload size: {len(body) / (1024*1024):.1f} MB"],
        )


async def _run_logged(
    request: Request,
    request_log: RequestLog,
    handler: Callable[[], Awaitable[tuple[object, int]]],
):
    """
    Run an endpoint handler with the shared error mapping and request logging.

    The handler returns (response, item_count).
    """
    try:
        await _check_size(request, request_log)
        response, item_count = await handler()
        request_log.finish(200, item_count)
        return response

    except HTTPException as e:
        if isinstance(e.detail, dict):
            request_log.fail(e.status_code, e.detail.get("code"), e.detail.get("error"), e.detail.get("details", []))
        else:
            request_log.fail(e.status_code, None, str(e.detail))
        raise

    except (ValueError, ParseError) as e:
        details = [d.strip() for d in str(e).split("\n") if d.strip()]
        request_log.fail(422, ErrorCodes.VALIDATION_ERROR, str(e), details)
        raise api_error(
            status.HTTP_422_UNPROCESSABLE_ENTITY, "Input validation failed", ErrorCodes.VALIDATION_ERROR, details
        )

    except ConfigurationError as e:
        request_log.fail(500, ErrorCodes.INTERNAL_ERROR, str(e))
        raise api_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error", ErrorCodes.INTERNAL_ERROR, e.missing
        )

    except Exception as e:
        request_log.fail(500, ErrorCodes.INTERNAL_ERROR, str(e))
        raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", ErrorCodes.INTERNAL_ERROR)

    finally:
        # A logging failure never fails the request
        try:
            log_request(request_log)
        except sqlite3.Error as e:
            print(f"Request log not written: {e}")


# =============================================================================
# DRAFTS
# =============================================================================


def _settings_for(body: DraftsRequest) -> ReconcileSettings:
    if body.meeting_rules is not None:
        rules = [(r.pattern.strip(), r.ticket.strip().upper()) for r in body.meeting_rules if r.pattern.strip()]
    else:
        rules = parse_meeting_rules(MEETING_RULES)
    if body.non_meeting_hints is not None:
        hints = [h.strip().lower() for h in body.non_meeting_hints if h.strip()]
    else:
        hints = parse_hints(NON_MEETING_HINTS)
    if body.title_replacements is not None:
        rewordings = [
            (t.trigger.strip(), [r.strip() for r in t.replacements if r.strip()])
            for t in body.title_replacements
        ]
        rewordings = [(trigger, options) for trigger, options in rewordings if trigger and options]
    else:
        rewordings = parse_title_replacements(TITLE_REPLACEMENTS)

    meeting_key = (body.meeting_issue_key or MEETING_ISSUE_KEY).strip().upper()
    if not meeting_key:
        raise ValueError("meeting_issue_key is required when MEETING_ISSUE_KEY is not configured")

    return ReconcileSettings(
        self_email=body.self_email.strip().lower(),
        meeting_issue_key=meeting_key,
        meeting_rules=rules,
        non_meeting_hints=hints,
        title_replacements=rewordings,
    )


@router.post("/drafts", response_model=DraftsResponse)
async def create_drafts_endpoint(
    request: Request,
    body: DraftsRequest,
    _api_key: str = Depends(verify_api_key),
):
    """
    Partition attendance into ticket-labelled drafts.

    Commits and already booked worklogs are supplied in the request; no
    external system is contacted.
    """
    request_log = RequestLog(
        endpoint="/v1/drafts",
        method="POST",
        client_ip=get_client_ip(request),
        from_date=body.from_date.isoformat(),
        to_date=body.to_date.isoformat(),
    )

    async def handler():
        validate_date_range(body.from_date, body.to_date)
        settings = _settings_for(body)
        commits = [
            SourceCommit(
                id=c.id,
                project_id=c.project_id,
                created_at=to_local(c.created_at),
                message=c.message,
                author_email=c.author_email,
                committer_email=c.committer_email,
                author_name=c.author_name,
            )
            for c in body.commits
        ]
        result = await run_reconciliation(
            body.ics, body.attendance, settings, body.from_date, body.to_date, commits=commits
        )
        drafts = result.drafts
        if body.remote_worklogs:
            drafts = classify_segments(drafts, to_records(body.remote_worklogs))

        errors = validate_drafts(drafts)
        for error in errors:
            request_log.details.append(("validation_error", error))
        for detail_type, message in result.trace.details:
            if detail_type in ("parse_error", "unattributed"):
                request_log.details.append(("warning", message))

        response = DraftsResponse(
            run_id=result.trace.run_id,
            drafts=[
                DraftOut(start=d.start, end=d.end, ticket=d.ticket, label=d.label, state=d.state.value)
                for d in drafts
            ],
            validation_errors=errors,
            trace=[TraceEntry(type=t, message=m) for t, m in result.trace.details],
        )
        return response, len(drafts)

    return await _run_logged(request, request_log, handler)


# =============================================================================
# COMPARISONS
# =============================================================================


@router.post("/comparisons", response_model=ComparisonResponse)
async def create_comparison_endpoint(
    request: Request,
    body: ComparisonRequest,
    _api_key: str = Depends(verify_api_key),
):
    """Compare attendance with booked worklogs per day, or report outliers."""
    request_log = RequestLog(
        endpoint="/v1/comparisons",
        method="POST",
        client_ip=get_client_ip(request),
        from_date=body.from_date.isoformat(),
        to_date=body.to_date.isoformat(),
    )

    async def handler():
        validate_date_range(body.from_date, body.to_date)
        trace = PassTrace()
        rows = load_attendance_rows(body.attendance, trace)
        records = [
            r for r in to_records(body.remote_worklogs)
            if body.from_date <= r.started.date() <= body.to_date
        ]
        days = sorted(
            {r.day for r in rows if body.from_date <= r.day <= body.to_date}
            | {r.started.date() for r in records}
        )
        comparisons = compare(rows, group_records_by_day(records), days, body.outlier_mode)

        warnings = trace.of_type("parse_error")
        for warning in warnings:
            request_log.details.append(("warning", warning))

        response = ComparisonResponse(
            days=[
                DayComparisonOut(
                    day=c.day,
                    kind=c.kind,
                    matches=c.matches,
                    local_start=c.local_start,
                    local_end=c.local_end,
                    local_pause_minutes=_minutes(c.local_pause),
                    local_net_minutes=_minutes(c.local_net),
                    remote_start=c.remote_start,
                    remote_end=c.remote_end,
                    remote_pause_minutes=_minutes(c.remote_pause),
                    remote_net_minutes=_minutes(c.remote_net),
                    differences=[
                        DifferenceOut(
                            type=d.type.value,
                            message=d.message,
                            local_value=d.local_value,
                            remote_value=d.remote_value,
                            worklog_id=d.record.id if d.record else None,
                        )
                        for d in c.differences
                    ],
                )
                for c in comparisons
            ],
            warnings=warnings,
        )
        return response, len(comparisons)

    return await _run_logged(request, request_log, handler)


# =============================================================================
# ADJUSTMENTS
# =============================================================================


@router.post("/adjustments/plan", response_model=AdjustmentPlanResponse)
async def plan_adjustments_endpoint(
    request: Request,
    body: AdjustmentPlanRequest,
    _api_key: str = Depends(verify_api_key),
):
    """Compute, without applying, the edits that align one day's worklogs with attendance."""
    request_log = RequestLog(
        endpoint="/v1/adjustments/plan",
        method="POST",
        client_ip=get_client_ip(request),
        from_date=body.day.isoformat(),
        to_date=body.day.isoformat(),
    )

    async def handler():
        trace = PassTrace()
        rows = load_attendance_rows(body.attendance, trace)
        records = [r for r in to_records(body.remote_worklogs) if r.started.date() == body.day]
        plan = generate_plan(body.day, rows, records)

        warnings = trace.of_type("parse_error")
        for warning in warnings:
            request_log.details.append(("warning", warning))

        response = AdjustmentPlanResponse(
            day=plan.day,
            operations=[
                OperationOut(
                    type=op.type.value,
                    worklog_id=op.record.id,
                    ticket=op.record.ticket,
                    new_start=op.new_start,
                    new_duration_seconds=op.new_duration,
                    split_parts=[IntervalOut(start=p.start, end=p.end) for p in op.split_parts],
                    label=op.label,
                    description=op.description,
                )
                for op in plan.operations
            ],
            pause_total_minutes=_minutes(plan.pause_total),
            paid_non_work_minutes=_minutes(plan.paid_non_work),
            remote_gap_total_minutes=_minutes(plan.remote_gap_total),
            warnings=warnings,
        )
        return response, len(plan.operations)

    return await _run_logged(request, request_log, handler)
