"""Health check endpoint."""

import sqlite3
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from api.models.responses import HealthResponse
from core.config import API_VERSION, DB_PATH, ReconcileSettings
from services.reconcile import is_configured

REQUIRED_TABLES = ("runs", "drafts", "run_details", "api_requests", "api_request_details")

router = APIRouter()


def missing_tables() -> list[str]:
    """Schema tables absent from the database (all of them if the file does not exist)."""
    if not DB_PATH.exists():
        return list(REQUIRED_TABLES)
    conn = sqlite3.connect(DB_PATH)
    try:
        present = {name for (name,) in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()
    return [t for t in REQUIRED_TABLES if t not in present]


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Returns 200 when request logging can write, 503 otherwise.

    Collaborator flags are informational: the /v1 endpoints work offline.
    """
    absent = missing_tables()
    settings = ReconcileSettings.from_env()
    jira_ok = is_configured(settings, need_gitlab=False, need_meeting_key=False)
    gitlab_ok = is_configured(settings, need_jira=False, need_meeting_key=False)

    response = HealthResponse(
        status="unhealthy" if absent else "healthy",
        version=API_VERSION,
        database_available=not absent,
        missing_tables=absent,
        jira_configured=jira_ok,
        gitlab_configured=gitlab_ok,
        timestamp=datetime.now(timezone.utc).isoformat(),
        error="Database schema incomplete, run scripts/init_db.py" if absent else None,
    )
    if absent:
        return JSONResponse(status_code=503, content=response.model_dump())
    return response
