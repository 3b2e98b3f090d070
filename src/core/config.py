"""
Configuration constants and environment setup.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

# =============================================================================
# PATHS
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent.parent
DB_PATH = Path(os.environ.get("WORKLOG_DB_PATH", PROJECT_ROOT / "data" / "db" / "worklog-reconcile.db"))
OUTPUT_DIR = PROJECT_ROOT / "output"

# =============================================================================
# EMAIL CONFIGURATION
# =============================================================================

FROM_EMAIL = os.environ.get("REPORT_FROM_EMAIL", "")
TO_EMAIL = os.environ.get("REPORT_TO_EMAIL", "")
ERROR_EMAIL = os.environ.get("REPORT_ERROR_EMAIL", "")

# =============================================================================
# TIME HANDLING
# =============================================================================

LOCAL_TIMEZONE = ZoneInfo(os.environ.get("LOCAL_TIMEZONE", "Europe/Vienna"))

MIN_SEGMENT_SECONDS = 60
MAX_MEETING_HOURS = 10
RECURRENCE_ITERATION_CAP = 5000

# Duplicate detection against remote worklogs
DUPLICATE_DURATION_TOLERANCE_SECONDS = 60
DUPLICATE_START_TOLERANCE_SECONDS = 5 * 60

# Aggregate comparison
COMPARE_EDGE_TOLERANCE_MINUTES = 1
COMPARE_DURATION_TOLERANCE_MINUTES = 2
COMPARE_IGNORED_GAP_MINUTES = 1

# =============================================================================
# CALENDAR CONFIGURATION
# =============================================================================

DEFAULT_NON_MEETING_HINTS = [
    "homeoffice",
    "an anderem ort tätig",
    "im büro",
    "im office",
    "office",
    "büro",
    "arbeitsort",
    "arbeitsplatz",
    "standort",
    "working elsewhere",
    "focus",
    "focus time",
    "fokuszeit",
    "reise",
    "anreise",
    "commute",
    "fahrt",
    "fahrtzeit",
    "travel",
    "anwesenheit",
    "präsenz",
    "teilzeit",
    "weihnacht",
    "christmas",
    "save the date",
    "ski",
    "ausflug",
    "bbq",
    "grillen",
    "feier",
]

CANCELLED_TITLE_MARKERS = ("abgesagt", "canceled", "cancelled")
DAY_OFF_TITLE_MARKERS = ("urlaub", "feiertag", "krank", "abwesend")
WORKING_ELSEWHERE_TITLE_MARKERS = ("homeoffice", "an anderem ort")
REJECTED_BUSY_STATUSES = {"FREE", "WORKINGELSEWHERE", "OOF", "TENTATIVE"}
ACCEPTED_PARTSTATS = {"NEEDS-ACTION", "ACCEPTED"}

# =============================================================================
# ATTENDANCE CONFIGURATION
# =============================================================================

# Rows excluded from work windows; any of these on a day also disables meetings
ATTENDANCE_ABSENCE_MARKERS = ("urlaub", "feiertag", "krank", "abwesen")
# Rows ignored when the adjustment planner derives the ground-truth envelope
PLANNER_ABSENCE_MARKERS = (
    "urlaub", "krank", "zeitausgleich", "arzt", "pflege", "sonder", "eltern", "papamonat",
)
# Rows ignored by the aggregate comparison
COMPARISON_ABSENCE_MARKERS = ("urlaub", "feiertag", "krank", "abwesen", "zeitausgleich")
NON_PRODUCTIVE_ROW_MARKERS = ("pause", "arzt", "nichtleistung", "nicht-leistung")
HOMEOFFICE_MARKER = "homeoffice"
# A homeoffice row of 7-9 hours is the default placeholder block, not real attendance
HOMEOFFICE_PLACEHOLDER_MINUTES = (420, 540)

# =============================================================================
# REPORT CONFIGURATION
# =============================================================================

DRAFT_HEADERS = ["Date", "Start", "End", "Hours", "Ticket", "Summary", "Label", "State"]
COMPARISON_HEADERS = [
    "Date",
    "Kind",
    "Attendance Start",
    "Attendance End",
    "Attendance Pause",
    "Attendance Net",
    "Worklog Start",
    "Worklog End",
    "Worklog Pause",
    "Worklog Net",
    "Differences",
]
ADJUSTMENT_HEADERS = ["Date", "Ticket", "Operation", "Change", "Reason"]

# =============================================================================
# JIRA / GITLAB CREDENTIALS (from environment)
# =============================================================================

JIRA_BASE_URL = os.environ.get("JIRA_BASE_URL", "").rstrip("/")
JIRA_EMAIL = os.environ.get("JIRA_EMAIL", "")
JIRA_API_TOKEN = os.environ.get("JIRA_API_TOKEN", "")

GITLAB_BASE_URL = os.environ.get("GITLAB_BASE_URL", "").rstrip("/")
GITLAB_TOKEN = os.environ.get("GITLAB_TOKEN", "")
GITLAB_PROJECT_IDS = [p.strip() for p in os.environ.get("GITLAB_PROJECT_IDS", "").split(",") if p.strip()]
GITLAB_AUTHOR_EMAILS = [
    e.strip().lower() for e in os.environ.get("GITLAB_AUTHOR_EMAILS", "").split(",") if e.strip()
]
GITLAB_LOOKBACK_DAYS = int(os.environ.get("GITLAB_LOOKBACK_DAYS", "30"))
GITLAB_MAX_PAGES = int(os.environ.get("GITLAB_MAX_PAGES", "50"))

HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))

# =============================================================================
# RECONCILIATION CONFIGURATION
# =============================================================================

SELF_EMAIL = os.environ.get("SELF_EMAIL", "").strip().lower()
MEETING_ISSUE_KEY = os.environ.get("MEETING_ISSUE_KEY", "").strip().upper()
MEETING_RULES = os.environ.get("MEETING_RULES", "")
NON_MEETING_HINTS = os.environ.get("NON_MEETING_HINTS", "")
TITLE_REPLACEMENTS = os.environ.get("TITLE_REPLACEMENTS", "")

# =============================================================================
# MS GRAPH CREDENTIALS (from environment)
# =============================================================================

GRAPH_TENANT_ID = os.environ.get("MICROSOFT_GRAPH_TENANT_ID", "")
GRAPH_APP_ID = os.environ.get("MICROSOFT_GRAPH_APP_ID", "")
GRAPH_CLIENT_SECRET = os.environ.get("MICROSOFT_GRAPH_CLIENT_SECRET", "")

# =============================================================================
# API CONFIGURATION
# =============================================================================

RECONCILE_API_KEY = os.environ.get("RECONCILE_API_KEY", "")
API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
API_DEBUG = os.environ.get("API_DEBUG", "false").lower() == "true"
MAX_UPLOAD_SIZE_MB = int(os.environ.get("MAX_UPLOAD_SIZE_MB", "10"))
MAX_UPLOAD_SIZE_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
API_VERSION = "1.0.0"


# =============================================================================
# SETTINGS OBJECT
# =============================================================================


def parse_meeting_rules(raw: str) -> list[tuple[str, str]]:
    """
    Parse 'pattern=KEY;pattern=KEY' into ordered (pattern, ticket) pairs.

    Entries without a pattern or key are ignored.
    """
    rules = []
    for entry in raw.split(";"):
        if "=" not in entry:
            continue
        pattern, key = entry.rsplit("=", 1)
        pattern = pattern.strip()
        key = key.strip().upper()
        if pattern and key:
            rules.append((pattern, key))
    return rules


def parse_title_replacements(raw: str) -> list[tuple[str, list[str]]]:
    """
    Parse 'trigger=Replacement A|Replacement B;trigger=...' into ordered
    (trigger, replacements) pairs.

    Entries without a trigger word or without any replacement are ignored.
    """
    rules = []
    for entry in raw.split(";"):
        if "=" not in entry:
            continue
        trigger, options = entry.split("=", 1)
        trigger = trigger.strip()
        replacements = [o.strip() for o in options.split("|") if o.strip()]
        if trigger and replacements:
            rules.append((trigger, replacements))
    return rules


def parse_hints(raw: str) -> list[str]:
    """Parse a comma-separated hint list, falling back to the defaults."""
    hints = [h.strip().lower() for h in raw.split(",") if h.strip()]
    return hints or list(DEFAULT_NON_MEETING_HINTS)


@dataclass
class ReconcileSettings:
    """Inputs a reconciliation pass needs besides the raw data."""

    self_email: str = ""
    meeting_issue_key: str = ""
    meeting_rules: list[tuple[str, str]] = field(default_factory=list)
    non_meeting_hints: list[str] = field(default_factory=lambda: list(DEFAULT_NON_MEETING_HINTS))
    title_replacements: list[tuple[str, list[str]]] = field(default_factory=list)
    author_emails: list[str] = field(default_factory=list)
    jira_base_url: str = ""
    jira_email: str = ""
    jira_api_token: str = ""
    gitlab_base_url: str = ""
    gitlab_token: str = ""
    gitlab_project_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "ReconcileSettings":
        return cls(
            self_email=SELF_EMAIL,
            meeting_issue_key=MEETING_ISSUE_KEY,
            meeting_rules=parse_meeting_rules(MEETING_RULES),
            non_meeting_hints=parse_hints(NON_MEETING_HINTS),
            title_replacements=parse_title_replacements(TITLE_REPLACEMENTS),
            author_emails=list(GITLAB_AUTHOR_EMAILS),
            jira_base_url=JIRA_BASE_URL,
            jira_email=JIRA_EMAIL,
            jira_api_token=JIRA_API_TOKEN,
            gitlab_base_url=GITLAB_BASE_URL,
            gitlab_token=GITLAB_TOKEN,
            gitlab_project_ids=list(GITLAB_PROJECT_IDS),
        )
