"""
Jira Cloud REST client for issue lookup and worklog CRUD.
"""

import re
from datetime import datetime, tzinfo

import httpx

from core.config import HTTP_TIMEOUT_SECONDS, LOCAL_TIMEZONE
from core.errors import NetworkError
from models.worklogs import IssueSummary, RemoteWorklogRecord, WorklogResponse

SUMMARY_BATCH_SIZE = 50
WORKLOG_PAGE_SIZE = 1000
_KEY_LIKE = re.compile(r"^[A-Za-z][A-Za-z0-9]+-\d+$")


# =============================================================================
# WIRE FORMAT
# =============================================================================


def format_started(dt: datetime, local_tz: tzinfo = LOCAL_TIMEZONE) -> str:
    """Format a naive local time as Jira expects: 2025-03-03T08:00:00.000+0100."""
    aware = dt.replace(tzinfo=local_tz) if dt.tzinfo is None else dt.astimezone(local_tz)
    millis = aware.microsecond // 1000
    return f"{aware:%Y-%m-%dT%H:%M:%S}.{millis:03d}{aware:%z}"


def parse_started(value: str, local_tz: tzinfo = LOCAL_TIMEZONE) -> datetime:
    """Parse Jira's started value into a naive local datetime."""
    text = value.strip()
    try:
        parsed = datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f%z")
    except ValueError:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(local_tz).replace(tzinfo=None)


def adf_from_text(text: str) -> dict:
    """Wrap plain text in an Atlassian Document Format document."""
    text = text.strip()
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}] if text else [],
            }
        ],
    }


def _jql_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


# =============================================================================
# CLIENT
# =============================================================================


class JiraClient:
    """
    Async Jira client.

    Transport failures and unexpected statuses on reads raise NetworkError.
    Writes report HTTP failures through their return value instead.
    """

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        http: httpx.AsyncClient | None = None,
        local_tz: tzinfo = LOCAL_TIMEZONE,
    ):
        self.base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(email, api_token)
        self._http = http or httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        self._local_tz = local_tz

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(
                method,
                f"{self.base_url}{path}",
                auth=self._auth,
                headers={"Accept": "application/json"},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        response = await self._request("GET", path, params=params)
        if not response.is_success:
            raise NetworkError(f"GET {path} returned {response.status_code}", response.status_code)
        return response.json()

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def check_auth(self) -> bool:
        response = await self._request("GET", "/rest/api/3/myself")
        if response.status_code == 200:
            return True
        if response.status_code in (401, 403):
            return False
        response = await self._request("GET", "/rest/api/2/myself")
        return response.status_code == 200

    async def fetch_my_account_id(self) -> str | None:
        data = await self._get_json("/rest/api/3/myself")
        account_id = str(data.get("accountId") or "")
        return account_id or None

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    async def resolve_issue_id(self, key: str) -> str | None:
        response = await self._request("GET", f"/rest/api/3/issue/{key}")
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise NetworkError(f"Issue lookup {key} returned {response.status_code}", response.status_code)
        issue_id = str(response.json().get("id") or "")
        return issue_id or None

    async def _search(self, jql: str, fields: str, max_results: int) -> list[dict]:
        data = await self._get_json(
            "/rest/api/3/search/jql",
            params={"jql": jql, "fields": fields, "maxResults": max_results},
        )
        return [issue for issue in data.get("issues") or [] if issue.get("key")]

    async def search_issues(self, text: str, max_results: int = 25) -> list[IssueSummary]:
        """Free-text issue search on key and summary."""
        query = text.strip()
        if not query:
            return []
        clause = f"(summary ~ {_jql_string(query)} OR key ~ {_jql_string(query)})"
        jql = f"(key = {query}) OR {clause}" if _KEY_LIKE.match(query) else clause
        issues = await self._search(jql, "summary", max_results)
        return [
            IssueSummary(issue["key"], str((issue.get("fields") or {}).get("summary") or ""))
            for issue in issues
        ]

    async def search_jql(self, jql: str, max_results: int = 100) -> list[str]:
        issues = await self._search(jql, "key", max_results)
        return [issue["key"] for issue in issues]

    async def fetch_summaries(self, keys: set[str] | list[str]) -> dict[str, str]:
        """Summaries for the given keys, queried in batches of 50."""
        ordered = sorted({k.strip().upper() for k in keys if k.strip()})
        summaries = {}
        for i in range(0, len(ordered), SUMMARY_BATCH_SIZE):
            batch = ordered[i:i + SUMMARY_BATCH_SIZE]
            issues = await self._search(f"key in ({','.join(batch)})", "summary", len(batch))
            for issue in issues:
                summary = str((issue.get("fields") or {}).get("summary") or "")
                if summary:
                    summaries[issue["key"]] = summary
        return summaries

    # -------------------------------------------------------------------------
    # Worklogs
    # -------------------------------------------------------------------------

    async def fetch_worklogs(self, issue_key: str) -> list[RemoteWorklogRecord]:
        """All worklogs of an issue; entries without id, start or positive duration are skipped."""
        records = []
        start_at = 0
        while True:
            data = await self._get_json(
                f"/rest/api/3/issue/{issue_key}/worklog",
                params={"startAt": start_at, "maxResults": WORKLOG_PAGE_SIZE},
            )
            worklogs = data.get("worklogs") or []
            total = int(data.get("total", len(worklogs)))

            for raw in worklogs:
                worklog_id = str(raw.get("id") or "")
                started = str(raw.get("started") or "")
                seconds = int(raw.get("timeSpentSeconds") or 0)
                if not worklog_id or not started or seconds <= 0:
                    continue
                records.append(
                    RemoteWorklogRecord(
                        id=worklog_id,
                        ticket=issue_key,
                        author_id=str((raw.get("author") or {}).get("accountId") or ""),
                        started=parse_started(started, self._local_tz),
                        time_spent=seconds,
                    )
                )

            if not worklogs or start_at + len(worklogs) >= total:
                break
            start_at += len(worklogs)
        return records

    async def create_worklog(
        self, issue_key: str, started: datetime, seconds: int, comment: str = ""
    ) -> WorklogResponse:
        response = await self._request(
            "POST",
            f"/rest/api/3/issue/{issue_key}/worklog",
            json={
                "started": format_started(started, self._local_tz),
                "timeSpentSeconds": seconds,
                "comment": adf_from_text(comment),
            },
        )
        return WorklogResponse(response.is_success, response.status_code, response.text)

    async def update_worklog(
        self, issue_key: str, worklog_id: str, started: datetime, seconds: int
    ) -> WorklogResponse:
        response = await self._request(
            "PUT",
            f"/rest/api/3/issue/{issue_key}/worklog/{worklog_id}",
            json={
                "started": format_started(started, self._local_tz),
                "timeSpentSeconds": seconds,
            },
        )
        return WorklogResponse(response.is_success, response.status_code, response.text)

    async def delete_worklog(self, issue_key: str, worklog_id: str) -> bool:
        response = await self._request("DELETE", f"/rest/api/3/issue/{issue_key}/worklog/{worklog_id}")
        return response.is_success
