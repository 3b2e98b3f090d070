"""
GitLab REST client for commit history.
"""

import re
from datetime import datetime, timezone, tzinfo
from urllib.parse import quote

import httpx

from core.config import GITLAB_MAX_PAGES, HTTP_TIMEOUT_SECONDS, LOCAL_TIMEZONE
from core.errors import NetworkError
from models.events import SourceCommit

DEFAULT_PER_PAGE = 100
_LINK_NEXT = re.compile(r'<[^>]*[?&]page=(\d+)[^>]*>;\s*rel="next"')


def next_page(headers: httpx.Headers, page: int, received: int, per_page: int) -> int | None:
    """
    Determine the page to fetch after `page`.

    X-Next-Page wins, then a Link rel="next" header. Without either, a short
    page ends the walk and a full one continues with page + 1.
    """
    value = headers.get("x-next-page", "").strip()
    if not value:
        match = _LINK_NEXT.search(headers.get("link", ""))
        if match:
            value = match.group(1)
    if value:
        try:
            return int(value)
        except ValueError:
            return page + 1
    if received < per_page:
        return None
    return page + 1


def _to_local(value: str, local_tz: tzinfo) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(local_tz).replace(tzinfo=None)


def _utc_iso(dt: datetime, local_tz: tzinfo) -> str:
    aware = dt.replace(tzinfo=local_tz) if dt.tzinfo is None else dt
    return aware.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GitLabClient:
    """Async client for the GitLab v4 API using a personal access token."""

    def __init__(
        self,
        base_url: str,
        token: str,
        http: httpx.AsyncClient | None = None,
        local_tz: tzinfo = LOCAL_TIMEZONE,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._http = http or httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        self._local_tz = local_tz

    async def __aenter__(self) -> "GitLabClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        try:
            return await self._http.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"PRIVATE-TOKEN": self.token, "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"GET {path} failed: {e}") from e

    async def check_auth(self) -> bool:
        if not self.base_url or not self.token.strip():
            return False
        try:
            response = await self._get("/api/v4/user")
            if response.status_code == 200:
                return True
            if response.status_code in (401, 403):
                return False
        except NetworkError:
            pass
        response = await self._get("/api/v4/projects", params={"per_page": 1, "membership": "true"})
        return response.status_code == 200

    async def fetch_commits(
        self,
        project_id: str,
        since: datetime,
        until: datetime,
        author_email: str | None = None,
        per_page: int = DEFAULT_PER_PAGE,
        max_pages: int = GITLAB_MAX_PAGES,
    ) -> list[SourceCommit]:
        """
        Commits of one project within [since, until).

        Args:
            project_id: Numeric id or full path of the project
            since: Window start (naive local time)
            until: Window end (naive local time)
            author_email: Optional server-side author filter
            per_page: Page size
            max_pages: Upper bound on pages fetched

        Returns:
            Commits with timestamps converted to naive local time

        Raises:
            NetworkError: On transport failure or a non-200 first page
        """
        path = f"/api/v4/projects/{quote(str(project_id), safe='')}/repository/commits"
        commits = []
        page = 1
        fetched = 0

        while page is not None and fetched < max_pages:
            params = {
                "since": _utc_iso(since, self._local_tz),
                "until": _utc_iso(until, self._local_tz),
                "per_page": per_page,
                "page": page,
                "all": "true",
            }
            if author_email and author_email.strip():
                params["author_email"] = author_email.strip()

            response = await self._get(path, params=params)
            if response.status_code != 200:
                if fetched == 0:
                    raise NetworkError(
                        f"Commits of project {project_id} returned {response.status_code}",
                        response.status_code,
                    )
                break
            fetched += 1

            items = response.json()
            if not items:
                break

            for item in items:
                raw_ts = str(
                    item.get("committed_date") or item.get("created_at") or item.get("authored_date") or ""
                )
                created = _to_local(raw_ts, self._local_tz) if raw_ts else None
                if created is None:
                    continue
                commits.append(
                    SourceCommit(
                        id=str(item.get("id") or ""),
                        project_id=str(project_id),
                        created_at=created,
                        message=str(item.get("message") or ""),
                        author_email=str(item.get("author_email") or "").strip(),
                        committer_email=str(item.get("committer_email") or "").strip(),
                        author_name=str(item.get("author_name") or "").strip(),
                    )
                )

            page = next_page(response.headers, page, len(items), per_page)
        return commits
