"""Tests for the GitLab client against a mocked transport."""

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx
import pytest

from core.errors import NetworkError
from services.gitlab import GitLabClient, next_page

VIENNA = ZoneInfo("Europe/Vienna")
SINCE = datetime(2025, 3, 1)
UNTIL = datetime(2025, 3, 8)


def run(coro_fn, handler):
    async def go():
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with GitLabClient("https://gitlab.example.com", "glpat", http=http, local_tz=VIENNA) as client:
            return await coro_fn(client)

    return asyncio.run(go())


def commit_json(sha: str, when: str, message: str = "ABC-1 work") -> dict:
    return {"id": sha, "committed_date": when, "message": message, "author_email": "dev@example.com"}


def test_next_page_headers():
    assert next_page(httpx.Headers({"X-Next-Page": "3"}), 2, 100, 100) == 3
    link = '<https://gitlab.example.com/api/v4/projects/1/repository/commits?page=4&per_page=100>; rel="next"'
    assert next_page(httpx.Headers({"Link": link}), 3, 100, 100) == 4
    assert next_page(httpx.Headers(), 1, 100, 100) == 2
    assert next_page(httpx.Headers(), 1, 40, 100) is None


def test_fetch_commits_request_shape():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[commit_json("a1", "2025-03-03T08:00:00Z")])

    commits = run(lambda c: c.fetch_commits("group/app", SINCE, UNTIL), handler)
    request = seen[0]
    assert request.headers["private-token"] == "glpat"
    assert request.url.raw_path.startswith(b"/api/v4/projects/group%2Fapp/repository/commits")
    assert request.url.params["since"] == "2025-02-28T23:00:00Z"
    assert request.url.params["all"] == "true"
    assert commits[0].created_at == datetime(2025, 3, 3, 9, 0)
    assert commits[0].project_id == "group/app"


def test_fetch_commits_follows_pages():
    def handler(request):
        page = int(request.url.params["page"])
        if page == 1:
            return httpx.Response(
                200,
                json=[commit_json("a1", "2025-03-03T08:00:00+01:00"), commit_json("a2", "2025-03-03T09:00:00+01:00")],
                headers={"X-Next-Page": "2"},
            )
        return httpx.Response(200, json=[commit_json("a3", "2025-03-03T10:00:00+01:00")])

    commits = run(lambda c: c.fetch_commits("42", SINCE, UNTIL, per_page=2), handler)
    assert [c.id for c in commits] == ["a1", "a2", "a3"]


def test_fetch_commits_respects_page_cap():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=[commit_json(f"s{len(calls)}", "2025-03-03T08:00:00Z")])

    commits = run(lambda c: c.fetch_commits("42", SINCE, UNTIL, per_page=1, max_pages=3), handler)
    assert len(calls) == 3
    assert len(commits) == 3


def test_timestamp_fallbacks_and_skips():
    items = [
        {"id": "a", "created_at": "2025-03-03T08:00:00Z", "message": "ABC-1"},
        {"id": "b", "authored_date": "2025-03-03T09:00:00Z", "message": "ABC-2"},
        {"id": "c", "message": "no date"},
        {"id": "d", "committed_date": "garbage", "message": "ABC-3"},
    ]
    commits = run(lambda c: c.fetch_commits("42", SINCE, UNTIL), lambda r: httpx.Response(200, json=items))
    assert [c.id for c in commits] == ["a", "b"]


def test_first_page_failure_raises():
    with pytest.raises(NetworkError) as excinfo:
        run(lambda c: c.fetch_commits("42", SINCE, UNTIL), lambda r: httpx.Response(404))
    assert excinfo.value.status_code == 404


def test_later_page_failure_keeps_what_was_fetched():
    def handler(request):
        if request.url.params["page"] == "1":
            return httpx.Response(200, json=[commit_json("a1", "2025-03-03T08:00:00Z")], headers={"X-Next-Page": "2"})
        return httpx.Response(500)

    commits = run(lambda c: c.fetch_commits("42", SINCE, UNTIL), handler)
    assert [c.id for c in commits] == ["a1"]


def test_check_auth_falls_back_to_projects():
    def handler(request):
        if request.url.path == "/api/v4/user":
            return httpx.Response(502)
        return httpx.Response(200, json=[])

    assert run(lambda c: c.check_auth(), handler) is True
    assert run(lambda c: c.check_auth(), lambda r: httpx.Response(401)) is False
