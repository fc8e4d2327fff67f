"""
Shared fixtures: isolated settings and an in-memory GitLab served through httpx.MockTransport.
"""

from __future__ import annotations

import os
import tempfile

# Settings and loggers read the environment on first use; point them at a scratch dir before any import.
_DATA_DIR = tempfile.mkdtemp(prefix="housekeeper-tests-")
os.environ["GITLAB_HOST"] = "https://gitlab.example.com"
os.environ["GITLAB_PRIVATE_TOKEN"] = "test-token"
os.environ["GITLAB_LOG_DIR"] = os.path.join(_DATA_DIR, "logs")
os.environ["GITLAB_SUMMARY_PATH"] = os.path.join(_DATA_DIR, "gitlab_artifact_summary.json")
os.environ["GITLAB_RAW_STATISTICS_PATH"] = os.path.join(_DATA_DIR, "gitlab_raw_project_statistics.json")

import re
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx
import pytest

from housekeeper.config.settings import reset_settings
from housekeeper.gitlab.client import GitLabClient

BASE_URL = "https://gitlab.example.com/api/v4"

_PROJECT = re.compile(r"^/api/v4/projects/(\d+)$")
_JOBS = re.compile(r"^/api/v4/projects/(\d+)/jobs$")
_ARTIFACTS = re.compile(r"^/api/v4/projects/(\d+)/jobs/(\d+)/artifacts$")


class FakeGitLab:
    """Minimal GitLab v4 double: projects, statistics, jobs and artifact deletion."""

    def __init__(self) -> None:
        self.projects: List[Dict[str, Any]] = []
        self.statistics: Dict[int, Dict[str, Any]] = {}
        self.jobs: Dict[int, List[Dict[str, Any]]] = {}
        self.failing_projects: Set[int] = set()
        self.failing_job_lists: Set[int] = set()
        self.failing_deletes: Set[Tuple[int, int]] = set()
        # paths answered with a 200 HTML page, as a proxy or sign-in redirect would
        self.html_paths: Set[str] = set()
        self.fail_project_list = False
        self.requests: List[httpx.Request] = []
        self.deleted: List[Tuple[int, int]] = []

    def add_project(self, project_id: int, name: str, artifacts_size: Optional[int] = None) -> None:
        self.projects.append({"id": project_id, "name": name})
        stats: Dict[str, Any] = {"commit_count": 1, "storage_size": 4096}
        if artifacts_size is not None:
            stats["job_artifacts_size"] = artifacts_size
        self.statistics[project_id] = stats

    def count(self, method: str, pattern: str = "") -> int:
        return sum(1 for r in self.requests if r.method == method and pattern in r.url.path)

    @staticmethod
    def _page(items: List[Dict[str, Any]], request: httpx.Request) -> httpx.Response:
        per_page = int(request.url.params.get("per_page", "20"))
        page = int(request.url.params.get("page", "1"))
        start = (page - 1) * per_page
        chunk = items[start:start + per_page]
        has_next = start + per_page < len(items)
        return httpx.Response(200, json=chunk, headers={"X-Next-Page": str(page + 1) if has_next else ""})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.headers.get("PRIVATE-TOKEN") != "test-token":
            return httpx.Response(401, json={"message": "401 Unauthorized"})

        if path in self.html_paths:
            return httpx.Response(200, text="<html><body>Sign in</body></html>", headers={"Content-Type": "text/html"})

        if request.method == "GET" and path == "/api/v4/projects":
            if self.fail_project_list:
                return httpx.Response(500, json={"message": "500 Internal Server Error"})
            return self._page(self.projects, request)

        match = _PROJECT.match(path)
        if request.method == "GET" and match:
            project_id = int(match.group(1))
            project = next((p for p in self.projects if p["id"] == project_id), None)
            if project is None:
                return httpx.Response(404, json={"message": "404 Project Not Found"})
            if project_id in self.failing_projects:
                return httpx.Response(503, json={"message": "503 Service Unavailable"})
            body = dict(project)
            if request.url.params.get("statistics") == "true":
                body["statistics"] = dict(self.statistics.get(project_id, {}))
            return httpx.Response(200, json=body)

        match = _JOBS.match(path)
        if request.method == "GET" and match:
            project_id = int(match.group(1))
            if project_id in self.failing_job_lists:
                return httpx.Response(403, json={"message": "403 Forbidden"})
            return self._page(self.jobs.get(project_id, []), request)

        match = _ARTIFACTS.match(path)
        if request.method == "DELETE" and match:
            key = (int(match.group(1)), int(match.group(2)))
            if key in self.failing_deletes:
                return httpx.Response(500, json={"message": "500 Internal Server Error"})
            self.deleted.append(key)
            return httpx.Response(204)

        return httpx.Response(404, json={"message": "404 Not Found"})


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def fake_gitlab() -> FakeGitLab:
    return FakeGitLab()


@pytest.fixture
def client(fake_gitlab: FakeGitLab):
    with GitLabClient(
        BASE_URL,
        "test-token",
        per_page=2,
        transport=httpx.MockTransport(fake_gitlab.handler),
    ) as c:
        yield c
