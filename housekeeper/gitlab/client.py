# housekeeper/gitlab/client.py
"""
Purpose: Thin synchronous GitLab REST v4 client used by housekeeping runs.

- paginate(): walk a list endpoint page by page until X-Next-Page is empty
- Projects, project statistics, jobs and job-artifact deletion
- Every failure surfaces as GitLabAPIError (status code + body when available)
- No retries here; callers decide how a failure affects their unit of work
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from housekeeper import HousekeepingError
from housekeeper.config.settings import Settings, get_settings
from housekeeper.logging.logger import get_logger

NEXT_PAGE_HEADER = "X-Next-Page"
DEFAULT_PER_PAGE = 100


class GitLabAPIError(HousekeepingError):
    """Raised when a GitLab request fails at the transport or HTTP level."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class GitLabClient:
    def __init__(
        self,
        base_url: str,
        private_token: str,
        *,
        per_page: int = DEFAULT_PER_PAGE,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.per_page = per_page
        self.logger = get_logger("gitlab.client")
        self._http = httpx.Client(
            base_url=base_url,
            headers={"PRIVATE-TOKEN": private_token},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "GitLabClient":
        settings = settings or get_settings()
        settings.require_credentials()
        return cls(
            settings.api_base_url,
            settings.private_token,
            per_page=settings.retention.per_page,
            timeout=settings.http_request_timeout_seconds,
            transport=transport,
        )

    def __enter__(self) -> "GitLabClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            response = self._http.request(method, path, params=params)
        except httpx.HTTPError as exc:
            raise GitLabAPIError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            raise GitLabAPIError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
                body=_response_body(response),
            )
        return response

    def _json(self, response: httpx.Response, method: str, path: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise GitLabAPIError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    def paginate(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Fetch every page of a list endpoint and concatenate the results in order.

        Stops when the response carries no (or an empty) X-Next-Page header;
        there is no upper bound on the number of pages.
        """
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = dict(params or {})
            query.update({"per_page": self.per_page, "page": page})
            response = self._request("GET", path, params=query)

            batch = self._json(response, "GET", path)
            if not isinstance(batch, list):
                raise GitLabAPIError(
                    f"GET {path} returned a non-list page",
                    status_code=response.status_code,
                    body=batch,
                )
            items.extend(batch)

            if not response.headers.get(NEXT_PAGE_HEADER, "").strip():
                break
            page += 1

        self.logger.debug(f"Fetched {len(items)} items from {path} in {page} page(s)")
        return items

    # =========================================================================
    # Endpoints
    # =========================================================================

    def list_projects(self) -> List[Dict[str, Any]]:
        return self.paginate("/projects", {"archived": "false", "simple": "true"})

    def get_project(self, project_id: int, statistics: bool = True) -> Dict[str, Any]:
        params = {"statistics": "true"} if statistics else None
        path = f"/projects/{project_id}"
        project = self._json(self._request("GET", path, params=params), "GET", path)
        if not isinstance(project, dict):
            raise GitLabAPIError(
                f"GET {path} returned a non-object body",
                body=project,
            )
        return project

    def list_jobs(self, project_id: int) -> List[Dict[str, Any]]:
        return self.paginate(f"/projects/{project_id}/jobs")

    def delete_job_artifacts(self, project_id: int, job_id: int) -> None:
        self._request("DELETE", f"/projects/{project_id}/jobs/{job_id}/artifacts")
