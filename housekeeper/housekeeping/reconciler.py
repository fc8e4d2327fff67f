# housekeeper/housekeeping/reconciler.py
"""
Statistics reconciliation: merge fresh GitLab project statistics into the persisted summary.

Architecture:
- The summary is a list of SummaryEntry dicts keyed by projectId (one entry per project)
- Fleet runs list projects cheaply, then fetch statistics per project
- A cached entry with statistics and no error is reused verbatim unless force_update
- A failed statistics fetch becomes an entry-level error, never a run-level one
- A failed fetch of an explicitly targeted project is fatal (TargetProjectFetchError)
- Raw snapshot saved once per run (wholesale); summary saved after every upsert,
  so an interrupted run resumes where it stopped
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from housekeeper import HousekeepingError
from housekeeper.gitlab.client import GitLabAPIError, GitLabClient
from housekeeper.logging.logger import get_logger, log_api_error, log_reconcile_complete
from housekeeper.storage.json_store import DocumentStore

BYTES_PER_MB = 1024 * 1024
SIZE_UNAVAILABLE_ERROR = "Build artifacts size not available in project statistics."


class TargetProjectFetchError(HousekeepingError):
    """Raised when an explicitly requested project cannot be fetched."""


@dataclass(frozen=True)
class SummaryEntry:
    project_id: int
    project_name: Optional[str]
    build_artifacts_size_bytes: int
    statistics: Optional[Dict[str, Any]]
    error: Optional[str]
    timestamp: str

    @property
    def build_artifacts_size_mb(self) -> str:
        return f"{self.build_artifacts_size_bytes / BYTES_PER_MB:.2f}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "projectName": self.project_name,
            "buildArtifactsSizeBytes": self.build_artifacts_size_bytes,
            "buildArtifactsSizeMB": self.build_artifacts_size_mb,
            "statistics": self.statistics,
            "error": self.error,
            "timestamp": self.timestamp,
        }


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def find_entry(summary: List[Dict[str, Any]], project_id: int) -> Optional[Dict[str, Any]]:
    return next((entry for entry in summary if entry.get("projectId") == project_id), None)


def has_valid_cached_entry(entry: Optional[Dict[str, Any]]) -> bool:
    """True when a summary entry can stand in for a fresh fetch: present, error-free, with statistics."""
    return entry is not None and not entry.get("error") and entry.get("statistics") is not None


def upsert_entry(summary: List[Dict[str, Any]], entry: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Replace the entry with the same projectId in place, or append. Mutates and returns summary."""
    for index, existing in enumerate(summary):
        if existing.get("projectId") == entry["projectId"]:
            summary[index] = entry
            return summary
    summary.append(entry)
    return summary


def build_summary_entry(project: Dict[str, Any], timestamp: str) -> SummaryEntry:
    statistics = project.get("statistics")
    error = project.get("error")

    size = statistics.get("job_artifacts_size") if isinstance(statistics, dict) else None
    # bool is an int subclass; strings and other junk count as missing
    if isinstance(size, bool) or not isinstance(size, (int, float)) or not math.isfinite(size):
        size = 0
        error = SIZE_UNAVAILABLE_ERROR

    return SummaryEntry(
        project_id=project["id"],
        project_name=project.get("name"),
        build_artifacts_size_bytes=max(int(size), 0),
        statistics=statistics,
        error=error,
        timestamp=timestamp,
    )


def top_entries(summary: List[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
    """Largest buildArtifactsSizeBytes first; sorted() is stable so ties keep insertion order."""
    ranked = sorted(summary, key=lambda e: e.get("buildArtifactsSizeBytes") or 0, reverse=True)
    return ranked[:limit]


class StatisticsReconciler:
    def __init__(
        self,
        client: GitLabClient,
        summary_store: DocumentStore,
        raw_store: DocumentStore,
        clock: Callable[[], str] = utc_timestamp,
    ) -> None:
        self.client = client
        self.summary_store = summary_store
        self.raw_store = raw_store
        self.clock = clock
        self.logger = get_logger("housekeeping.reconciler")

    # =========================================================================
    # Project collection
    # =========================================================================

    def _fetch_target(self, project_id: int) -> Dict[str, Any]:
        self.logger.info(f"Fetching project with ID: {project_id}")
        try:
            project = self.client.get_project(project_id, statistics=True)
        except GitLabAPIError as e:
            log_api_error(self.logger, f"Error fetching project {project_id}", e, project_id=project_id)
            raise TargetProjectFetchError(f"Error fetching project {project_id}: {e}") from e
        self.logger.info(f"Found project: {project.get('name')} (ID: {project.get('id')})")
        return project

    def _fetch_with_statistics(self, project: Dict[str, Any]) -> Dict[str, Any]:
        project_id = project["id"]
        self.logger.info(f"Fetching statistics for project: {project.get('name')} (ID: {project_id})")
        try:
            return self.client.get_project(project_id, statistics=True)
        except GitLabAPIError as e:
            message = f"Error fetching statistics for project {project_id}: {e}"
            log_api_error(self.logger, "Statistics fetch failed", e, project_id=project_id)
            enriched = dict(project)
            enriched["statistics"] = {}
            enriched["error"] = message
            return enriched

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile(
        self,
        existing_summary: List[Dict[str, Any]],
        force_update: bool = False,
        target_project_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Merge fresh statistics into existing_summary and return the updated summary.

        The input list is not mutated. The raw snapshot is saved once all
        projects are collected; the summary is saved after every project.

        Raises:
            TargetProjectFetchError: target_project_id was given and could not be fetched
            GitLabAPIError: the project listing itself failed
        """
        summary = [dict(entry) for entry in existing_summary]
        # (project record, cached summary entry or None) in listing order
        collected: List[Tuple[Dict[str, Any], Optional[Dict[str, Any]]]] = []
        skipped = fetched = failures = 0

        if target_project_id is not None:
            collected.append((self._fetch_target(target_project_id), None))
            fetched = 1
        else:
            projects = self.client.list_projects()
            self.logger.info(f"Found {len(projects)} projects.")

            for project in projects:
                cached = find_entry(summary, project["id"])
                if not force_update and has_valid_cached_entry(cached):
                    self.logger.info(
                        f"Skipping project: {project.get('name')} (ID: {project['id']}) - data already "
                        "exists and no error. Use --force-update to re-process."
                    )
                    collected.append((
                        {"id": cached["projectId"], "name": cached.get("projectName"), "statistics": cached["statistics"]},
                        cached,
                    ))
                    skipped += 1
                    continue

                self.logger.info(f"Processing project: {project.get('name')} (ID: {project['id']})")
                enriched = self._fetch_with_statistics(project)
                if enriched.get("error"):
                    failures += 1
                fetched += 1
                collected.append((enriched, None))

        self.raw_store.save([record for record, _ in collected])
        self.logger.info("Raw project statistics saved", extra={"projects": len(collected)})

        for record, cached in collected:
            if cached is not None:
                continue

            self.logger.info(f"Generating summary for project: {record.get('name')} (ID: {record['id']})")
            entry = build_summary_entry(record, self.clock())
            if entry.error == SIZE_UNAVAILABLE_ERROR:
                self.logger.warning(
                    f"Warning: Project {entry.project_name} (ID: {entry.project_id}) - {SIZE_UNAVAILABLE_ERROR}"
                )

            upsert_entry(summary, entry.to_dict())
            self.summary_store.save(summary)
            self.logger.debug(f"Summary for project {entry.project_name} saved", extra={
                "project_id": entry.project_id,
            })

        log_reconcile_complete(
            self.logger,
            projects_seen=len(collected),
            projects_skipped=skipped,
            projects_fetched=fetched,
            fetch_failures=failures,
            summary_size=len(summary),
        )
        return summary
