# housekeeper/housekeeping/deletion.py
"""
Expired job artifact deletion.

Flow per project:
1. List every job (paginated). A listing failure fails the project.
2. Decide expiry for each job against one reference time captured at start.
3. Expired jobs: live mode issues DELETE .../artifacts, dry-run only logs.
   A failed delete is logged and counted; the remaining jobs are still processed.

run_all() walks every non-archived project sequentially; one project's
failure never stops the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from housekeeper.gitlab.client import GitLabAPIError, GitLabClient
from housekeeper.housekeeping.expiration import (
    DEFAULT_ASSUMED_LIFETIME_DAYS,
    DEFAULT_GRACE_DAYS,
    Job,
    is_expired,
    resolve_expiry,
)
from housekeeper.logging.logger import (
    get_logger,
    log_api_error,
    log_deletion_complete,
    log_job_decision,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeletionOutcome:
    project_id: int
    dry_run: bool
    success: bool = True
    jobs_scanned: int = 0
    jobs_expired: int = 0
    artifacts_deleted: int = 0
    delete_failures: int = 0
    jobs_undecidable: int = 0


class ArtifactDeletionExecutor:
    def __init__(
        self,
        client: GitLabClient,
        *,
        dry_run: bool = True,
        debug: bool = False,
        grace_days: int = DEFAULT_GRACE_DAYS,
        assumed_lifetime_days: int = DEFAULT_ASSUMED_LIFETIME_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.client = client
        self.dry_run = dry_run
        self.debug = debug
        self.grace_days = grace_days
        self.assumed_lifetime_days = assumed_lifetime_days
        self.clock = clock
        self.logger = get_logger("housekeeping.deletion")
        # Per-job chatter goes to INFO only in debug mode
        self._detail_level = logging.INFO if debug else logging.DEBUG

    def _announce(self, scope: str) -> None:
        self.logger.info(f"Starting deletion of old GitLab job artifacts for {scope}...")
        if self.dry_run:
            self.logger.info("DRY RUN mode: No artifacts will be deleted.")
        if self.debug:
            self.logger.info("DEBUG mode: Detailed logging enabled.")

    def run(self, project_id: int) -> bool:
        """Delete (or report) expired artifacts for one project. False only if the job listing failed."""
        return self.delete_project_artifacts(project_id).success

    def delete_project_artifacts(self, project_id: int) -> DeletionOutcome:
        self._announce(f"project ID: {project_id}")
        outcome = DeletionOutcome(project_id=project_id, dry_run=self.dry_run)

        try:
            raw_jobs = self.client.list_jobs(project_id)
        except GitLabAPIError as e:
            log_api_error(
                self.logger,
                f"An error occurred listing jobs for project ID {project_id}",
                e,
                project_id=project_id,
            )
            outcome.success = False
            return outcome

        self.logger.log(self._detail_level, f"Found {len(raw_jobs)} jobs for project ID {project_id}.")
        reference_time = self.clock()

        for raw in raw_jobs:
            outcome.jobs_scanned += 1
            try:
                job = Job.model_validate(raw)
            except ValidationError as e:
                self.logger.warning(f"Unreadable job record in project {project_id}. Skipping.", extra={
                    "project_id": project_id,
                    "job_id": raw.get("id") if isinstance(raw, dict) else None,
                    "error": str(e),
                })
                outcome.jobs_undecidable += 1
                continue

            expires_at, source = resolve_expiry(job, self.assumed_lifetime_days)
            expired = is_expired(
                job,
                reference_time,
                grace_days=self.grace_days,
                assumed_lifetime_days=self.assumed_lifetime_days,
            )
            level = logging.INFO if expired else self._detail_level
            log_job_decision(self.logger, level, project_id, job.id, expires_at, source, expired)

            if expires_at is None:
                outcome.jobs_undecidable += 1
                continue
            if not expired:
                continue

            outcome.jobs_expired += 1
            if self.dry_run:
                self.logger.info(
                    f"DRY RUN: Would delete artifacts for job {job.id} in project {project_id}.",
                    extra={"project_id": project_id, "job_id": job.id},
                )
                continue

            self.logger.info(f"Attempting to delete artifacts for job {job.id} in project {project_id}...")
            try:
                self.client.delete_job_artifacts(project_id, job.id)
            except GitLabAPIError as e:
                outcome.delete_failures += 1
                log_api_error(
                    self.logger,
                    f"Error deleting artifacts for job {job.id} in project {project_id}",
                    e,
                    project_id=project_id,
                    job_id=job.id,
                )
                continue
            outcome.artifacts_deleted += 1
            self.logger.info(f"Successfully deleted artifacts for job {job.id}.")

        log_deletion_complete(
            self.logger,
            project_id=project_id,
            dry_run=self.dry_run,
            jobs_scanned=outcome.jobs_scanned,
            jobs_expired=outcome.jobs_expired,
            artifacts_deleted=outcome.artifacts_deleted,
            delete_failures=outcome.delete_failures,
            jobs_undecidable=outcome.jobs_undecidable,
        )
        return outcome

    def run_all(self) -> bool:
        """Run deletion for every project. False only if the project listing failed."""
        self._announce("ALL projects")

        try:
            projects = self.client.list_projects()
        except GitLabAPIError as e:
            log_api_error(self.logger, "An error occurred during bulk artifact deletion", e)
            return False

        self.logger.info(f"Found {len(projects)} projects.")
        failed = []
        for project in projects:
            project_id = project["id"]
            self.logger.info(
                f"Processing project: {project.get('name')} (ID: {project_id}) for artifact deletion."
            )
            if not self.run(project_id):
                failed.append(project_id)

        if failed:
            self.logger.warning(f"Artifact deletion failed for {len(failed)} project(s).", extra={
                "failed_project_ids": failed,
            })
        self.logger.info("Deletion of expired artifacts for ALL projects completed.")
        return True

