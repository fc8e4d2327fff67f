# housekeeper/main.py
"""
Main orchestration for GitLab artifact housekeeping.

Two modes:
- summary: reconcile per-project storage statistics into the persisted summary
- deletion: delete (or dry-run) expired job artifacts for one project or all projects

Credentials are checked before any client is built; nothing touches the
network on a configuration error.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from housekeeper.config.settings import Settings, get_settings
from housekeeper.gitlab.client import GitLabClient
from housekeeper.housekeeping.deletion import ArtifactDeletionExecutor
from housekeeper.housekeeping.reconciler import StatisticsReconciler
from housekeeper.logging.logger import get_logger
from housekeeper.storage.json_store import DocumentStore, JsonDocumentStore

ALL_PROJECTS = "all"

_logger = get_logger("main")


def build_client(settings: Optional[Settings] = None) -> GitLabClient:
    """Raises ConfigurationError when GITLAB_HOST or GITLAB_PRIVATE_TOKEN is missing."""
    return GitLabClient.from_settings(settings or get_settings())


def run_summary(
    target_project_id: Optional[int] = None,
    force_update: bool = False,
    *,
    settings: Optional[Settings] = None,
    client: Optional[GitLabClient] = None,
    summary_store: Optional[DocumentStore] = None,
    raw_store: Optional[DocumentStore] = None,
) -> List[Dict[str, Any]]:
    """Load the persisted summary, reconcile it against GitLab and return the result."""
    settings = settings or get_settings()
    summary_store = summary_store or JsonDocumentStore(settings.summary_path)
    raw_store = raw_store or JsonDocumentStore(settings.raw_statistics_path)

    _logger.info("Starting GitLab artifact housekeeping summary...", extra={
        "target_project_id": target_project_id,
        "force_update": force_update,
    })

    existing = summary_store.load()
    own_client = client is None
    client = client or build_client(settings)
    try:
        reconciler = StatisticsReconciler(client, summary_store, raw_store)
        return reconciler.reconcile(existing, force_update=force_update, target_project_id=target_project_id)
    finally:
        if own_client:
            client.close()


def run_deletion(
    target: Union[int, str],
    dry_run: bool = True,
    debug: bool = True,
    *,
    settings: Optional[Settings] = None,
    client: Optional[GitLabClient] = None,
) -> bool:
    """Delete expired artifacts for one project id, or for every project when target is "all"."""
    settings = settings or get_settings()
    own_client = client is None
    client = client or build_client(settings)
    try:
        executor = ArtifactDeletionExecutor(
            client,
            dry_run=dry_run,
            debug=debug,
            grace_days=settings.retention.grace_days,
            assumed_lifetime_days=settings.retention.assumed_lifetime_days,
        )
        if target == ALL_PROJECTS:
            return executor.run_all()
        return executor.run(int(target))
    finally:
        if own_client:
            client.close()
