# housekeeper/cli.py
"""
Command line entry point for GitLab artifact housekeeping.

Usage:
    housekeeper                                  # summary for all projects
    housekeeper --project-id=42                  # summary for one project
    housekeeper --force-update                   # ignore cached summary entries
    housekeeper --delete-project-id=42 --dry-run # report expired artifacts in one project
    housekeeper --delete-project-id=all          # delete expired artifacts everywhere

Exit codes: 0 on completion (per-project failures are logged, not fatal),
1 on configuration errors, invalid arguments or a failed fetch of the
explicitly requested project. A failed project listing is logged and exits 0.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List, Optional, Sequence, Union

from housekeeper.config.settings import ConfigurationError, get_settings
from housekeeper.gitlab.client import GitLabAPIError
from housekeeper.housekeeping.reconciler import TargetProjectFetchError, top_entries
from housekeeper.logging.logger import get_logger, log_api_error
from housekeeper.main import ALL_PROJECTS, run_deletion, run_summary

logger = get_logger("cli")


def _deletion_target(value: str) -> Union[int, str]:
    if value.strip().lower() == ALL_PROJECTS:
        return ALL_PROJECTS
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid project ID provided: {value}. Please provide a number or 'all'."
        ) from None


def print_summary(summary: List[Dict[str, Any]], top_n: int = 10) -> None:
    print("\n--- Final Artifact Size Summary ---")
    for entry in summary:
        error = f" (Error: {entry['error']})" if entry.get("error") else ""
        print(
            f"Project: {entry.get('projectName')} (ID: {entry.get('projectId')})"
            f" - Build Artifacts Size: {entry.get('buildArtifactsSizeMB')} MB{error}"
        )

    print(f"\n--- Top {top_n} Projects by Artifact Size ---")
    for index, entry in enumerate(top_entries(summary, top_n), start=1):
        print(
            f"{index}. Project: {entry.get('projectName')} (ID: {entry.get('projectId')})"
            f" - Build Artifacts Size: {entry.get('buildArtifactsSizeMB')} MB"
        )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="housekeeper",
        description="Summarize GitLab build artifact usage and delete expired job artifacts.",
    )
    p.add_argument("--project-id", type=int, default=None, help="Limit the summary run to one project.")
    p.add_argument("--force-update", action="store_true", help="Re-fetch projects already in the summary.")
    p.add_argument(
        "--delete-project-id",
        type=_deletion_target,
        default=None,
        help="Delete expired artifacts for a project ID, or 'all' for every project.",
    )
    p.add_argument("--dry-run", action="store_true", help="Report expired artifacts without deleting them.")
    p.add_argument(
        "--debug",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Log every job's expiry decision during deletion (default: on).",
    )
    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        args = parse_args(argv)
    except SystemExit as e:
        return 0 if e.code == 0 else 1

    settings = get_settings()
    try:
        settings.require_credentials()
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    if args.delete_project_id is not None:
        target = args.delete_project_id
        scope = "all projects" if target == ALL_PROJECTS else f"project ID: {target}"
        logger.info(f"Initiating artifact deletion for {scope}")
        if run_deletion(target, dry_run=args.dry_run, debug=args.debug, settings=settings):
            logger.info(f"Artifact deletion process for {scope} completed.")
        else:
            logger.error(f"Artifact deletion process for {scope} failed.")
        return 0

    try:
        summary = run_summary(args.project_id, args.force_update, settings=settings)
    except TargetProjectFetchError as e:
        logger.error(str(e))
        return 1
    except GitLabAPIError as e:
        log_api_error(logger, "Could not list projects", e)
        return 0

    print_summary(summary, settings.retention.top_n)
    return 0


if __name__ == "__main__":
    sys.exit(main())
