"""Cron entry point for deleting remote generation jobs left behind by crashes."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.cms_images.config import load_config
from src.cms_images.db.db_init import build_session_factory
from src.cms_images.generation.generation_errors import TransportError
from src.cms_images.generation.generation_models import JobHandle
from src.cms_images.generation.remote_client import HttpRemoteJobClient, RemoteJobClient
from src.cms_images.repositories.job_handle_repository import JobHandleRepository


@dataclass(slots=True)
class CleanupSummary:
    outstanding: int
    deleted: int
    failed: int
    dry_run: bool


async def cleanup_handles(
    repo: JobHandleRepository,
    client: RemoteJobClient,
    *,
    older_than: datetime,
    dry_run: bool,
) -> CleanupSummary:
    """Delete every outstanding handle once; failures stay open for the next run."""
    outstanding = repo.list_outstanding(older_than=older_than)
    if dry_run:
        return CleanupSummary(outstanding=len(outstanding), deleted=0, failed=0, dry_run=True)

    deleted = 0
    failed = 0
    for record in outstanding:
        try:
            outcome = await client.delete(JobHandle(record.handle))
        except TransportError as exc:
            print(f"delete failed for {record.handle}: {exc}", file=sys.stderr)
            failed += 1
            continue
        if outcome.deleted or outcome.not_found:
            repo.mark_compensated(record.handle)
            deleted += 1
        else:
            print(
                f"delete failed for {record.handle}: status {outcome.status_code}",
                file=sys.stderr,
            )
            failed += 1
    return CleanupSummary(outstanding=len(outstanding), deleted=deleted, failed=failed, dry_run=False)


def perform_cleanup(*, dry_run: bool, min_age_minutes: int, reference_time: datetime | None = None) -> CleanupSummary:
    """Build collaborators from configuration and run one cleanup pass."""
    config = load_config()
    repo = JobHandleRepository(build_session_factory(config.database_url))
    client = HttpRemoteJobClient(
        base_url=config.generation_base_url,
        username=config.generation_username,
        password=config.generation_password,
        auth_token=config.generation_auth_token,
        timeout_seconds=config.request_timeout_seconds,
    )
    now = reference_time or datetime.utcnow()
    older_than = now - timedelta(minutes=min_age_minutes)
    return asyncio.run(cleanup_handles(repo, client, older_than=older_than, dry_run=dry_run))


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete orphaned remote generation jobs.")
    parser.add_argument("--dry-run", action="store_true", help="Only report counts without deleting jobs.")
    parser.add_argument(
        "--min-age-minutes",
        type=int,
        default=30,
        help="Only consider handles recorded at least this many minutes ago.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = perform_cleanup(dry_run=args.dry_run, min_age_minutes=args.min_age_minutes)
    except Exception as exc:
        print(f"cleanup failed: {exc}", file=sys.stderr)
        return 2

    if summary.dry_run:
        print(f"cleanup dry-run, outstanding={summary.outstanding}", file=sys.stdout)
    else:
        print(
            f"cleanup done, outstanding={summary.outstanding}, deleted={summary.deleted}, failed={summary.failed}",
            file=sys.stdout,
        )
    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
