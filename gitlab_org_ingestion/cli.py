"""CLI entry point: sync, scheduler."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from gitlab_org_ingestion.base_provider import DeferredEntity
from gitlab_org_ingestion.config import load_config
from gitlab_org_ingestion.db import Database, DatabaseConnection
from gitlab_org_ingestion.errors import IngestionError
from gitlab_org_ingestion.logging_config import configure_logging
from gitlab_org_ingestion.providers.gitlab_org import GitLabOrgEntityProvider

logger = logging.getLogger("ingestion.cli")


class StdoutConnection:
    """Writes the published entities to stdout as a JSON array."""

    def apply_full_mutation(self, entities: list[DeferredEntity]) -> None:
        json.dump([e.entity for e in entities], sys.stdout, indent=2)
        sys.stdout.write("\n")


def cmd_sync(args: argparse.Namespace) -> None:
    """Run one manual pass over every configured target."""
    config = load_config(with_database=not args.dry_run)
    provider = GitLabOrgEntityProvider.from_config(config)

    if args.dry_run:
        provider.connect(StdoutConnection())
        results = provider.read()
        logger.info("Dry run complete: %s", results)
        return

    db = Database(config.database)
    try:
        provider.connect(DatabaseConnection(db, provider.get_provider_name()))
        logger.info("Starting sync for %s", provider.get_provider_name())
        results = provider.read()
        logger.info("Sync results for %s: %s", provider.get_provider_name(), results)
    finally:
        db.close()


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from gitlab_org_ingestion.scheduler import start_scheduler

    config = load_config()
    db = Database(config.database)
    try:
        start_scheduler(config, db)
    finally:
        db.close()


def main() -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    parser = argparse.ArgumentParser(
        prog="gitlab-org-ingestion",
        description="Ingest GitLab users and groups into the catalog",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one-shot sync")
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print entities as JSON instead of writing to the database",
    )
    sync_parser.set_defaults(func=cmd_sync)

    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled sync loop")
    sched_parser.set_defaults(func=cmd_scheduler)

    args = parser.parse_args()
    try:
        args.func(args)
    except IngestionError as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)
    except Exception as exc:
        logger.error("%s failed unexpectedly: %s", args.command, exc, exc_info=True)
        sys.exit(1)
