"""AWS Lambda handler for GitLab org ingestion.

Deployed as a Lambda function triggered by an EventBridge schedule; each
invocation runs one full pass. EventBridge delivers at most one scheduled
invocation per rule tick, so the handler itself does no locking.

Event format (all keys optional):
  {"dry_run": true}
"""

from __future__ import annotations

import json
import logging
import os

from gitlab_org_ingestion.config import load_config
from gitlab_org_ingestion.db import Database, DatabaseConnection
from gitlab_org_ingestion.logging_config import configure_logging
from gitlab_org_ingestion.providers.gitlab_org import GitLabOrgEntityProvider

logger = logging.getLogger("ingestion.lambda")


class _DiscardingConnection:
    """Dry runs build every entity but publish nothing."""

    def apply_full_mutation(self, entities) -> None:
        logger.info("Dry run built %d entities", len(entities))


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    dry_run = bool((event or {}).get("dry_run"))

    config = load_config(with_database=not dry_run)
    provider = GitLabOrgEntityProvider.from_config(config)
    name = provider.get_provider_name()
    logger.info("Lambda invoked for provider=%s dry_run=%s", name, dry_run)

    db = None if dry_run else Database(config.database)
    try:
        if db is None:
            provider.connect(_DiscardingConnection())
        else:
            provider.connect(DatabaseConnection(db, name))
        results = provider.read()
        logger.info("Sync complete for %s: %s", name, results)
        return {
            "statusCode": 200,
            "body": json.dumps({"provider": name, "results": results}),
        }
    except Exception as exc:
        logger.error("Sync failed for %s: %s", name, exc, exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({"provider": name, "error": str(exc)}),
        }
    finally:
        if db is not None:
            db.close()
