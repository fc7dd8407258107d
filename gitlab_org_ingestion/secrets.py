"""Secret reference resolution for GitLab tokens and the database URL.

A value may be a literal or a reference into a cloud secret store:

  - "aws-secret://secret-name"         -> AWS Secrets Manager
  - "aws-secret://secret-name#key"     -> AWS Secrets Manager (JSON key)
  - "gcp-secret://NAME"                -> GCP Secret Manager, latest version
  - "gcp-secret://projects/P/secrets/NAME/versions/V"
"""

from __future__ import annotations

import json
import logging
import os

from gitlab_org_ingestion.errors import ConfigurationError

logger = logging.getLogger("ingestion.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"


def resolve_secret(value: str) -> str:
    """Resolve a secret reference to its plaintext value."""
    if value.startswith(_AWS_PREFIX):
        return _resolve_aws_secret(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
    return value


def _resolve_aws_secret(ref: str) -> str:
    import boto3

    secret_name, _, json_key = ref.partition("#")
    region = os.environ.get("AWS_REGION", "us-east-1")
    client = boto3.client("secretsmanager", region_name=region)

    logger.debug("Resolving AWS secret %s", secret_name)
    secret_string = client.get_secret_value(SecretId=secret_name)["SecretString"]
    if json_key:
        try:
            return str(json.loads(secret_string)[json_key])
        except (ValueError, KeyError) as exc:
            raise ConfigurationError(
                f"AWS secret {secret_name} has no JSON key {json_key!r}"
            ) from exc
    return secret_string


def _resolve_gcp_secret(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            raise ConfigurationError(
                f"Cannot resolve gcp-secret://{ref}: set GCP_PROJECT_ID"
            )
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    logger.debug("Resolving GCP secret %s", name)
    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")


def resolve_database_url() -> str:
    """Resolve DATABASE_URL from env, falling back to PG_* variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url:
        return resolve_secret(url)

    host = os.environ.get("PG_HOST", "localhost")
    port = os.environ.get("PG_PORT", "5432")
    user = os.environ.get("PG_USER", "catalog")
    password = resolve_secret(os.environ.get("PG_PASSWORD", "localdev-change-me"))
    database = os.environ.get("PG_DATABASE", "catalog")
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"
