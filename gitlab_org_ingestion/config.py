"""Configuration via environment variables with cloud-native secret support.

Two things are configured:
  - provider targets: which GitLab URLs to ingest users and groups from
  - integrations: per GitLab instance base URL, API URL and token

Locally, plain env vars or a .env file are used; tokens and the database
password may be aws-secret:// or gcp-secret:// references.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from gitlab_org_ingestion.errors import ConfigurationError
from gitlab_org_ingestion.secrets import resolve_database_url, resolve_secret

GITLAB_SAAS_HOST = "gitlab.com"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    min_connections: int = 1
    max_connections: int = 4


@dataclass(frozen=True)
class GitLabIntegrationConfig:
    host: str
    api_base_url: str
    base_url: str
    token: str = ""


@dataclass(frozen=True)
class ProviderConfig:
    target: str
    users_ingest: bool = True
    groups_ingest: bool = True
    groups_delimiter: str = "."
    group_type: str = "team"


@dataclass(frozen=True)
class SchedulerConfig:
    frequency_minutes: int = 30
    misfire_grace_time: int = 300
    initial_delay_seconds: int = 0


@dataclass(frozen=True)
class IngestionConfig:
    provider_id: str
    providers: list[ProviderConfig]
    integrations: list[GitLabIntegrationConfig]
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    database: Optional[DatabaseConfig] = None
    request_timeout: float = 30.0


def integration_from_dict(data: dict[str, Any]) -> GitLabIntegrationConfig:
    """Build an integration config, defaulting URLs from the host."""
    host = data.get("host", "")
    if not host:
        raise ConfigurationError(f"GitLab integration is missing a host: {data}")
    base_url = data.get("baseUrl") or data.get("base_url") or f"https://{host}"
    api_base_url = (
        data.get("apiBaseUrl") or data.get("api_base_url") or f"{base_url.rstrip('/')}/api/v4"
    )
    return GitLabIntegrationConfig(
        host=host,
        api_base_url=api_base_url.rstrip("/"),
        base_url=base_url.rstrip("/"),
        token=resolve_secret(data.get("token", "")),
    )


def provider_from_dict(data: dict[str, Any]) -> ProviderConfig:
    """Read one ``{target, users: {...}, groups: {...}}`` provider entry."""
    target = data.get("target", "")
    if not target:
        raise ConfigurationError(f"GitLab org provider entry is missing a target: {data}")
    users = data.get("users") or {}
    groups = data.get("groups") or {}
    return ProviderConfig(
        target=target,
        users_ingest=bool(users.get("ingest", True)),
        groups_ingest=bool(groups.get("ingest", True)),
        groups_delimiter=groups.get("delimiter", "."),
        group_type=groups.get("type", "team"),
    )


class IntegrationRegistry:
    """Looks up the GitLab integration responsible for a URL."""

    def __init__(self, integrations: list[GitLabIntegrationConfig]) -> None:
        self._integrations = list(integrations)

    def by_url(self, url: str) -> Optional[GitLabIntegrationConfig]:
        """Return the integration whose base URL is the longest prefix of ``url``."""
        parsed = urlparse(url)
        target_path = [c for c in parsed.path.split("/") if c]
        best: Optional[GitLabIntegrationConfig] = None
        best_len = -1
        for integration in self._integrations:
            base = urlparse(integration.base_url)
            if base.netloc != parsed.netloc:
                continue
            base_path = [c for c in base.path.split("/") if c]
            if target_path[: len(base_path)] != base_path:
                continue
            if len(base_path) > best_len:
                best, best_len = integration, len(base_path)
        return best


def group_by_integration_config(
    registry: IntegrationRegistry,
    providers: list[ProviderConfig],
) -> dict[GitLabIntegrationConfig, list[ProviderConfig]]:
    """Bucket provider configs by the integration serving their target.

    Raises ConfigurationError for the first target no integration serves.
    """
    mapping: dict[GitLabIntegrationConfig, list[ProviderConfig]] = {}
    for provider in providers:
        integration = registry.by_url(provider.target)
        if integration is None:
            raise ConfigurationError(
                f"There is no GitLab integration for {provider.target}. "
                "Please add a configuration for an integration."
            )
        mapping.setdefault(integration, []).append(provider)
    return mapping


def _load_json_env(name: str) -> Optional[list[dict[str, Any]]]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ConfigurationError(f"{name} must be a JSON list")
    return data


def _load_providers() -> list[ProviderConfig]:
    entries = _load_json_env("GITLAB_ORG_PROVIDERS")
    if entries is not None:
        return [provider_from_dict(e) for e in entries]

    targets_raw = os.environ.get("GITLAB_ORG_TARGETS", "")
    targets = [t.strip() for t in targets_raw.split(",") if t.strip()]
    delimiter = os.environ.get("GITLAB_ORG_GROUP_DELIMITER", ".")
    return [ProviderConfig(target=t, groups_delimiter=delimiter) for t in targets]


def _load_integrations() -> list[GitLabIntegrationConfig]:
    entries = _load_json_env("GITLAB_INTEGRATIONS")
    if entries is not None:
        return [integration_from_dict(e) for e in entries]

    # Single integration (optional), defaults to gitlab.com
    host = os.environ.get("GITLAB_HOST", GITLAB_SAAS_HOST)
    return [
        integration_from_dict({
            "host": host,
            "token": os.environ.get("GITLAB_TOKEN", ""),
            "apiBaseUrl": os.environ.get("GITLAB_API_BASE_URL"),
            "baseUrl": os.environ.get("GITLAB_BASE_URL"),
        })
    ]


def load_config(with_database: bool = True) -> IngestionConfig:
    """Load configuration from environment variables (and .env)."""
    load_dotenv()

    providers = _load_providers()
    if not providers:
        raise ConfigurationError(
            "No GitLab org targets configured. Set GITLAB_ORG_PROVIDERS or GITLAB_ORG_TARGETS"
        )

    try:
        scheduler = SchedulerConfig(
            frequency_minutes=int(os.environ.get("GITLAB_ORG_FREQUENCY_MIN", "30")),
            misfire_grace_time=int(os.environ.get("SCHEDULER_MISFIRE_GRACE_TIME", "300")),
            initial_delay_seconds=int(os.environ.get("GITLAB_ORG_INITIAL_DELAY_S", "0")),
        )
        request_timeout = float(os.environ.get("GITLAB_REQUEST_TIMEOUT", "30"))
        database = None
        if with_database:
            database = DatabaseConfig(
                url=resolve_database_url(),
                min_connections=int(os.environ.get("DB_MIN_CONNECTIONS", "1")),
                max_connections=int(os.environ.get("DB_MAX_CONNECTIONS", "4")),
            )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

    return IngestionConfig(
        provider_id=os.environ.get("GITLAB_ORG_PROVIDER_ID", "default"),
        providers=providers,
        integrations=_load_integrations(),
        scheduler=scheduler,
        database=database,
        request_timeout=request_timeout,
    )
