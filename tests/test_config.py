"""Tests for configuration loading and integration lookup."""

from unittest.mock import patch

import pytest

from gitlab_org_ingestion.config import (
    IntegrationRegistry,
    ProviderConfig,
    group_by_integration_config,
    integration_from_dict,
    load_config,
    provider_from_dict,
)
from gitlab_org_ingestion.errors import ConfigurationError
from gitlab_org_ingestion.secrets import resolve_database_url, resolve_secret


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "GITLAB_ORG_PROVIDERS", "GITLAB_ORG_TARGETS", "GITLAB_INTEGRATIONS",
        "GITLAB_HOST", "GITLAB_TOKEN", "GITLAB_API_BASE_URL", "GITLAB_BASE_URL",
        "GITLAB_ORG_PROVIDER_ID", "GITLAB_ORG_FREQUENCY_MIN", "DATABASE_URL",
        "GITLAB_ORG_GROUP_DELIMITER", "PG_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)
    with patch("gitlab_org_ingestion.config.load_dotenv"):
        yield


def test_integration_urls_default_from_host():
    integration = integration_from_dict({"host": "gitlab.example.com", "token": "t"})
    assert integration.base_url == "https://gitlab.example.com"
    assert integration.api_base_url == "https://gitlab.example.com/api/v4"
    assert integration.token == "t"


def test_integration_requires_host():
    with pytest.raises(ConfigurationError):
        integration_from_dict({"token": "t"})


def test_provider_entry_defaults():
    provider = provider_from_dict({"target": "https://gitlab.com/acme", "groups": {"delimiter": "-"}})
    assert provider == ProviderConfig(
        target="https://gitlab.com/acme", users_ingest=True, groups_ingest=True,
        groups_delimiter="-", group_type="team",
    )


def test_by_url_prefers_longest_base_url():
    root = integration_from_dict({"host": "git.corp", "baseUrl": "https://git.corp"})
    nested = integration_from_dict({"host": "git.corp", "baseUrl": "https://git.corp/gitlab"})
    registry = IntegrationRegistry([root, nested])

    assert registry.by_url("https://git.corp/gitlab/team") is nested
    assert registry.by_url("https://git.corp/team") is root
    assert registry.by_url("https://other.corp/team") is None


def test_group_by_integration_config_buckets_targets():
    saas = integration_from_dict({"host": "gitlab.com"})
    corp = integration_from_dict({"host": "git.corp"})
    providers = [
        ProviderConfig(target="https://gitlab.com/a"),
        ProviderConfig(target="https://git.corp/b"),
        ProviderConfig(target="https://gitlab.com/c"),
    ]

    mapping = group_by_integration_config(IntegrationRegistry([saas, corp]), providers)

    assert [p.target for p in mapping[saas]] == ["https://gitlab.com/a", "https://gitlab.com/c"]
    assert [p.target for p in mapping[corp]] == ["https://git.corp/b"]


def test_group_by_integration_config_fails_on_unknown_target():
    registry = IntegrationRegistry([integration_from_dict({"host": "gitlab.com"})])
    with pytest.raises(ConfigurationError, match="no GitLab integration"):
        group_by_integration_config(registry, [ProviderConfig(target="https://git.corp/x")])


def test_load_config_from_targets(monkeypatch):
    monkeypatch.setenv("GITLAB_ORG_TARGETS", "https://gitlab.com/acme, https://gitlab.com/beta")
    monkeypatch.setenv("GITLAB_TOKEN", "glpat-x")
    monkeypatch.setenv("GITLAB_ORG_FREQUENCY_MIN", "15")

    config = load_config(with_database=False)

    assert config.provider_id == "default"
    assert [p.target for p in config.providers] == ["https://gitlab.com/acme", "https://gitlab.com/beta"]
    assert config.integrations[0].host == "gitlab.com"
    assert config.integrations[0].token == "glpat-x"
    assert config.scheduler.frequency_minutes == 15
    assert config.database is None


def test_load_config_from_json(monkeypatch):
    monkeypatch.setenv(
        "GITLAB_ORG_PROVIDERS",
        '[{"target": "https://git.corp/org", "users": {"ingest": false}, "groups": {"type": "org"}}]',
    )
    monkeypatch.setenv("GITLAB_INTEGRATIONS", '[{"host": "git.corp", "token": "abc"}]')
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/catalog")

    config = load_config()

    assert config.providers[0].users_ingest is False
    assert config.providers[0].group_type == "org"
    assert config.integrations[0].api_base_url == "https://git.corp/api/v4"
    assert config.database.url == "postgresql://u:p@db:5432/catalog"


def test_load_config_rejects_bad_json(monkeypatch):
    monkeypatch.setenv("GITLAB_ORG_PROVIDERS", "{not json")
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        load_config(with_database=False)


def test_load_config_requires_targets():
    with pytest.raises(ConfigurationError, match="No GitLab org targets"):
        load_config(with_database=False)


def test_literal_secrets_pass_through():
    assert resolve_secret("plain-token") == "plain-token"


def test_database_url_from_pg_variables(monkeypatch):
    monkeypatch.setenv("PG_HOST", "db")
    monkeypatch.setenv("PG_PASSWORD", "secret")
    assert resolve_database_url().startswith("postgresql://catalog:secret@db:5432/")
