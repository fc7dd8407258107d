"""GitLab organisation provider: users and groups of GitLab targets."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Union

from gitlab_org_ingestion.base_provider import DeferredEntity, EntityProvider
from gitlab_org_ingestion.client import GitLabClient
from gitlab_org_ingestion.config import (
    GitLabIntegrationConfig,
    IngestionConfig,
    IntegrationRegistry,
    ProviderConfig,
    group_by_integration_config,
)
from gitlab_org_ingestion.entities import ANNOTATION_LOCATION, ANNOTATION_ORIGIN_LOCATION
from gitlab_org_ingestion.errors import ConfigurationError
from gitlab_org_ingestion.groups import GroupTransformer, get_groups
from gitlab_org_ingestion.logging_config import task_logger
from gitlab_org_ingestion.scheduler import TaskRunner
from gitlab_org_ingestion.urls import parse_group_url
from gitlab_org_ingestion.users import UserTransformer, read_users


ClientFactory = Callable[[GitLabIntegrationConfig], GitLabClient]


class GitLabOrgEntityProvider(EntityProvider):
    """Extracts teams and users out of GitLab groups or a whole instance.

    ``schedule`` is either ``"manual"``, in which case the caller invokes
    :meth:`read` (and serializes those calls), or a :class:`TaskRunner` that
    refreshes on an interval once the provider is connected.
    """

    def __init__(
        self,
        id: str,
        providers: list[ProviderConfig],
        integrations: IntegrationRegistry,
        schedule: Union[str, TaskRunner] = "manual",
        user_transformer: Optional[UserTransformer] = None,
        group_transformer: Optional[GroupTransformer] = None,
        client_factory: Optional[ClientFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__()
        self._id = id
        self._providers = list(providers)
        self._integrations = integrations
        self._user_transformer = user_transformer
        self._group_transformer = group_transformer
        self._client_factory = client_factory or GitLabClient
        self._logger = logger or logging.getLogger("ingestion.gitlab_org")
        self._schedule_fn: Optional[Callable[[], None]] = None
        self._schedule(schedule)

    @classmethod
    def from_config(
        cls,
        config: IngestionConfig,
        schedule: Union[str, TaskRunner] = "manual",
        user_transformer: Optional[UserTransformer] = None,
        group_transformer: Optional[GroupTransformer] = None,
    ) -> "GitLabOrgEntityProvider":
        def client_factory(integration: GitLabIntegrationConfig) -> GitLabClient:
            return GitLabClient(integration, timeout=config.request_timeout)

        return cls(
            id=config.provider_id,
            providers=config.providers,
            integrations=IntegrationRegistry(config.integrations),
            schedule=schedule,
            user_transformer=user_transformer,
            group_transformer=group_transformer,
            client_factory=client_factory,
        )

    def get_provider_name(self) -> str:
        return f"GitLabOrgEntityProvider:{self._id}"

    @property
    def task_id(self) -> str:
        return f"{self.get_provider_name()}:refresh"

    def connect(self, connection) -> None:
        super().connect(connection)
        if self._schedule_fn is not None:
            self._schedule_fn()

    def read(self, logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None) -> dict[str, int]:
        """Run one full pass over every target and publish the result once.

        Any failure aborts the pass before anything is published.
        Returns ``{"users": n, "groups": m}``.
        """
        if self._connection is None:
            raise ConfigurationError(f"{self.get_provider_name()} not initialized")

        log = logger or self._logger
        by_integration = group_by_integration_config(self._integrations, self._providers)

        # keyed by entity ref so a user seen through several targets is emitted once
        entities: dict[str, DeferredEntity] = {}
        counts = {"users": 0, "groups": 0}

        for integration, provider_configs in by_integration.items():
            client = self._client_factory(integration)
            for config in provider_configs:
                location = f"url:{config.target}"
                annotations = {
                    ANNOTATION_LOCATION: location,
                    ANNOTATION_ORIGIN_LOCATION: location,
                }

                if config.users_ingest:
                    log.debug("Ingesting users from %s", config.target)
                    users = read_users(
                        client, config.target, integration.base_url, self._user_transformer
                    )
                    for user in users:
                        if user.ref in entities:
                            continue
                        user.annotations.update(annotations)
                        entities[user.ref] = self._deferred(user.to_dict())
                        counts["users"] += 1

                if config.groups_ingest:
                    log.debug("Ingesting groups from %s", config.target)
                    adjacency = get_groups(
                        client,
                        config.groups_delimiter,
                        config.group_type,
                        group_path=parse_group_url(config.target, integration.base_url),
                        group_transformer=self._group_transformer,
                        user_transformer=self._user_transformer,
                    )
                    for node in adjacency.values():
                        if node.entity.ref in entities:
                            continue
                        node.entity.annotations.update(annotations)
                        entities[node.entity.ref] = self._deferred(node.entity.to_dict())
                        counts["groups"] += 1

        self._connection.apply_full_mutation(list(entities.values()))
        log.info(
            "Published %d entities (%d users, %d groups)",
            len(entities), counts["users"], counts["groups"],
            extra={"provider": self.get_provider_name(), "records": len(entities)},
        )
        return counts

    def _deferred(self, entity: dict) -> DeferredEntity:
        return DeferredEntity(entity=entity, location_key=self.get_provider_name())

    def _schedule(self, schedule: Union[str, TaskRunner]) -> None:
        if schedule == "manual":
            return
        if not isinstance(schedule, TaskRunner):
            raise ConfigurationError(
                f"Invalid schedule for {self.get_provider_name()}: {schedule!r}"
            )

        task_id = self.task_id

        def refresh() -> None:
            log = task_logger(self._logger, self.get_provider_name(), task_id)
            try:
                self.read(logger=log)
            except Exception as exc:
                # the next tick must still fire
                log.error("Refresh failed: %s", exc, exc_info=True)

        self._schedule_fn = lambda: schedule.run(task_id, refresh)
