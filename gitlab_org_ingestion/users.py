"""User ingestion: instance users and group members as User entities."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from gitlab_org_ingestion.client import GitLabClient
from gitlab_org_ingestion.entities import UserEntity
from gitlab_org_ingestion.urls import parse_group_url

logger = logging.getLogger("ingestion.users")

DefaultUserTransformer = Callable[[dict], Optional[UserEntity]]
UserTransformer = Callable[[dict, DefaultUserTransformer], Optional[UserEntity]]


def default_user_transformer(user: dict[str, Any]) -> Optional[UserEntity]:
    """Map a GitLab user response to a User entity. Bot accounts are skipped."""
    if user.get("bot"):
        return None
    return UserEntity(
        name=user["username"],
        display_name=user.get("name") or None,
        email=user.get("email") or user.get("public_email") or None,
        picture=user.get("avatar_url") or None,
        description=user.get("bio") or None,
    )


def transform_users(
    users: Iterable[dict],
    user_transformer: Optional[UserTransformer] = None,
) -> list[UserEntity]:
    """Apply the transformer to each record, omitting those it declines."""
    entities: list[UserEntity] = []
    for user in users:
        if user_transformer is not None:
            entity = user_transformer(user, default_user_transformer)
        else:
            entity = default_user_transformer(user)
        if entity is not None:
            entities.append(entity)
    return entities


def get_instance_users(
    client: GitLabClient,
    user_transformer: Optional[UserTransformer] = None,
) -> list[UserEntity]:
    return transform_users(client.list_users(), user_transformer)


def get_group_members(
    client: GitLabClient,
    group_id: Any,
    inherited: bool = False,
    user_transformer: Optional[UserTransformer] = None,
) -> list[UserEntity]:
    return transform_users(
        client.list_group_members(group_id, inherited=inherited),
        user_transformer,
    )


def read_users(
    client: GitLabClient,
    target: str,
    base_url: Optional[str] = None,
    user_transformer: Optional[UserTransformer] = None,
) -> list[UserEntity]:
    """Users visible from ``target``.

    A group URL yields every member of that group, inherited ones included;
    an instance URL yields every active user of the instance.
    """
    group_path = parse_group_url(target, base_url)
    if group_path:
        logger.debug("Reading members of group %s", group_path, extra={"target": target})
        return get_group_members(client, group_path, inherited=True, user_transformer=user_transformer)

    logger.debug("Reading instance users", extra={"target": target})
    return get_instance_users(client, user_transformer)
