"""Group hierarchy reconstruction and membership aggregation.

GitLab lists groups flat, each with a ``parent_id``. The adjacency map built
here is keyed by numeric group id and lives for a single pass: nodes are
linked one hop (parent -> child), members are resolved per node, then child
ids are projected onto entity references. Integer ids never leave this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from gitlab_org_ingestion.client import GitLabClient
from gitlab_org_ingestion.entities import GroupEntity
from gitlab_org_ingestion.errors import UpstreamFetchError
from gitlab_org_ingestion.users import UserTransformer, get_group_members

logger = logging.getLogger("ingestion.groups")

DefaultGroupTransformer = Callable[[dict], Optional[GroupEntity]]
GroupTransformer = Callable[[dict, DefaultGroupTransformer], Optional[GroupEntity]]


@dataclass
class GroupNode:
    entity: GroupEntity
    parent: Optional[int]
    children: list[int] = field(default_factory=list)
    # set when the record came from the group detail endpoint
    shared_with: Optional[list[int]] = None


GroupAdjacency = dict[int, GroupNode]


def default_group_transformer(
    group: dict[str, Any],
    path_delimiter: str,
    group_type: str = "team",
) -> Optional[GroupEntity]:
    """Map a GitLab group response to a Group entity named after its full path."""
    return GroupEntity(
        name=group["full_path"].replace("/", path_delimiter),
        type=group_type,
        display_name=group.get("name") or None,
        description=group.get("description") or None,
    )


def list_group_records(client: GitLabClient, group_path: Optional[str] = None) -> Iterable[dict]:
    """All groups visible to the client, or one group and its descendants."""
    if group_path is None:
        return client.list_groups()

    def scoped() -> Iterable[dict]:
        yield client.get_group_detail(group_path)
        yield from client.list_descendant_groups(group_path)

    return scoped()


def build_group_adjacency(
    groups: Iterable[dict],
    path_delimiter: str,
    group_type: str = "team",
    group_transformer: Optional[GroupTransformer] = None,
) -> GroupAdjacency:
    """Create one node per group id. The first record seen for an id wins."""

    def transform(group: dict) -> Optional[GroupEntity]:
        return default_group_transformer(group, path_delimiter, group_type)

    adjacency: GroupAdjacency = {}
    for group in groups:
        if group["id"] in adjacency:
            logger.debug("Ignoring duplicate group id %s", group["id"])
            continue
        if group_transformer is not None:
            entity = group_transformer(group, transform)
        else:
            entity = transform(group)
        if entity is None:
            continue
        node = GroupNode(entity=entity, parent=group.get("parent_id"))
        if "shared_with_groups" in group:
            node.shared_with = _shared_group_ids(group)
        adjacency[group["id"]] = node
    return adjacency


def link_children(adjacency: GroupAdjacency) -> None:
    """Append each node to its parent's children, in insertion order.

    Only the immediate parent is consulted, so self-parented groups and
    parent cycles still terminate. A parent id outside the map is ignored.
    """
    for group_id, node in adjacency.items():
        if node.parent is None:
            continue
        parent_node = adjacency.get(node.parent)
        if parent_node is not None:
            parent_node.children.append(group_id)


def _shared_group_ids(detail: dict) -> list[int]:
    return [shared["group_id"] for shared in detail.get("shared_with_groups") or []]


def get_shared_with_group_ids(client: GitLabClient, group_id: Any) -> list[int]:
    """Ids of the groups the given group is shared with. A 404 yields none."""
    try:
        detail = client.get_group_detail(group_id)
    except UpstreamFetchError as exc:
        if exc.status_code == 404:
            logger.debug("Group %s not found, assuming no shared groups", group_id)
            return []
        raise
    return _shared_group_ids(detail)


def populate_children_members(
    client: GitLabClient,
    adjacency: GroupAdjacency,
    user_transformer: Optional[UserTransformer] = None,
) -> None:
    """Link children and resolve direct plus shared-group members per node.

    Members of a shared group are added to the group it is shared with; the
    shared group's own record is left untouched.
    """
    link_children(adjacency)

    for group_id, node in adjacency.items():
        for user in get_group_members(
            client, group_id, inherited=False, user_transformer=user_transformer
        ):
            node.entity.add_member(user.ref)

        shared_ids = node.shared_with
        if shared_ids is None:
            shared_ids = get_shared_with_group_ids(client, group_id)
        for shared_id in shared_ids:
            for user in get_group_members(
                client, shared_id, inherited=False, user_transformer=user_transformer
            ):
                node.entity.add_member(user.ref)


def map_children_to_entity_refs(adjacency: GroupAdjacency) -> None:
    for node in adjacency.values():
        for child_id in node.children:
            child = adjacency.get(child_id)
            if child is None:
                continue
            node.entity.children.append(child.entity.ref)
            child.entity.parent = node.entity.ref


def get_groups(
    client: GitLabClient,
    path_delimiter: str,
    group_type: str = "team",
    group_path: Optional[str] = None,
    group_transformer: Optional[GroupTransformer] = None,
    user_transformer: Optional[UserTransformer] = None,
) -> GroupAdjacency:
    """Build the group graph for one client, ready for entity emission."""
    adjacency = build_group_adjacency(
        list_group_records(client, group_path),
        path_delimiter,
        group_type,
        group_transformer,
    )
    logger.info(
        "Read %d groups", len(adjacency),
        extra={"entity_type": "group", "records": len(adjacency)},
    )
    populate_children_members(client, adjacency, user_transformer)
    map_children_to_entity_refs(adjacency)
    return adjacency
