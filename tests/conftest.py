"""Shared fixtures: an in-memory GitLab API double and canned records."""

from __future__ import annotations

from typing import Any, Optional
from unittest.mock import Mock

import pytest

from gitlab_org_ingestion.config import GitLabIntegrationConfig
from gitlab_org_ingestion.errors import UpstreamFetchError


def make_group(group_id: int, full_path: str, parent_id: Optional[int] = None, **extra: Any) -> dict:
    group = {
        "id": group_id,
        "name": full_path.rsplit("/", 1)[-1].title(),
        "path": full_path.rsplit("/", 1)[-1],
        "full_path": full_path,
        "full_name": full_path.replace("/", " / "),
        "description": "",
        "parent_id": parent_id,
        "web_url": f"https://gitlab.example.com/groups/{full_path}",
    }
    group.update(extra)
    return group


def make_user(user_id: int, username: str, **extra: Any) -> dict:
    user = {
        "id": user_id,
        "username": username,
        "name": username.title(),
        "state": "active",
        "avatar_url": f"https://gitlab.example.com/avatar/{user_id}.png",
        "web_url": f"https://gitlab.example.com/{username}",
    }
    user.update(extra)
    return user


def make_response(items: Any, next_page: str = "", status: int = 200) -> Mock:
    resp = Mock()
    resp.json.return_value = items
    resp.headers = {"X-Next-Page": next_page}
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = "OK" if resp.ok else "Error"
    return resp


class FakeGitLabClient:
    """Serves groups, users and memberships from dicts, recording calls."""

    def __init__(
        self,
        groups: Optional[list[dict]] = None,
        users: Optional[list[dict]] = None,
        members: Optional[dict[Any, list[dict]]] = None,
        inherited_members: Optional[dict[Any, list[dict]]] = None,
        shared_with: Optional[dict[Any, list[int]]] = None,
        descendants: Optional[dict[str, list[dict]]] = None,
        missing_details: Optional[set] = None,
        failing_details: Optional[set] = None,
    ) -> None:
        self.groups = groups or []
        self.users = users or []
        self.members = members or {}
        self.inherited_members = inherited_members or {}
        self.shared_with = shared_with or {}
        self.descendants = descendants or {}
        self.missing_details = missing_details or set()
        self.failing_details = failing_details or set()
        self.calls: list[tuple] = []

    def list_groups(self, per_page: int = 100):
        self.calls.append(("list_groups",))
        return iter(list(self.groups))

    def list_descendant_groups(self, group_path: str, per_page: int = 100):
        self.calls.append(("list_descendant_groups", group_path))
        return iter(list(self.descendants.get(group_path, [])))

    def get_group_detail(self, group_id: Any) -> dict:
        self.calls.append(("get_group_detail", group_id))
        url = f"https://gitlab.example.com/api/v4/groups/{group_id}"
        if group_id in self.missing_details:
            raise UpstreamFetchError("not found", url=url, status_code=404)
        if group_id in self.failing_details:
            raise UpstreamFetchError("server error", url=url, status_code=500)
        for group in self.groups:
            if group["id"] == group_id or group["full_path"] == group_id:
                detail = dict(group)
                break
        else:
            detail = {"id": group_id}
        detail["shared_with_groups"] = [
            {"group_id": sid, "group_name": str(sid), "group_full_path": str(sid), "group_access_level": 30}
            for sid in self.shared_with.get(group_id, [])
        ]
        return detail

    def list_group_members(self, group_id: Any, inherited: bool = False, per_page: int = 100):
        self.calls.append(("list_group_members", group_id, inherited))
        source = self.inherited_members if inherited else self.members
        return iter(list(source.get(group_id, [])))

    def list_users(self, per_page: int = 100):
        self.calls.append(("list_users",))
        return iter(list(self.users))


@pytest.fixture
def integration() -> GitLabIntegrationConfig:
    return GitLabIntegrationConfig(
        host="gitlab.example.com",
        api_base_url="https://gitlab.example.com/api/v4",
        base_url="https://gitlab.example.com",
        token="glpat-test",
    )


@pytest.fixture
def org_client() -> FakeGitLabClient:
    """A small hierarchy: platform -> {infra, web}, infra -> {db}; web shared with design."""
    return FakeGitLabClient(
        groups=[
            make_group(1, "platform", description="Platform engineering"),
            make_group(2, "platform/infra", parent_id=1),
            make_group(3, "platform/web", parent_id=1),
            make_group(4, "platform/infra/db", parent_id=2),
            make_group(5, "design"),
        ],
        users=[
            make_user(10, "alice"),
            make_user(11, "bob"),
            make_user(12, "carol"),
            make_user(13, "deploy-bot", bot=True),
        ],
        members={
            1: [make_user(10, "alice")],
            2: [make_user(11, "bob")],
            5: [make_user(12, "carol")],
        },
        shared_with={3: [5]},
    )
