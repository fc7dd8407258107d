"""Tests for user ingestion."""

from gitlab_org_ingestion.entities import UserEntity
from gitlab_org_ingestion.users import (
    default_user_transformer,
    get_instance_users,
    read_users,
)

from tests.conftest import FakeGitLabClient, make_user


def test_default_transformer_maps_profile():
    entity = default_user_transformer(
        make_user(1, "alice", public_email="alice@example.com", bio="Infra")
    )
    assert entity.name == "alice"
    assert entity.display_name == "Alice"
    assert entity.email == "alice@example.com"
    assert entity.picture == "https://gitlab.example.com/avatar/1.png"
    assert entity.ref == "user:default/alice"
    assert entity.to_dict()["spec"]["profile"]["email"] == "alice@example.com"


def test_private_email_preferred_over_public():
    entity = default_user_transformer(
        make_user(1, "alice", email="a@corp.example", public_email="alice@example.com")
    )
    assert entity.email == "a@corp.example"


def test_bots_are_skipped(org_client):
    users = get_instance_users(org_client)
    assert [u.name for u in users] == ["alice", "bob", "carol"]


def test_custom_transformer_can_decline_records(org_client):
    def transformer(user, default):
        if user["username"] == "bob":
            return None
        return default(user)

    users = get_instance_users(org_client, transformer)
    assert [u.name for u in users] == ["alice", "carol"]


def test_custom_transformer_can_rename():
    client = FakeGitLabClient(users=[make_user(1, "alice")])

    users = get_instance_users(
        client, lambda user, default: UserEntity(name=f"gl-{user['username']}")
    )
    assert users[0].ref == "user:default/gl-alice"


def test_instance_target_lists_all_users(org_client):
    users = read_users(org_client, "https://gitlab.example.com", "https://gitlab.example.com")
    assert len(users) == 3
    assert ("list_users",) in org_client.calls


def test_group_target_lists_inherited_members():
    client = FakeGitLabClient(
        inherited_members={"platform/infra": [make_user(1, "alice"), make_user(2, "bob")]},
    )

    users = read_users(client, "https://gitlab.example.com/groups/platform/infra/-/members")

    assert [u.name for u in users] == ["alice", "bob"]
    assert ("list_group_members", "platform/infra", True) in client.calls
    assert ("list_users",) not in client.calls
