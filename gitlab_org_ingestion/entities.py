"""Catalog entity records emitted by the ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

API_VERSION = "backstage.io/v1alpha1"
DEFAULT_NAMESPACE = "default"

ANNOTATION_LOCATION = "backstage.io/managed-by-location"
ANNOTATION_ORIGIN_LOCATION = "backstage.io/managed-by-origin-location"


def stringify_entity_ref(kind: str, name: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Format a kind-qualified reference, e.g. ``group:default/platform.infra``."""
    return f"{kind.lower()}:{namespace}/{name}"


@dataclass
class UserEntity:
    name: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    picture: Optional[str] = None
    description: Optional[str] = None
    annotations: dict[str, str] = field(default_factory=dict)

    kind = "User"

    @property
    def ref(self) -> str:
        return stringify_entity_ref(self.kind, self.name)

    def to_dict(self) -> dict[str, Any]:
        profile: dict[str, Any] = {}
        if self.display_name:
            profile["displayName"] = self.display_name
        if self.email:
            profile["email"] = self.email
        if self.picture:
            profile["picture"] = self.picture
        metadata: dict[str, Any] = {"name": self.name}
        if self.description:
            metadata["description"] = self.description
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        return {
            "apiVersion": API_VERSION,
            "kind": self.kind,
            "metadata": metadata,
            "spec": {"profile": profile, "memberOf": []},
        }


@dataclass
class GroupEntity:
    name: str
    type: str = "team"
    display_name: Optional[str] = None
    description: Optional[str] = None
    parent: Optional[str] = None
    members: list[str] = field(default_factory=list)
    children: list[str] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)

    kind = "Group"

    @property
    def ref(self) -> str:
        return stringify_entity_ref(self.kind, self.name)

    def add_member(self, ref: str) -> None:
        """Append a member reference; members behave as an ordered set."""
        if ref not in self.members:
            self.members.append(ref)

    def to_dict(self) -> dict[str, Any]:
        profile: dict[str, Any] = {}
        if self.display_name:
            profile["displayName"] = self.display_name
        metadata: dict[str, Any] = {"name": self.name}
        if self.description:
            metadata["description"] = self.description
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        spec: dict[str, Any] = {
            "type": self.type,
            "profile": profile,
            "children": list(self.children),
            "members": list(self.members),
        }
        if self.parent:
            spec["parent"] = self.parent
        return {
            "apiVersion": API_VERSION,
            "kind": self.kind,
            "metadata": metadata,
            "spec": spec,
        }
