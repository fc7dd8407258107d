"""Parse GitLab group URLs into group paths."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

from gitlab_org_ingestion.errors import ConfigurationError

RESERVED_GROUPS_SEGMENT = "groups"
SUBPAGE_DELIMITER = "-"


def _path_components(url: str) -> list[str]:
    trimmed = urlparse(url).path.strip("/")
    return trimmed.split("/") if trimmed else []


def get_group_path_components(url: str, base_url: Optional[str] = None) -> list[str]:
    """Split the path of ``url`` into components, minus the base URL's path.

    Raises ConfigurationError when the base URL path is not a prefix of the
    target URL path.
    """
    path = _path_components(url)

    if base_url:
        base_path = _path_components(base_url)
        if path[: len(base_path)] != base_path:
            raise ConfigurationError(
                "The GitLab base URL is not a substring of the GitLab target group URL: "
                f"base: {base_url}, target: {url}"
            )
        path = path[len(base_path):]

    return path


def parse_group_url(url: str, base_url: Optional[str] = None) -> Optional[str]:
    """Return the group full path a GitLab URL points at.

    ``https://gitlab.example.com/groups/a/b/-/settings`` -> ``a/b``.
    Returns None for an instance-level URL with no group path.
    """
    path = get_group_path_components(url, base_url)
    if not path:
        return None

    if path[0] == RESERVED_GROUPS_SEGMENT:
        path = path[1:]
        if not path:
            raise ConfigurationError(f"GitLab group URL is missing a group path: {url}")

    components = []
    for component in path:
        # /-/ delimits sub-pages such as /-/settings
        if component == SUBPAGE_DELIMITER:
            break
        components.append(component)
    return "/".join(components) or None
