"""GitLab REST API client and page iteration."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Optional
from urllib.parse import quote

import requests

from gitlab_org_ingestion.config import GITLAB_SAAS_HOST, GitLabIntegrationConfig
from gitlab_org_ingestion.errors import UpstreamFetchError

logger = logging.getLogger("ingestion.gitlab")

PageRequest = Callable[[dict], requests.Response]


def decode_json(response: requests.Response) -> Any:
    """Body of a successful response, or UpstreamFetchError if it is not JSON.

    Proxies in front of self-hosted instances answer with HTML sign-in pages
    and a 200 status.
    """
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamFetchError(
            f"Unexpected non-JSON body from {response.url}: {exc}",
            url=response.url,
            status_code=response.status_code,
        ) from exc


def _next_page(response: requests.Response) -> Optional[int]:
    value = response.headers.get("X-Next-Page", "")
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise UpstreamFetchError(
            f"Invalid X-Next-Page header {value!r} from {response.url}",
            url=response.url,
            status_code=response.status_code,
        ) from exc


def paginated(request_fn: PageRequest, options: Optional[dict] = None) -> Iterator[dict]:
    """Lazily yield every item of a paged GitLab listing.

    ``request_fn`` is called once per page with the page options. Iteration
    ends on an empty page or when the response carries no ``X-Next-Page``.
    A new call starts over from the first page.
    """
    options = dict(options or {})
    options.setdefault("page", 1)

    while True:
        response = request_fn(dict(options))
        items = decode_json(response)
        if not items:
            return
        yield from items

        next_page = _next_page(response)
        if next_page is None:
            return
        options["page"] = next_page


class GitLabClient:
    """Requests against one GitLab integration (base URL + token)."""

    def __init__(
        self,
        config: GitLabIntegrationConfig,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self._base = config.api_base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        if config.token:
            self._session.headers.update({"PRIVATE-TOKEN": config.token})
        logger.debug(
            "GitLab client for %s (%s)",
            self._base, "self-hosted" if self.is_self_hosted else "SaaS",
        )

    @property
    def is_self_hosted(self) -> bool:
        return self.config.host != GITLAB_SAAS_HOST

    def request(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> requests.Response:
        """GET ``endpoint`` relative to the API base URL.

        Raises UpstreamFetchError for network failures and non-2xx statuses.
        """
        url = f"{self._base}{endpoint}"
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise UpstreamFetchError(
                f"Request to {url} failed: {exc}", url=url
            ) from exc

        if not resp.ok:
            raise UpstreamFetchError(
                f"Unexpected response when fetching {url}. "
                f"Expected 200 but got {resp.status_code} - {resp.reason}",
                url=url,
                status_code=resp.status_code,
            )
        return resp

    def paged_request(self, endpoint: str, options: Optional[dict[str, Any]] = None) -> requests.Response:
        logger.debug("Fetching %s page %s", endpoint, (options or {}).get("page"))
        return self.request(endpoint, params=options)

    def list_groups(self, per_page: int = 100) -> Iterator[dict]:
        return paginated(
            lambda options: self.paged_request("/groups", options),
            {"per_page": per_page},
        )

    def list_descendant_groups(self, group_path: str, per_page: int = 100) -> Iterator[dict]:
        endpoint = f"/groups/{quote(group_path, safe='')}/descendant_groups"
        return paginated(
            lambda options: self.paged_request(endpoint, options),
            {"per_page": per_page},
        )

    def get_group_detail(self, group_id: Any) -> dict:
        """Fetch a single group by numeric id or full path."""
        return decode_json(self.request(f"/groups/{quote(str(group_id), safe='')}"))

    def list_group_members(self, group_id: Any, inherited: bool = False, per_page: int = 100) -> Iterator[dict]:
        """Members of a group.

        With ``inherited=False`` only direct members are returned; inherited
        members come from ancestors and are reachable through the hierarchy.
        """
        endpoint = f"/groups/{quote(str(group_id), safe='')}/members"
        if inherited:
            endpoint += "/all"
        return paginated(
            lambda options: self.paged_request(endpoint, options),
            {"per_page": per_page},
        )

    def list_users(self, per_page: int = 100) -> Iterator[dict]:
        return paginated(
            lambda options: self.paged_request("/users", options),
            {"per_page": per_page, "active": "true"},
        )
