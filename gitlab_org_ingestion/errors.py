"""Exception types raised during ingestion."""

from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    """Base class for ingestion failures."""


class ConfigurationError(IngestionError):
    """Misconfiguration that aborts the pass. Never retried."""


class UpstreamFetchError(IngestionError):
    """A GitLab API call failed.

    ``status_code`` is None when the request never produced a response
    (connection error, timeout); otherwise it is the non-2xx status.
    """

    def __init__(self, message: str, url: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None
