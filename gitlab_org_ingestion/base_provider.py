"""Entity provider contract shared by catalog ingestion providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Protocol

logger = logging.getLogger("ingestion.provider")


@dataclass(frozen=True)
class DeferredEntity:
    entity: dict[str, Any]
    location_key: Optional[str] = None


class EntityProviderConnection(Protocol):
    """Where a provider publishes its entities."""

    def apply_full_mutation(self, entities: list[DeferredEntity]) -> None:
        """Replace everything previously published by this provider."""


class EntityProvider(ABC):
    """Each provider declares a stable name and publishes once connected."""

    def __init__(self) -> None:
        self._connection: Optional[EntityProviderConnection] = None

    @abstractmethod
    def get_provider_name(self) -> str:
        """Stable identity used for replacement and task ids."""

    @abstractmethod
    def read(self, logger: Optional[Any] = None) -> dict[str, int]:
        """Run one full pass and publish it. Returns counts per entity type."""

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def connect(self, connection: EntityProviderConnection) -> None:
        self._connection = connection
        logger.info("Provider connected", extra={"provider": self.get_provider_name()})
