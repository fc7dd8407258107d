"""Database helpers: connection pool and the catalog entity sink."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Generator, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool

from gitlab_org_ingestion.base_provider import DeferredEntity
from gitlab_org_ingestion.config import DatabaseConfig
from gitlab_org_ingestion.entities import stringify_entity_ref

logger = logging.getLogger("ingestion.db")

ENTITY_COLUMNS = ["provider_name", "entity_ref", "kind", "location_key", "entity", "synced_at"]


class Database:
    """Thin wrapper around a ThreadedConnectionPool."""

    def __init__(self, config: DatabaseConfig) -> None:
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=config.min_connections,
            maxconn=config.max_connections,
            dsn=config.url,
        )

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def connection(self) -> Generator:
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Generator:
        """Yield a cursor inside an auto-commit/rollback transaction."""
        with self.connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def replace_entities(self, provider_name: str, entities: Sequence[DeferredEntity]) -> int:
        """Swap the provider's published entity set in a single transaction.

        Returns the number of rows inserted.
        """
        rows = []
        for deferred in entities:
            entity = deferred.entity
            rows.append((
                provider_name,
                stringify_entity_ref(entity["kind"], entity["metadata"]["name"]),
                entity["kind"],
                deferred.location_key,
                json.dumps(entity),
            ))

        with self.transaction() as cur:
            cur.execute(
                "DELETE FROM catalog_entities WHERE provider_name = %s",
                (provider_name,),
            )
            removed = cur.rowcount
            if rows:
                psycopg2.extras.execute_values(
                    cur,
                    f"INSERT INTO catalog_entities ({', '.join(ENTITY_COLUMNS)}) VALUES %s",
                    rows,
                    template="(%s, %s, %s, %s, %s::jsonb, NOW())",
                    page_size=500,
                )
        logger.info(
            "Replaced %d entities with %d", removed, len(rows),
            extra={"provider": provider_name, "records": len(rows)},
        )
        return len(rows)


class DatabaseConnection:
    """Publishes a provider's entities into the ``catalog_entities`` table."""

    def __init__(self, db: Database, provider_name: str) -> None:
        self.db = db
        self.provider_name = provider_name

    def apply_full_mutation(self, entities: list[DeferredEntity]) -> None:
        self.db.replace_entities(self.provider_name, entities)
