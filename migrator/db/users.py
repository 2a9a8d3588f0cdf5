"""Writes and aggregate reads against the Supabase ``users`` table."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping

from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from migrator.ingest.models import MigrationStats, UserRecord

logger = logging.getLogger(__name__)

# migrated / migrated_version belong to another consumer and must never appear here
WRITE_COLUMNS = ("email", "points", "shopify_user_id", "routine", "brush_score", "shopify_meta_data")
JSON_COLUMNS = frozenset({"routine", "brush_score", "shopify_meta_data"})


def upsert_statement(dialect_name: str) -> str:
    cast_json = dialect_name == "postgresql"
    values = ", ".join(
        f"CAST(:{column} AS JSONB)" if cast_json and column in JSON_COLUMNS else f":{column}"
        for column in WRITE_COLUMNS
    )
    updates = ",\n  ".join(f"{column} = EXCLUDED.{column}" for column in WRITE_COLUMNS if column != "email")
    return (
        f"INSERT INTO users ({', '.join(WRITE_COLUMNS)})\n"
        f"VALUES ({values})\n"
        f"ON CONFLICT (email) DO UPDATE SET\n  {updates}"
    )


def _bind_params(record: UserRecord) -> dict[str, Any]:
    params = record.as_row()
    for column in JSON_COLUMNS:
        if params[column] is not None:
            params[column] = json.dumps(params[column], ensure_ascii=False)
    return params


class UserStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def upsert_one(self, record: UserRecord) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(upsert_statement(conn.dialect.name)), _bind_params(record))
        logger.debug("Upserted user %s", record.email)

    def upsert_batch(self, records: Iterable[UserRecord]) -> None:
        """Upsert all records in one transaction; any failure rolls the whole batch back."""
        params = [_bind_params(record) for record in records]
        if not params:
            return
        with self.engine.begin() as conn:
            conn.execute(text(upsert_statement(conn.dialect.name)), params)
        logger.info("Upserted %s users", len(params))

    def get_user_by_email(self, email: str) -> Mapping[str, Any] | None:
        return self._fetch_one("SELECT * FROM users WHERE email = :value", email)

    def get_user_by_shopify_id(self, shopify_user_id: str) -> Mapping[str, Any] | None:
        return self._fetch_one("SELECT * FROM users WHERE shopify_user_id = :value", shopify_user_id)

    def _fetch_one(self, query: str, value: str) -> Mapping[str, Any] | None:
        with self.engine.connect() as conn:
            row = conn.execute(text(query), {"value": value}).mappings().first()
        return dict(row) if row is not None else None

    def get_total_count(self) -> int:
        with self.engine.connect() as conn:
            return int(conn.execute(text("SELECT COUNT(*) FROM users")).scalar_one())

    def get_migrated_count(self, version: str | None = None) -> int:
        query = "SELECT COUNT(*) FROM users WHERE migrated = :migrated"
        params: dict[str, Any] = {"migrated": True}
        if version:
            query += " AND migrated_version = :version"
            params["version"] = version
        with self.engine.connect() as conn:
            return int(conn.execute(text(query), params).scalar_one())

    def get_migration_stats(self) -> MigrationStats:
        return MigrationStats(total=self.get_total_count(), migrated=self.get_migrated_count())

    def test_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT id FROM users LIMIT 1")).first()
        except Exception as exc:
            logger.error("Database connection test failed: %s", exc)
            return False
        logger.info("Database connection test succeeded")
        return True
