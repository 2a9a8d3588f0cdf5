"""Shopify → Supabase migration job."""

from __future__ import annotations

import asyncio
import functools
import logging
import math
import time
from typing import Any, Callable, TypeVar

from migrator.db.users import UserStore
from migrator.ingest.models import (
    AllSucceeded,
    BatchWriteResult,
    Customer,
    DryRunResult,
    Failed,
    MigrationError,
    MigrationResult,
    MigrationStats,
    UserRecord,
)
from migrator.ingest.shopify import ShopifyAdminClient
from migrator.ingest.transform import customer_to_user

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 50
DRY_RUN_SAMPLE_SIZE = 10


class ConnectionCheckError(RuntimeError):
    pass


class CustomerNotFoundError(LookupError):
    pass


class MigrationService:
    def __init__(
        self,
        shopify: ShopifyAdminClient,
        users: UserStore,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        migration_version: str = "1.0.0",
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.shopify = shopify
        self.users = users
        self.batch_size = batch_size
        self.migration_version = migration_version

    async def run(
        self,
        use_cache: bool = True,
        force_fresh: bool = False,
        max_cache_age: float | None = None,
    ) -> MigrationResult:
        """Run the five-step migration and report per-user failures.

        Connection failures abort the run. A failed batch is retried one user at
        a time, so a single bad record only costs its own row; every such
        failure lands in ``MigrationResult.errors``.
        """
        started = time.monotonic()
        logger.info("=" * 60)
        logger.info("Starting migration (version %s, batch size %s)", self.migration_version, self.batch_size)
        logger.info("=" * 60)

        logger.info("[1/5] Testing connections")
        await self.test_connections()

        logger.info("[2/5] Reading existing users")
        self._log_stats(await self._db(self.users.get_migration_stats))

        logger.info("[3/5] Fetching customers from Shopify")
        if force_fresh:
            logger.warning("Force refresh: ignoring cached customers")
        customers = await self.shopify.fetch_all_customers_with_metafields(
            use_cache, max_cache_age, refresh=force_fresh
        )
        logger.info("Fetched %s customers", len(customers))
        if not customers:
            logger.warning("No customers to migrate")
            return MigrationResult(
                total_users=0, migrated_users=0, failed_users=0, errors=[], duration=time.monotonic() - started
            )

        logger.info("[4/5] Writing users")
        migrated, errors = await self._migrate_customers(customers)

        logger.info("[5/5] Checking results")
        await self.shopify.executor.wait_for_completion()
        self._log_stats(await self._db(self.users.get_migration_stats))

        result = MigrationResult(
            total_users=len(customers),
            migrated_users=migrated,
            failed_users=len(errors),
            errors=errors,
            duration=time.monotonic() - started,
        )
        logger.info("=" * 60)
        logger.info(
            "Migration finished: %s migrated, %s failed in %.2fs",
            result.migrated_users,
            result.failed_users,
            result.duration,
        )
        logger.info("=" * 60)
        return result

    async def _migrate_customers(self, customers: list[Customer]) -> tuple[int, list[MigrationError]]:
        migrated = 0
        errors: list[MigrationError] = []
        total_batches = math.ceil(len(customers) / self.batch_size)
        for number, start in enumerate(range(0, len(customers), self.batch_size), start=1):
            records = [
                customer_to_user(customer, self.migration_version)
                for customer in customers[start:start + self.batch_size]
            ]
            logger.info("Batch %s/%s: %s users", number, total_batches, len(records))
            outcome = await self._write_batch(records)
            if isinstance(outcome, AllSucceeded):
                migrated += outcome.count
                logger.info("Batch %s/%s done (%s/%s)", number, total_batches, migrated, len(customers))
                continue

            logger.error("Batch %s failed (%s); retrying users one at a time", number, _error_message(outcome.cause))
            for record in records:
                try:
                    await self._db(self.users.upsert_one, record)
                except Exception as exc:
                    key = record.email or f"shopify_user_id={record.shopify_user_id}"
                    errors.append(MigrationError(email=key, error=_error_message(exc)))
                    logger.error("Failed to migrate %s: %s", key, _error_message(exc))
                else:
                    migrated += 1
        return migrated, errors

    async def _write_batch(self, records: list[UserRecord]) -> BatchWriteResult:
        try:
            await self._db(self.users.upsert_batch, records)
        except Exception as exc:
            return Failed(cause=exc)
        return AllSucceeded(count=len(records))

    async def test_connections(self) -> None:
        shopify_ok = await self.shopify.test_connection()
        database_ok = await self._db(self.users.test_connection)
        failed = [name for name, ok in (("Shopify API", shopify_ok), ("Supabase database", database_ok)) if not ok]
        if failed:
            raise ConnectionCheckError(f"Connection failed: {', '.join(failed)}")
        logger.info("All connection tests passed")

    async def dry_run(self, sample_size: int = DRY_RUN_SAMPLE_SIZE) -> DryRunResult:
        """List customers without writing anything."""
        logger.info("Dry run: nothing will be written")
        await self.test_connections()
        customers = await self.shopify.fetch_all_customers()
        sample = [
            {
                "id": customer.get("id"),
                "email": customer.get("email"),
                "first_name": customer.get("first_name"),
                "last_name": customer.get("last_name"),
            }
            for customer in customers[:sample_size]
        ]
        logger.info("Total customers: %s", len(customers))
        for index, customer in enumerate(sample, start=1):
            logger.info("[%s] %s (ID: %s)", index, customer["email"], customer["id"])
        return DryRunResult(total_customers=len(customers), sample_customers=sample)

    async def migrate_user(self, email: str) -> UserRecord:
        # TODO: look the customer up by email through the customers search
        # endpoint once its metafield completeness is confirmed to match the
        # full listing.
        logger.info("Migrating single user %s", email)
        customers = await self.shopify.fetch_all_customers_with_metafields()
        customer = next((c for c in customers if c.get("email") == email), None)
        if customer is None:
            raise CustomerNotFoundError(f"Customer not found: {email}")
        record = customer_to_user(customer, self.migration_version)
        await self._db(self.users.upsert_one, record)
        logger.info("Migrated user %s", email)
        return record

    async def _db(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    @staticmethod
    def _log_stats(stats: MigrationStats) -> None:
        logger.info(
            "Users: %s total, %s migrated, %s not migrated",
            stats.total,
            stats.migrated,
            stats.not_migrated,
        )


def _error_message(exc: BaseException) -> str:
    # SQLAlchemy wraps driver errors; the driver message is the useful part
    cause = getattr(exc, "orig", None) or exc
    return str(cause) or type(cause).__name__
