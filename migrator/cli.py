"""Command-line entry point for the Shopify → Supabase migration."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy.engine import Engine

from migrator.config import ConfigError, Settings, load_settings
from migrator.db.session import create_engine_from_url
from migrator.db.users import UserStore
from migrator.ingest.shopify import CUSTOMERS_CACHE_KEY, ShopifyAdminClient
from migrator.jobs.migrate import MigrationService
from migrator.utils.cache import CacheStore
from migrator.utils.dates import describe_age, format_timestamp, now_ms
from migrator.utils.logs import configure_logging
from migrator.utils.rate_limit import RateLimitedExecutor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    shopify: ShopifyAdminClient
    users: UserStore
    migration: MigrationService
    engine: Engine

    async def close(self) -> None:
        await self.shopify.close()
        self.engine.dispose()


def build_services(settings: Settings) -> Services:
    """Wire one executor, cache and engine shared by every component."""
    executor = RateLimitedExecutor(
        rate=settings.rate_limit_per_second,
        retry_attempts=settings.retry_attempts,
        retry_delay=settings.retry_delay,
    )
    shopify = ShopifyAdminClient(
        settings.shopify_store_domain,
        settings.shopify_access_token,
        executor,
        cache=CacheStore(settings.cache_dir),
    )
    engine = create_engine_from_url(settings.database_url)
    users = UserStore(engine)
    migration = MigrationService(
        shopify,
        users,
        batch_size=settings.batch_size,
        migration_version=settings.migration_version,
    )
    return Services(shopify=shopify, users=users, migration=migration, engine=engine)


def build_parser() -> argparse.ArgumentParser:
    # every command accepts the cache flags; only migrate acts on them
    cache_flags = argparse.ArgumentParser(add_help=False)
    cache_flags.add_argument(
        "-f", "--force", "--refresh", dest="force", action="store_true",
        help="ignore cached customers and fetch fresh data (migrate only)",
    )
    cache_flags.add_argument(
        "--no-cache", action="store_true", help="do not read or write the customer cache (migrate only)"
    )
    cache_flags.add_argument(
        "--max-cache-age", type=float, metavar="MINUTES",
        help="treat cached customers older than this as missing (migrate only)",
    )

    parser = argparse.ArgumentParser(
        prog="shopify-migrate",
        description="Migrate Shopify customers into the Supabase users table.",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    def add_command(name: str, help: str) -> argparse.ArgumentParser:
        return commands.add_parser(name, help=help, parents=[cache_flags])

    add_command("migrate", "run the full migration (default)")
    add_command("dry-run", "test connections and list customers without writing")
    migrate_user = add_command("migrate-user", "migrate a single customer by email")
    migrate_user.add_argument("email")
    add_command("stats", "show users table migration stats")
    add_command("test", "test Shopify and database connections")
    add_command("cache-info", "show the customer cache entry")
    add_command("clear-cache", "delete all cache entries")
    metaobjects = add_command("metaobjects", "list Shopify metaobjects")
    metaobjects.add_argument("--type", help="metaobject type to filter on")
    show_user = add_command("show-user", "print a users row by email")
    show_user.add_argument("email")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    args = list(sys.argv[1:] if argv is None else argv)
    # bare flags such as `--force` apply to the default migrate command
    if not args or (args[0].startswith("-") and args[0] not in ("-h", "--help")):
        args = ["migrate", *args]
    return build_parser().parse_args(args)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    configure_logging(settings.log_level, settings.log_dir)
    try:
        return asyncio.run(dispatch(args, settings))
    except Exception:
        logger.exception("Fatal error")
        return 1


async def dispatch(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "cache-info":
        return cache_info(CacheStore(settings.cache_dir))
    if args.command == "clear-cache":
        CacheStore(settings.cache_dir).clear()
        return 0

    services = build_services(settings)
    try:
        if args.command == "migrate":
            return await run_migration(services, args)
        if args.command == "dry-run":
            result = await services.migration.dry_run()
            logger.info("Dry run complete: %s customers", result.total_customers)
            print(json.dumps(result.sample_customers, indent=2, ensure_ascii=False))
            return 0
        if args.command == "migrate-user":
            await services.migration.migrate_user(args.email)
            return 0
        if args.command == "stats":
            return await show_stats(services)
        if args.command == "test":
            return await check_connections(services)
        if args.command == "metaobjects":
            metaobjects = await services.shopify.fetch_metaobjects(args.type)
            print(json.dumps([dataclasses.asdict(m) for m in metaobjects], indent=2, ensure_ascii=False))
            return 0
        if args.command == "show-user":
            return await show_user(services, args.email)
    finally:
        await services.close()
    raise ValueError(f"Unknown command: {args.command}")


async def run_migration(services: Services, args: argparse.Namespace) -> int:
    if args.force:
        logger.warning("Force refresh: cached customers will be ignored")
    elif args.no_cache:
        logger.warning("Cache disabled for this run")
    else:
        logger.info("Cache enabled: reusing the previous fetch when available")
    max_cache_age = args.max_cache_age * 60 if args.max_cache_age is not None else None
    result = await services.migration.run(
        use_cache=not args.no_cache, force_fresh=args.force, max_cache_age=max_cache_age
    )

    logger.info("Total users: %s", result.total_users)
    logger.info("Migrated: %s", result.migrated_users)
    logger.info("Failed: %s", result.failed_users)
    logger.info("Duration: %.2fs", result.duration)
    for index, error in enumerate(result.errors, start=1):
        logger.error("[%s] %s: %s", index, error.email, error.error)
    if not result.success:
        logger.warning("Some users failed to migrate")
        return 1
    logger.info("Migration completed successfully")
    return 0


async def show_stats(services: Services) -> int:
    stats = await asyncio.get_running_loop().run_in_executor(None, services.users.get_migration_stats)
    logger.info("Total users: %s", stats.total)
    logger.info("Migrated: %s", stats.migrated)
    logger.info("Not migrated: %s", stats.not_migrated)
    logger.info("Migrated ratio: %.2f%%", stats.migrated_ratio * 100)
    return 0


async def check_connections(services: Services) -> int:
    shopify_ok = await services.shopify.test_connection()
    database_ok = await asyncio.get_running_loop().run_in_executor(None, services.users.test_connection)
    if shopify_ok and database_ok:
        logger.info("All connection tests passed")
        return 0
    if not shopify_ok:
        logger.error("Shopify API connection failed")
    if not database_ok:
        logger.error("Database connection failed")
    return 1


async def show_user(services: Services, email: str) -> int:
    user = await asyncio.get_running_loop().run_in_executor(None, services.users.get_user_by_email, email)
    if user is None:
        logger.error("No user with email %s", email)
        return 1
    print(json.dumps(user, indent=2, ensure_ascii=False, default=str))
    return 0


def cache_info(cache: CacheStore) -> int:
    info = cache.get_info(CUSTOMERS_CACHE_KEY)
    if not info.exists:
        logger.info("No cache entry for %s", CUSTOMERS_CACHE_KEY)
        return 0
    logger.info("Cache entry: %s", CUSTOMERS_CACHE_KEY)
    logger.info("Size: %s KB", (info.size_bytes or 0) // 1024)
    if info.age_ms is not None:
        logger.info("Age: %s (saved %s)", describe_age(info.age_ms), format_timestamp(now_ms() - info.age_ms))
    return 0


if __name__ == "__main__":
    sys.exit(main())
