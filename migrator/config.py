"""Environment-driven settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv
from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)

REQUIRED_VARS = ("SHOPIFY_STORE_DOMAIN", "SHOPIFY_ACCESS_TOKEN", "SUPABASE_DB_URL")


class ConfigError(RuntimeError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            "Missing required environment variables: "
            + ", ".join(missing)
            + " (see .env.example)"
        )


@dataclass(slots=True)
class Settings:
    shopify_store_domain: str
    shopify_access_token: str
    database_url: str
    migration_version: str = "1.0.0"
    batch_size: int = 50
    rate_limit_per_second: int = 2
    retry_attempts: int = 3
    retry_delay: float = 1.0
    log_level: str = "INFO"
    cache_dir: str = "cache"
    log_dir: str = "logs"


def load_settings() -> Settings:
    """Read settings from the environment (and ``.env``), failing fast on gaps."""
    load_dotenv()
    missing = [name for name in REQUIRED_VARS if not os.environ.get(name)]
    if missing:
        raise ConfigError(missing)

    settings = Settings(
        shopify_store_domain=os.environ["SHOPIFY_STORE_DOMAIN"],
        shopify_access_token=os.environ["SHOPIFY_ACCESS_TOKEN"],
        database_url=_database_url(os.environ["SUPABASE_DB_URL"], os.environ.get("SUPABASE_DB_PASSWORD")),
        migration_version=os.environ.get("MIGRATION_VERSION", "1.0.0"),
        batch_size=int(os.environ.get("BATCH_SIZE", "50")),
        rate_limit_per_second=int(os.environ.get("RATE_LIMIT_PER_SECOND", "2")),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        cache_dir=os.environ.get("CACHE_DIR", "cache"),
        log_dir=os.environ.get("LOG_DIR", "logs"),
    )
    logger.info(
        "Loaded settings: shop=%s version=%s batch_size=%s rate_limit=%s/s",
        settings.shopify_store_domain,
        settings.migration_version,
        settings.batch_size,
        settings.rate_limit_per_second,
    )
    return settings


def _database_url(raw: str, password: str | None) -> str:
    if not password:
        return raw
    url = make_url(raw).set(password=password)
    return url.render_as_string(hide_password=False)
