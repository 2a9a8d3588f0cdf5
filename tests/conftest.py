import pytest
from sqlalchemy import Boolean, Column, Integer, JSON, MetaData, Table, Text, create_engine, text
from sqlalchemy.pool import StaticPool

from migrator.utils.rate_limit import RateLimitedExecutor

SHOP = "test-shop.myshopify.com"
API_PREFIX = "/admin/api/2024-10"
BASE_URL = f"https://{SHOP}{API_PREFIX}"

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", Text, unique=True, nullable=False),
    Column("points", Integer, server_default=text("0")),
    Column("shopify_user_id", Text),
    Column("routine", JSON),
    Column("brush_score", JSON),
    Column("shopify_meta_data", JSON),
    Column("migrated", Boolean, nullable=False, server_default=text("0")),
    Column("migrated_version", Text),
)


def make_customer(customer_id, email, metafields=None, **extra):
    customer = {
        "id": customer_id,
        "email": email,
        "first_name": extra.pop("first_name", "Test"),
        "last_name": extra.pop("last_name", f"User{customer_id}"),
        "state": "enabled",
        "verified_email": True,
        "currency": "JPY",
        "created_at": "2024-01-01T00:00:00+09:00",
        "updated_at": "2024-06-01T00:00:00+09:00",
        "addresses": [],
        **extra,
    }
    if metafields is not None:
        customer["metafields"] = metafields
    return customer


def make_metafield(key, value, namespace="custom", type="json"):
    return {"namespace": namespace, "key": key, "value": value, "type": type}


@pytest.fixture()
def engine():
    # threads from run_in_executor must see the same in-memory database
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def executor():
    return RateLimitedExecutor(rate=100, retry_attempts=3, retry_delay=0)
