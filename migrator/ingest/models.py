"""Migration data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

# Shopify customer JSON, kept verbatim. An enriched customer carries a
# ``metafields`` list as well.
Customer = dict[str, Any]


@dataclass(slots=True)
class Metaobject:
    id: str
    type: str
    handle: str
    fields: list[dict[str, Any]]
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> "Metaobject":
        return cls(
            id=node["id"],
            type=node.get("type", ""),
            handle=node.get("handle", ""),
            fields=list(node.get("fields") or []),
            created_at=node.get("createdAt"),
            updated_at=node.get("updatedAt"),
        )


@dataclass(slots=True)
class UserRecord:
    """Row written to the ``users`` table.

    ``migrated`` and ``migrated_version`` are owned by another consumer and have
    no fields here.
    """

    email: str | None
    shopify_user_id: str
    points: int = 0
    routine: Any = None
    brush_score: Any = None
    shopify_meta_data: Mapping[str, Any] = field(default_factory=dict)

    def as_row(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "points": self.points,
            "shopify_user_id": self.shopify_user_id,
            "routine": self.routine,
            "brush_score": self.brush_score,
            "shopify_meta_data": self.shopify_meta_data,
        }


@dataclass(slots=True)
class MigrationStats:
    total: int
    migrated: int

    @property
    def not_migrated(self) -> int:
        return self.total - self.migrated

    @property
    def migrated_ratio(self) -> float:
        return self.migrated / self.total if self.total else 0.0


@dataclass(slots=True)
class MigrationError:
    email: str
    error: str


@dataclass(slots=True)
class MigrationResult:
    total_users: int
    migrated_users: int
    failed_users: int
    errors: list[MigrationError]
    duration: float

    @property
    def success(self) -> bool:
        return self.failed_users == 0


@dataclass(slots=True)
class DryRunResult:
    total_customers: int
    sample_customers: list[dict[str, Any]]


@dataclass(slots=True)
class AllSucceeded:
    count: int


@dataclass(slots=True)
class Failed:
    cause: Exception


BatchWriteResult = Union[AllSucceeded, Failed]
