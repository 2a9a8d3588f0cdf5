"""Shopify customer → ``users`` row mapping."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Mapping

from migrator.ingest.models import Customer, UserRecord

logger = logging.getLogger(__name__)

METAFIELD_NAMESPACE = "custom"
ROUTINE_KEY = "routine"
BRUSH_SCORE_KEY = "dental_analysis"
POINTS_KEY = "point"

LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)", re.ASCII)


def customer_to_user(customer: Customer, migration_version: str | None = None) -> UserRecord:
    """Build the ``users`` row for an enriched customer.

    Reads ``custom.routine`` and ``custom.dental_analysis`` as JSON and
    ``custom.point`` as an integer. A value that fails to parse becomes
    ``None`` (or ``0`` for points) and is logged; it never aborts the customer.
    The enriched customer is stored untouched in ``shopify_meta_data``.
    ``migration_version`` is accepted for call-site symmetry and not written.
    """
    email = customer.get("email")
    fields = _custom_fields(customer.get("metafields") or [])

    routine = None
    if ROUTINE_KEY in fields:
        routine = _parse_json(fields[ROUTINE_KEY], email, ROUTINE_KEY)

    brush_score = None
    if BRUSH_SCORE_KEY in fields:
        brush_score = _parse_json(fields[BRUSH_SCORE_KEY], email, BRUSH_SCORE_KEY)

    points = 0
    if POINTS_KEY in fields:
        points = _parse_points(fields[POINTS_KEY], email)

    return UserRecord(
        email=email,
        points=points,
        shopify_user_id=str(customer["id"]),
        routine=routine,
        brush_score=brush_score,
        shopify_meta_data=customer,
    )


def _custom_fields(metafields: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    # first match wins per key
    values: dict[str, Any] = {}
    for metafield in metafields:
        if metafield.get("namespace") != METAFIELD_NAMESPACE:
            continue
        key = metafield.get("key")
        if key in (ROUTINE_KEY, BRUSH_SCORE_KEY, POINTS_KEY) and key not in values:
            values[key] = metafield.get("value")
    return values


def _parse_json(value: Any, email: str | None, key: str) -> Any:
    try:
        return json.loads(value, parse_constant=_reject_constant)
    except (TypeError, ValueError):
        logger.warning("Could not parse %s metafield for %s", key, email)
        return None


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and Postgres JSONB rejects them
    raise ValueError(f"invalid JSON constant: {name}")


def _parse_points(value: Any, email: str | None) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        match = LEADING_INT_RE.match(value)
        if match:
            return int(match.group(1))
    logger.warning("Could not parse %s metafield for %s; defaulting to 0", POINTS_KEY, email)
    return 0
