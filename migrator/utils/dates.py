"""Datetime helpers."""

from __future__ import annotations

import os

import pendulum

DEFAULT_TZ = "UTC"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(pendulum.now("UTC").timestamp() * 1000)


def format_timestamp(ms: int) -> str:
    moment = pendulum.from_timestamp(ms / 1000, tz=timezone_name())
    return moment.format("YYYY-MM-DD HH:mm:ss Z")


def describe_age(age_ms: int) -> str:
    duration = pendulum.duration(milliseconds=max(age_ms, 0))
    return f"{duration.in_hours()}h {duration.minutes}m"
