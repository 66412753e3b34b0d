"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date

import pendulum

DEFAULT_TZ = "UTC"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    today = now_in_tz()
    return date(today.year, today.month, today.day)


def parse_iso_date(value: str | date | None) -> date | None:
    """Parse the date part of an ISO date or datetime string.

    Returns None for empty or invalid input rather than raising, since
    provider data routinely carries blank release dates.
    """
    if value is None:
        return None
    if isinstance(value, date):
        return date(value.year, value.month, value.day)
    text = value.strip()[:10]
    if not text:
        return None
    try:
        parsed = pendulum.parse(text, exact=True)
    except (ValueError, TypeError):
        return None
    if not isinstance(parsed, date):
        return None
    return date(parsed.year, parsed.month, parsed.day)


def format_date(value: date | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%Y-%m-%d")


def add_months(value: date, months: int) -> date:
    shifted = pendulum.date(value.year, value.month, value.day).add(months=months)
    return date(shifted.year, shifted.month, shifted.day)
