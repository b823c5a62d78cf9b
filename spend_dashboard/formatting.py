"""Formatting utilities for currency and date display."""

from __future__ import annotations

from datetime import date, datetime
from typing import Union


def format_cents(amount_cents: int, include_sign: bool = True) -> str:
    """Format an amount in cents as currency.

    Example:
        >>> format_cents(123456)
        '$1,234.56'
        >>> format_cents(-1000)
        '-$10.00'
        >>> format_cents(123456, include_sign=False)
        '1,234.56'
    """
    formatted = f"{abs(amount_cents) / 100:,.2f}"
    if include_sign:
        formatted = f"${formatted}"
    return f"-{formatted}" if amount_cents < 0 else formatted


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def format_date(value: Union[date, datetime]) -> str:
    """Format a date like ``18 Oct 2026``."""
    return f"{value.day} {value.strftime('%b %Y')}"


def format_period(period_start: date, period_end: date) -> str:
    """Short label for a budget period, e.g. ``Jan 1 - Jan 31``."""
    return (f"{period_start.strftime('%b')} {period_start.day} - "
            f"{period_end.strftime('%b')} {period_end.day}")
