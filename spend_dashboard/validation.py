"""Client-side input checks.

Each ``validate_*`` helper raises :class:`ValidationError` before anything is
sent to the backend, and returns the cleaned values otherwise.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .errors import ValidationError
from .models import RECURRENCE_TYPES, parse_date


def _required_text(value: Optional[str], field: str, label: str) -> str:
    text = (value or '').strip()
    if not text:
        raise ValidationError(f"{label} is required", field=field)
    return text


def _required_category(category: Optional[str]) -> str:
    name = (category or '').strip()
    if not name:
        raise ValidationError("Please select a category", field='category')
    return name


def validate_confidence(confidence: Optional[int]) -> Optional[int]:
    if confidence is None:
        return None
    try:
        value = int(confidence)
    except (TypeError, ValueError):
        raise ValidationError("Confidence must be a whole number", field='confidence') from None
    if not 0 <= value <= 100:
        raise ValidationError("Confidence must be between 0 and 100", field='confidence')
    return value


def validate_category_input(name: Optional[str], color: Optional[str]) -> Dict[str, str]:
    return {
        'name': _required_text(name, 'name', "Category name"),
        'color': _required_text(color, 'color', "Category color"),
    }


def validate_rule_input(matcher: Optional[str], category: Optional[str],
                        confidence: Optional[int]) -> Dict[str, Any]:
    return {
        'matcher': _required_text(matcher, 'matcher', "Rule pattern"),
        'category': _required_category(category),
        'confidence': validate_confidence(confidence),
    }


def validate_budget_input(
    category_id: Optional[str],
    amount_cents: Any,
    start_date: Any,
    recurrence_type: str = 'monthly',
    recurrence_interval: Any = 1,
    end_date: Any = None,
) -> Dict[str, Any]:
    """Validate the fields of the budget form.

    Returns a dict of normalized values ready for ``Backend.create_budget``.
    """
    if not category_id:
        raise ValidationError("Please select a category", field='category_id')

    try:
        amount = int(amount_cents)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid amount", field='amount_cents') from None
    if amount <= 0:
        raise ValidationError("Please enter a valid amount", field='amount_cents')

    if not start_date:
        raise ValidationError("Start date is required", field='start_date')
    try:
        start = parse_date(start_date)
        end = parse_date(end_date)
    except ValueError:
        raise ValidationError("Dates must be in YYYY-MM-DD format", field='start_date') from None

    if recurrence_type not in RECURRENCE_TYPES:
        raise ValidationError(
            f"Recurrence must be one of: {', '.join(RECURRENCE_TYPES)}",
            field='recurrence_type',
        )
    try:
        interval = int(recurrence_interval)
    except (TypeError, ValueError):
        raise ValidationError("Recurrence interval must be a whole number",
                              field='recurrence_interval') from None
    if interval < 1:
        raise ValidationError("Recurrence interval must be at least 1", field='recurrence_interval')

    if end is not None and end < start:
        raise ValidationError("End date cannot be before the start date", field='end_date')

    return {
        'category_id': category_id,
        'amount_cents': amount,
        'start_date': start,
        'recurrence_type': recurrence_type,
        'recurrence_interval': interval,
        'end_date': end,
    }
