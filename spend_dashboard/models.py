"""Row types for the dashboard's resources.

Each dataclass mirrors one table in :mod:`spend_dashboard.db` and knows how
to build itself from a ``sqlite3.Row``.  Dates are stored as ISO strings and
converted on the way in and out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional

RECURRENCE_TYPES = ('daily', 'weekly', 'monthly', 'yearly')


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))


@dataclass
class Account:
    id: str
    owner: str
    name: str
    type: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Account':
        return cls(id=row['id'], owner=row['owner'], name=row['name'], type=row['type'])


@dataclass
class Category:
    id: str
    name: str
    color: str
    owner: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Category':
        return cls(id=row['id'], name=row['name'], color=row['color'], owner=row['owner'])


@dataclass
class Rule:
    """Maps a ``%`` wildcard matcher to a category name."""
    id: str
    matcher: str
    category: str
    confidence: Optional[int] = None
    owner: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Rule':
        return cls(
            id=row['id'],
            matcher=row['matcher'],
            category=row['category'],
            confidence=row['confidence'],
            owner=row['owner'],
        )


@dataclass
class Transaction:
    id: str
    account_id: Optional[str]
    posted_at: datetime
    amount_cents: int
    description: str
    category: Optional[str] = None
    confidence: Optional[int] = None
    needs_review: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Transaction':
        return cls(
            id=row['id'],
            account_id=row['account_id'],
            posted_at=parse_datetime(row['posted_at']),
            amount_cents=int(row['amount_cents']),
            description=row['description'] or '',
            category=row['category'],
            confidence=row['confidence'],
            needs_review=bool(row['needs_review']),
        )


@dataclass
class Budget:
    id: str
    category_id: str
    name: str
    amount_cents: int
    start_date: date
    recurrence_type: str = 'monthly'
    recurrence_interval: int = 1
    end_date: Optional[date] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Budget':
        return cls(
            id=row['id'],
            category_id=row['category_id'],
            name=row['name'],
            amount_cents=int(row['amount_cents']),
            start_date=parse_date(row['start_date']),
            recurrence_type=row['recurrence_type'],
            recurrence_interval=int(row['recurrence_interval']),
            end_date=parse_date(row['end_date']),
            is_active=bool(row['is_active']),
        )


@dataclass
class BudgetPeriod:
    """One concrete instance of a budget's recurrence; ``period_end`` is inclusive."""
    period_start: date
    period_end: date
    budgeted_amount_cents: int
    spent_amount_cents: int = 0
    id: Optional[str] = None
    budget_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'BudgetPeriod':
        return cls(
            id=row['id'],
            budget_id=row['budget_id'],
            period_start=parse_date(row['period_start']),
            period_end=parse_date(row['period_end']),
            budgeted_amount_cents=int(row['budgeted_amount_cents']),
            spent_amount_cents=int(row['spent_amount_cents']),
        )


@dataclass
class PeriodUsage:
    """A budget period together with the figures shown on a budget card."""
    period_start: date
    period_end: date
    budgeted_amount_cents: int
    spent_amount_cents: int
    remaining_amount_cents: int
    percentage_used: float
    days_remaining: int
    status: str


@dataclass
class BudgetAnalytics:
    budget_id: str
    budget_name: str
    category: Optional[str]
    current_period: Optional[PeriodUsage] = None
    historical_periods: list = field(default_factory=list)
