"""Tests for spending analytics over fetched transactions."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from spend_dashboard.analytics import SpendingAnalytics, analytics_window
from spend_dashboard.models import Category, Transaction


def _txn(posted_at, amount_cents, description, category=None):
    return Transaction(
        id=f"{posted_at}-{description}",
        account_id='acc-1',
        posted_at=datetime.fromisoformat(posted_at),
        amount_cents=amount_cents,
        description=description,
        category=category,
    )


@pytest.fixture
def spending():
    transactions = [
        _txn('2024-01-05T10:00:00', -1000, 'PAK N SAVE', 'Groceries'),
        _txn('2024-01-20T19:00:00', -500, 'BURGER FUEL', 'Dining'),
        _txn('2024-02-03T11:00:00', -3000, 'COUNTDOWN', 'Groceries'),
        _txn('2024-02-10T00:00:00', 5000, 'SALARY'),
        _txn('2024-02-11T12:00:00', -500, 'MYSTERY SHOP'),
    ]
    categories = [Category(id='c1', name='Groceries', color='bg-green-500', owner='user-1')]
    return SpendingAnalytics(transactions, categories)


def test_spending_by_category(spending):
    df = spending.spending_by_category()

    assert list(df.columns) == ['Category', 'Amount Cents', 'Color', 'Percentage']
    assert df['Category'].tolist() == ['Groceries', 'Dining', 'Uncategorized']
    assert df['Amount Cents'].tolist() == [4000, 500, 500]
    assert df['Percentage'].tolist() == [80.0, 10.0, 10.0]
    assert df['Color'].tolist() == ['bg-green-500', 'bg-gray-500', 'bg-gray-500']


def test_spending_by_category_top(spending):
    assert spending.spending_by_category(top=1)['Category'].tolist() == ['Groceries']


def test_monthly_spending(spending):
    df = spending.monthly_spending()

    assert df['Month'].tolist() == ['2024-01', '2024-02']
    assert df['Label'].tolist() == ['Jan 24', 'Feb 24']
    assert df['Amount Cents'].tolist() == [1500, 3500]


def test_summary(spending):
    assert spending.summary(2) == {
        'total_spent_cents': 5000,
        'avg_monthly_spending_cents': 2500,
        'top_category': 'Groceries',
        'transaction_count': 4,
    }


def test_no_transactions():
    empty = SpendingAnalytics([])

    assert empty.spending_by_category().empty
    assert empty.monthly_spending().empty
    assert empty.summary(6) == {
        'total_spent_cents': 0,
        'avg_monthly_spending_cents': 0,
        'top_category': None,
        'transaction_count': 0,
    }


def test_analytics_window_clamps_month_end():
    assert analytics_window(3, date(2024, 5, 31)) == (date(2024, 2, 29), date(2024, 5, 31))
