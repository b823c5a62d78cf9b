"""Spending analytics over fetched transactions.

Turns lists of :class:`~spend_dashboard.models.Transaction` into the tables
behind the dashboard's overview and analytics views: spending per category,
spending per month and headline totals.  Amounts stay in integer cents.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from .config import DEFAULT_CATEGORY_COLOR
from .models import Category, Transaction

UNCATEGORIZED = 'Uncategorized'

TIME_RANGES = {'3m': 3, '6m': 6, '12m': 12}


def analytics_window(months: int, today: Optional[date] = None) -> Tuple[date, date]:
    """Return the (start, end) dates covering the last ``months`` months."""
    end = today or date.today()
    start = (pd.Timestamp(end) - pd.DateOffset(months=months)).date()
    return start, end


def transactions_to_dataframe(transactions: Iterable[Transaction]) -> pd.DataFrame:
    columns = ['id', 'Posted At', 'Amount Cents', 'Description', 'Category']
    rows = [
        {
            'id': t.id,
            'Posted At': t.posted_at,
            'Amount Cents': t.amount_cents,
            'Description': t.description,
            'Category': t.category,
        }
        for t in transactions
    ]
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows, columns=columns)


class SpendingAnalytics:
    """Spending breakdowns for a set of transactions."""

    def __init__(self, transactions: Iterable[Transaction],
                 categories: Iterable[Category] = ()):
        self.data = transactions_to_dataframe(transactions)
        self.colors: Dict[str, str] = {c.name: c.color for c in categories}
        self._prepare_data()

    def _prepare_data(self) -> None:
        self.data['Posted At'] = pd.to_datetime(self.data['Posted At'])
        self.data['Amount Cents'] = (
            pd.to_numeric(self.data['Amount Cents'], errors='coerce').fillna(0).astype('int64')
        )
        self.data['Category'] = self.data['Category'].fillna(UNCATEGORIZED).astype(str)
        self.data['Month'] = self.data['Posted At'].dt.to_period('M')

    def _expense_rows(self) -> pd.DataFrame:
        expenses = self.data[self.data['Amount Cents'] < 0].copy()
        expenses['Spent Cents'] = expenses['Amount Cents'].abs()
        return expenses

    def spending_by_category(self, top: Optional[int] = None) -> pd.DataFrame:
        """Total spend per category, largest first.

        Returns:
            DataFrame with columns: Category, Amount Cents, Color, Percentage
        """
        columns = ['Category', 'Amount Cents', 'Color', 'Percentage']
        expenses = self._expense_rows()
        if expenses.empty:
            return pd.DataFrame(columns=columns)

        totals = (
            expenses.groupby('Category')['Spent Cents'].sum()
            .reset_index()
            .rename(columns={'Spent Cents': 'Amount Cents'})
            .sort_values(['Amount Cents', 'Category'], ascending=[False, True])
            .reset_index(drop=True)
        )
        grand_total = totals['Amount Cents'].sum()
        totals['Color'] = totals['Category'].map(self.colors).fillna(DEFAULT_CATEGORY_COLOR)
        totals['Percentage'] = np.where(
            grand_total > 0, (totals['Amount Cents'] / grand_total * 100).round(1), 0.0
        )
        if top is not None:
            totals = totals.head(top)
        return totals[columns]

    def monthly_spending(self) -> pd.DataFrame:
        """Total spend per calendar month, oldest first.

        Returns:
            DataFrame with columns: Month (YYYY-MM), Label (e.g. 'Jan 24'), Amount Cents
        """
        columns = ['Month', 'Label', 'Amount Cents']
        expenses = self._expense_rows()
        if expenses.empty:
            return pd.DataFrame(columns=columns)

        monthly = expenses.groupby('Month')['Spent Cents'].sum().sort_index()
        return pd.DataFrame({
            'Month': [str(m) for m in monthly.index],
            'Label': [m.strftime('%b %y') for m in monthly.index],
            'Amount Cents': monthly.values.astype('int64'),
        })[columns]

    def summary(self, months: int) -> Dict[str, object]:
        """Headline figures for an analytics window of ``months`` months."""
        by_category = self.spending_by_category()
        total = int(by_category['Amount Cents'].sum()) if not by_category.empty else 0
        return {
            'total_spent_cents': total,
            'avg_monthly_spending_cents': int(round(total / months)) if months else 0,
            'top_category': by_category.iloc[0]['Category'] if not by_category.empty else None,
            'transaction_count': int(len(self._expense_rows())),
        }
