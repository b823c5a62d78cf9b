"""Budget period generation and usage analytics.

This module turns a budget's recurrence definition into concrete periods and
derives the figures shown for each of them: amount remaining, percentage
used, days left and a display status.  Everything here is a pure function of
already-fetched rows; persistence of periods is handled by
:mod:`spend_dashboard.backend`.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import NEAR_LIMIT_THRESHOLD, OVER_BUDGET_THRESHOLD
from .models import Budget, BudgetAnalytics, BudgetPeriod, PeriodUsage

STATUS_ON_TRACK = 'on_track'
STATUS_NEAR_LIMIT = 'near_limit'
STATUS_OVER_BUDGET = 'over_budget'

_OFFSET_UNITS = {
    'daily': 'days',
    'weekly': 'weeks',
    'monthly': 'months',
    'yearly': 'years',
}


def _nth_start(start_date: date, recurrence_type: str, interval: int, n: int) -> date:
    # Offsets are taken from the original start so month-end clamping never drifts
    offset = pd.DateOffset(**{_OFFSET_UNITS[recurrence_type]: n * interval})
    return (pd.Timestamp(start_date) + offset).date()


def generate_periods(
    start_date: date,
    recurrence_type: str,
    recurrence_interval: int,
    amount_cents: int,
    end_date: Optional[date] = None,
    horizon: Optional[date] = None,
) -> List[BudgetPeriod]:
    """Build the contiguous periods of a recurring budget.

    The k-th period starts at ``start_date + k * interval`` units and ends
    (inclusive) the day before the next one starts.  Generation stops at
    ``end_date``, whose period is clipped to it, or once a period would start
    after ``horizon``.

    Args:
        start_date: First day of the first period
        recurrence_type: One of daily, weekly, monthly, yearly
        recurrence_interval: Number of units per period (>= 1)
        amount_cents: Budgeted amount copied onto every period
        end_date: Optional last day covered by the budget
        horizon: Optional latest date on which a period may start

    Returns:
        List of BudgetPeriod ordered by ``period_start``

    Raises:
        ValueError: If the recurrence is invalid or neither bound is given

    Example:
        >>> periods = generate_periods(date(2024, 1, 1), 'monthly', 1, 10000,
        ...                            horizon=date(2024, 2, 15))
        >>> [(p.period_start.isoformat(), p.period_end.isoformat()) for p in periods]
        [('2024-01-01', '2024-01-31'), ('2024-02-01', '2024-02-29')]
    """
    if recurrence_type not in _OFFSET_UNITS:
        raise ValueError(f"Unknown recurrence type '{recurrence_type}'")
    if recurrence_interval < 1:
        raise ValueError("Recurrence interval must be at least 1")
    if end_date is None and horizon is None:
        raise ValueError("Either end_date or horizon is required to bound generation")

    limit = min(d for d in (end_date, horizon) if d is not None)

    periods: List[BudgetPeriod] = []
    n = 0
    period_start = start_date
    while period_start <= limit:
        next_start = _nth_start(start_date, recurrence_type, recurrence_interval, n + 1)
        period_end = next_start - timedelta(days=1)
        if end_date is not None and period_end > end_date:
            period_end = end_date
        periods.append(BudgetPeriod(
            period_start=period_start,
            period_end=period_end,
            budgeted_amount_cents=amount_cents,
        ))
        n += 1
        period_start = next_start
    return periods


def generate_budget_periods(budget: Budget, horizon: Optional[date] = None) -> List[BudgetPeriod]:
    """Generate the periods of ``budget`` with its id filled in."""
    periods = generate_periods(
        budget.start_date,
        budget.recurrence_type,
        budget.recurrence_interval,
        budget.amount_cents,
        end_date=budget.end_date,
        horizon=horizon,
    )
    for period in periods:
        period.budget_id = budget.id
    return periods


def find_current_period(periods: Iterable[BudgetPeriod], today: date) -> Optional[BudgetPeriod]:
    """Return the period whose ``[period_start, period_end]`` contains ``today``."""
    for period in periods:
        if period.period_start <= today <= period.period_end:
            return period
    return None


def percentage_used(budgeted_amount_cents: int, spent_amount_cents: int) -> float:
    if budgeted_amount_cents <= 0:
        return 0.0
    return round(spent_amount_cents / budgeted_amount_cents * 100, 2)


def days_remaining(period_end: date, today: date) -> int:
    return max(0, (period_end - today).days)


def classify_status(percent: float) -> str:
    """Map a percentage used to on_track, near_limit or over_budget."""
    if percent > OVER_BUDGET_THRESHOLD:
        return STATUS_OVER_BUDGET
    if percent > NEAR_LIMIT_THRESHOLD:
        return STATUS_NEAR_LIMIT
    return STATUS_ON_TRACK


def period_usage(period: BudgetPeriod, today: date) -> PeriodUsage:
    percent = percentage_used(period.budgeted_amount_cents, period.spent_amount_cents)
    return PeriodUsage(
        period_start=period.period_start,
        period_end=period.period_end,
        budgeted_amount_cents=period.budgeted_amount_cents,
        spent_amount_cents=period.spent_amount_cents,
        remaining_amount_cents=period.budgeted_amount_cents - period.spent_amount_cents,
        percentage_used=percent,
        days_remaining=days_remaining(period.period_end, today),
        status=classify_status(percent),
    )


def historical_usage(periods: Sequence[BudgetPeriod], today: date) -> List[PeriodUsage]:
    """Usage for every period that has started by ``today``, oldest first."""
    started = sorted(
        (p for p in periods if p.period_start <= today),
        key=lambda p: p.period_start,
    )
    return [period_usage(p, today) for p in started]


def build_budget_analytics(
    budget: Budget,
    periods: Sequence[BudgetPeriod],
    today: date,
    category_name: Optional[str] = None,
) -> BudgetAnalytics:
    current = find_current_period(periods, today)
    return BudgetAnalytics(
        budget_id=budget.id,
        budget_name=budget.name,
        category=category_name,
        current_period=period_usage(current, today) if current else None,
        historical_periods=historical_usage(periods, today),
    )


def history_dataframe(usages: Sequence[PeriodUsage]) -> pd.DataFrame:
    """Create a DataFrame of period usage for trend display.

    Returns:
        DataFrame with columns: Period Start, Period End, Budgeted, Spent,
        Remaining, Percent Used, Variance, Over Budget, Status
    """
    columns = ['Period Start', 'Period End', 'Budgeted', 'Spent', 'Remaining',
               'Percent Used', 'Variance', 'Over Budget', 'Status']
    if not usages:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame([
        {
            'Period Start': u.period_start,
            'Period End': u.period_end,
            'Budgeted': u.budgeted_amount_cents,
            'Spent': u.spent_amount_cents,
            'Remaining': u.remaining_amount_cents,
            'Percent Used': u.percentage_used,
            'Status': u.status,
        }
        for u in usages
    ])
    df['Variance'] = df['Spent'] - df['Budgeted']
    df['Over Budget'] = np.where(df['Percent Used'] > OVER_BUDGET_THRESHOLD, True, False)
    return df[columns]


def summarize_history(usages: Sequence[PeriodUsage]) -> Dict[str, float]:
    """Summary figures for a budget's history.

    Returns:
        Dict with total_periods, over_budget_periods, over_budget_share (percent),
        average_usage (percent) and total_variance_cents (spent minus budgeted)
    """
    df = history_dataframe(usages)
    if df.empty:
        return {
            'total_periods': 0,
            'over_budget_periods': 0,
            'over_budget_share': 0.0,
            'average_usage': 0.0,
            'total_variance_cents': 0,
        }
    total = len(df)
    over = int(df['Over Budget'].sum())
    return {
        'total_periods': total,
        'over_budget_periods': over,
        'over_budget_share': round(over / total * 100, 1),
        'average_usage': round(float(df['Percent Used'].mean()), 2),
        'total_variance_cents': int(df['Variance'].sum()),
    }


def summarize_current(analytics: Iterable[BudgetAnalytics]) -> Dict[str, float]:
    """Totals across budgets' current periods, as shown on the budgets page."""
    budgeted = 0
    spent = 0
    counts = {STATUS_ON_TRACK: 0, STATUS_NEAR_LIMIT: 0, STATUS_OVER_BUDGET: 0}
    for item in analytics:
        current = item.current_period
        if current is None:
            continue
        budgeted += current.budgeted_amount_cents
        spent += current.spent_amount_cents
        counts[current.status] += 1
    return {
        'total_budgeted_cents': budgeted,
        'total_spent_cents': spent,
        'total_remaining_cents': budgeted - spent,
        'percentage_used': percentage_used(budgeted, spent),
        'on_track': counts[STATUS_ON_TRACK],
        'near_limit': counts[STATUS_NEAR_LIMIT],
        'over_budget': counts[STATUS_OVER_BUDGET],
    }
