"""Unit tests for spend_dashboard.budget_periods."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from spend_dashboard.budget_periods import (
    STATUS_NEAR_LIMIT,
    STATUS_ON_TRACK,
    STATUS_OVER_BUDGET,
    build_budget_analytics,
    classify_status,
    days_remaining,
    find_current_period,
    generate_periods,
    history_dataframe,
    historical_usage,
    percentage_used,
    period_usage,
    summarize_current,
    summarize_history,
)
from spend_dashboard.models import Budget, BudgetPeriod


def _bounds(periods):
    return [(p.period_start.isoformat(), p.period_end.isoformat()) for p in periods]


def _assert_contiguous(periods):
    for prev, nxt in zip(periods, periods[1:]):
        assert prev.period_end + timedelta(days=1) == nxt.period_start


def test_monthly_periods_from_new_year():
    periods = generate_periods(date(2024, 1, 1), 'monthly', 1, 10000, horizon=date(2024, 4, 30))
    assert _bounds(periods) == [
        ('2024-01-01', '2024-01-31'),
        ('2024-02-01', '2024-02-29'),
        ('2024-03-01', '2024-03-31'),
        ('2024-04-01', '2024-04-30'),
    ]
    assert all(p.budgeted_amount_cents == 10000 for p in periods)
    assert all(p.spent_amount_cents == 0 for p in periods)


def test_month_end_start_clamps_without_drifting():
    periods = generate_periods(date(2024, 1, 31), 'monthly', 1, 500, horizon=date(2024, 4, 30))
    assert [p.period_start.isoformat() for p in periods] == [
        '2024-01-31', '2024-02-29', '2024-03-31', '2024-04-30'
    ]
    _assert_contiguous(periods)


def test_weekly_interval_two():
    periods = generate_periods(date(2024, 1, 1), 'weekly', 2, 500, horizon=date(2024, 2, 1))
    assert _bounds(periods) == [
        ('2024-01-01', '2024-01-14'),
        ('2024-01-15', '2024-01-28'),
        ('2024-01-29', '2024-02-11'),
    ]


def test_daily_and_yearly_periods():
    daily = generate_periods(date(2024, 2, 27), 'daily', 1, 100, horizon=date(2024, 3, 1))
    assert [p.period_start for p in daily] == [p.period_end for p in daily]
    assert len(daily) == 4

    yearly = generate_periods(date(2024, 2, 29), 'yearly', 1, 100, horizon=date(2026, 1, 1))
    assert _bounds(yearly) == [
        ('2024-02-29', '2025-02-27'),
        ('2025-02-28', '2026-02-27'),
    ]


def test_end_date_clips_last_period():
    periods = generate_periods(date(2024, 1, 1), 'monthly', 1, 100,
                               end_date=date(2024, 3, 15), horizon=date(2030, 1, 1))
    assert _bounds(periods) == [
        ('2024-01-01', '2024-01-31'),
        ('2024-02-01', '2024-02-29'),
        ('2024-03-01', '2024-03-15'),
    ]
    _assert_contiguous(periods)


def test_no_periods_when_start_is_after_horizon():
    assert generate_periods(date(2025, 1, 1), 'monthly', 1, 100, horizon=date(2024, 12, 31)) == []


@pytest.mark.parametrize('kwargs', [
    {'recurrence_type': 'fortnightly', 'recurrence_interval': 1, 'horizon': date(2024, 2, 1)},
    {'recurrence_type': 'monthly', 'recurrence_interval': 0, 'horizon': date(2024, 2, 1)},
    {'recurrence_type': 'monthly', 'recurrence_interval': 1},
])
def test_invalid_generation_arguments(kwargs):
    with pytest.raises(ValueError):
        generate_periods(date(2024, 1, 1), amount_cents=100, **kwargs)


def test_percentage_and_status_thresholds():
    assert percentage_used(10000, 7500) == 75.0
    assert classify_status(75.0) == STATUS_ON_TRACK
    assert classify_status(80.0) == STATUS_ON_TRACK
    assert percentage_used(10000, 8500) == 85.0
    assert classify_status(85.0) == STATUS_NEAR_LIMIT
    assert classify_status(100.0) == STATUS_NEAR_LIMIT
    assert classify_status(110.0) == STATUS_OVER_BUDGET
    assert percentage_used(0, 500) == 0.0
    assert percentage_used(3000, 1000) == 33.33


def test_period_usage_over_budget():
    period = BudgetPeriod(date(2024, 1, 1), date(2024, 1, 31), 10000, 11000)
    usage = period_usage(period, today=date(2024, 1, 20))
    assert usage.remaining_amount_cents == -1000
    assert usage.percentage_used == 110.0
    assert usage.status == STATUS_OVER_BUDGET
    assert usage.days_remaining == 11


def test_days_remaining_never_negative():
    assert days_remaining(date(2024, 1, 31), date(2024, 3, 1)) == 0
    assert days_remaining(date(2024, 1, 31), date(2024, 1, 31)) == 0
    assert days_remaining(date(2024, 1, 31), date(2024, 1, 30)) == 1


def test_current_period_lookup_is_inclusive():
    periods = generate_periods(date(2024, 1, 1), 'monthly', 1, 100, horizon=date(2024, 3, 1))
    assert find_current_period(periods, date(2024, 1, 31)).period_start == date(2024, 1, 1)
    assert find_current_period(periods, date(2024, 2, 1)).period_start == date(2024, 2, 1)
    assert find_current_period(periods, date(2023, 12, 31)) is None
    assert find_current_period(periods, date(2024, 4, 1)) is None


def _budget():
    return Budget(id='b1', category_id='c1', name='Groceries', amount_cents=10000,
                  start_date=date(2024, 1, 1))


def test_build_budget_analytics_and_history():
    periods = generate_periods(date(2024, 1, 1), 'monthly', 1, 10000, horizon=date(2024, 6, 1))
    for period, spent in zip(periods, [7500, 12000, 9000, 0, 0, 0]):
        period.spent_amount_cents = spent

    analytics = build_budget_analytics(_budget(), periods, today=date(2024, 3, 10),
                                       category_name='Groceries')
    assert analytics.current_period.period_start == date(2024, 3, 1)
    assert analytics.current_period.status == STATUS_NEAR_LIMIT
    assert [u.period_start.month for u in analytics.historical_periods] == [1, 2, 3]

    summary = summarize_history(analytics.historical_periods)
    assert summary['total_periods'] == 3
    assert summary['over_budget_periods'] == 1
    assert summary['over_budget_share'] == 33.3
    assert summary['average_usage'] == 95.0
    assert summary['total_variance_cents'] == -1500


def test_history_dataframe_columns_and_empty_history():
    assert summarize_history([])['total_periods'] == 0
    assert history_dataframe([]).empty

    periods = [BudgetPeriod(date(2024, 1, 1), date(2024, 1, 31), 10000, 10500)]
    frame = history_dataframe(historical_usage(periods, date(2024, 2, 1)))
    assert frame.loc[0, 'Variance'] == 500
    assert bool(frame.loc[0, 'Over Budget'])


def test_summarize_current_counts_statuses():
    today = date(2024, 1, 15)
    items = []
    for spent in (5000, 9000, 12000):
        period = BudgetPeriod(date(2024, 1, 1), date(2024, 1, 31), 10000, spent)
        items.append(build_budget_analytics(_budget(), [period], today))
    items.append(build_budget_analytics(_budget(), [], today))

    summary = summarize_current(items)
    assert summary['total_budgeted_cents'] == 30000
    assert summary['total_spent_cents'] == 26000
    assert summary['total_remaining_cents'] == 4000
    assert (summary['on_track'], summary['near_limit'], summary['over_budget']) == (1, 1, 1)
