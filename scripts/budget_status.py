#!/usr/bin/env python3
"""Print the current period status of every active budget."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spend_dashboard import Backend, UserContext
from spend_dashboard.budget_periods import summarize_current
from spend_dashboard.config import configure_logging
from spend_dashboard.formatting import format_cents, format_percent, format_period

STATUS_LABELS = {
    'on_track': 'On Track',
    'near_limit': 'Near Limit',
    'over_budget': 'Over Budget',
}


def main(user_id: str, refresh: bool = True) -> None:
    backend = Backend()
    ctx = UserContext(user_id=user_id)
    if refresh:
        backend.refresh_spend(ctx)
    analytics = backend.get_all_budget_analytics(ctx)
    if not analytics:
        print("No budgets yet.")
        return

    for item in analytics:
        current = item.current_period
        if current is None:
            print(f"{item.budget_name}: no current period")
            continue
        print(
            f"{item.budget_name} ({format_period(current.period_start, current.period_end)}): "
            f"{format_cents(current.spent_amount_cents)} of "
            f"{format_cents(current.budgeted_amount_cents)} "
            f"[{format_percent(current.percentage_used)}, {STATUS_LABELS[current.status]}] "
            f"{current.days_remaining} days left"
        )

    summary = summarize_current(analytics)
    print(
        f"\nTotal: {format_cents(summary['total_spent_cents'])} of "
        f"{format_cents(summary['total_budgeted_cents'])}, "
        f"{summary['over_budget']} over budget"
    )


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show budget status for the current period.')
    parser.add_argument('--user', required=True, help='User id whose budgets to show')
    parser.add_argument('--no-refresh', dest='refresh', action='store_false',
                        help='Skip recomputing spend before printing')
    args = parser.parse_args()
    configure_logging()
    main(args.user, refresh=args.refresh)
