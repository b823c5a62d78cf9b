"""Data loaders for the dashboard's views.

Each ``load_*`` function issues the independent backend reads a view needs
concurrently, joins them, and returns a :class:`PageState`.  Any failure is
logged and turned into an empty state carrying the error message; nothing is
retried.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Optional

from .analytics import TIME_RANGES, SpendingAnalytics, analytics_window
from .auth import UserContext
from .backend import Backend
from .budget_periods import summarize_current, summarize_history
from .config import DEFAULT_PAGE_SIZE
from .errors import SpendDashboardError

logger = logging.getLogger(__name__)


@dataclass
class PageState:
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def fetch_concurrently(calls: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
    """Run independent zero-argument calls on a thread pool and join them.

    The first failure (in key order) is re-raised after all calls finish.
    """
    with ThreadPoolExecutor(max_workers=max(1, len(calls))) as pool:
        futures = {key: pool.submit(call) for key, call in calls.items()}
    return {key: future.result() for key, future in futures.items()}


def _load(view: str, build: Callable[[], Dict[str, Any]]) -> PageState:
    try:
        return PageState(data=build())
    except SpendDashboardError as e:
        logger.error("Error loading %s data: %s", view, e)
        return PageState(error=str(e))
    except Exception as e:
        logger.exception("Unexpected error loading %s data", view)
        return PageState(error=str(e))


def load_transactions_page(
    backend: Backend,
    ctx: UserContext,
    uncategorized_only: bool = False,
    search: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> PageState:
    offset = max(0, page - 1) * page_size
    filters = dict(search=search, start_date=start_date, end_date=end_date,
                   uncategorized_only=uncategorized_only)

    def build() -> Dict[str, Any]:
        data = fetch_concurrently({
            'transactions': lambda: backend.list_transactions(
                ctx, limit=page_size, offset=offset, **filters),
            'total': lambda: backend.count_transactions(ctx, **filters),
            'categories': lambda: backend.list_categories(ctx),
        })
        data['page'] = page
        data['page_size'] = page_size
        return data

    return _load('transactions', build)


def load_rules_page(backend: Backend, ctx: UserContext) -> PageState:
    return _load('rules', lambda: fetch_concurrently({
        'rules': lambda: backend.list_rules(ctx),
        'categories': lambda: backend.list_categories(ctx),
    }))


def load_budgets_page(backend: Backend, ctx: UserContext,
                      today: Optional[date] = None) -> PageState:
    def build() -> Dict[str, Any]:
        data = fetch_concurrently({
            'budgets': lambda: backend.list_budgets(ctx),
            'analytics': lambda: backend.get_all_budget_analytics(ctx, today=today),
            'categories': lambda: backend.list_categories(ctx),
        })
        data['summary'] = summarize_current(data['analytics'])
        return data

    return _load('budgets', build)


def load_budget_history(backend: Backend, ctx: UserContext, budget_id: str,
                        today: Optional[date] = None) -> PageState:
    def build() -> Dict[str, Any]:
        analytics = backend.get_budget_analytics(ctx, budget_id, today=today)
        return {
            'analytics': analytics,
            'summary': summarize_history(analytics.historical_periods),
        }

    return _load('budget history', build)


def load_analytics_page(backend: Backend, ctx: UserContext, time_range: str = '6m',
                        today: Optional[date] = None) -> PageState:
    months = TIME_RANGES.get(time_range)
    if months is None:
        return PageState(error=f"Unknown time range '{time_range}'")
    start, end = analytics_window(months, today)

    def build() -> Dict[str, Any]:
        fetched = fetch_concurrently({
            'expenses': lambda: backend.list_expenses(ctx, start_date=start, end_date=end),
            'categories': lambda: backend.list_categories(ctx),
        })
        analytics = SpendingAnalytics(fetched['expenses'], fetched['categories'])
        return {
            'monthly_spending': analytics.monthly_spending(),
            'category_breakdown': analytics.spending_by_category(),
            'summary': analytics.summary(months),
        }

    return _load('analytics', build)


def load_overview(backend: Backend, ctx: UserContext, today: Optional[date] = None) -> PageState:
    """Last month's spending by category plus accounts and budget status."""
    start, end = analytics_window(1, today)

    def build() -> Dict[str, Any]:
        fetched = fetch_concurrently({
            'expenses': lambda: backend.list_expenses(ctx, start_date=start, end_date=end),
            'categories': lambda: backend.list_categories(ctx),
            'accounts': lambda: backend.list_accounts(ctx),
            'budgets': lambda: backend.get_all_budget_analytics(ctx, today=today),
        })
        analytics = SpendingAnalytics(fetched['expenses'], fetched['categories'])
        return {
            'accounts': fetched['accounts'],
            'category_breakdown': analytics.spending_by_category(),
            'summary': analytics.summary(1),
            'budget_summary': summarize_current(fetched['budgets']),
        }

    return _load('overview', build)
