"""Data operations for the dashboard, grouped by resource.

:class:`Backend` is the only way the rest of the package reads or writes
data.  Every method takes an explicit :class:`~spend_dashboard.auth.UserContext`
and fails with :class:`AuthenticationError` before touching the database when
it is missing.  Rows are always scoped to the context's user.

Datastore failures surface as :class:`BackendError` with the underlying
``sqlite3`` error chained.  Nothing is retried.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from . import db
from .auth import UserContext, require_user
from .budget_periods import build_budget_analytics, generate_budget_periods
from .config import DEFAULT_PAGE_SIZE, DEFAULT_RULE_CONFIDENCE, GENERATION_HORIZON_DAYS
from .errors import BackendError, NotFoundError, QuickRuleError, ValidationError
from .models import (
    Account,
    Budget,
    BudgetAnalytics,
    BudgetPeriod,
    Category,
    Rule,
    Transaction,
)
from .validation import (
    validate_budget_input,
    validate_category_input,
    validate_confidence,
    validate_rule_input,
)

logger = logging.getLogger(__name__)

# Changing any of these invalidates a budget's existing periods
TIMING_FIELDS = ('start_date', 'recurrence_type', 'recurrence_interval', 'end_date')

BUDGET_FIELDS = TIMING_FIELDS + ('category_id', 'name', 'amount_cents', 'is_active')

REFRESH_SPEND_SQL = """
UPDATE budget_periods
SET spent_amount_cents = COALESCE((
    SELECT SUM(-t.amount_cents)
    FROM transactions t, budgets b, categories c
    WHERE b.id = budget_periods.budget_id
      AND c.id = b.category_id
      AND t.owner = budget_periods.owner
      AND t.amount_cents < 0
      AND t.category = c.name
      AND substr(t.posted_at, 1, 10) BETWEEN budget_periods.period_start
                                         AND budget_periods.period_end
), 0)
WHERE owner = ?
"""


def _escape_like(text: str) -> str:
    return text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def default_horizon(today: Optional[date] = None) -> date:
    return (today or date.today()) + timedelta(days=GENERATION_HORIZON_DAYS)


class Backend:
    """SQLite-backed implementation of the dashboard's data operations."""

    def __init__(self, db_path=None):
        self.db_path = db_path
        db.init_db(db_path)

    # Internal ----------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection and commit on success; roll back otherwise."""
        try:
            with db.connect(self.db_path) as conn:
                yield conn
                conn.commit()
        except sqlite3.Error as e:
            logger.error("Backend operation failed: %s", e)
            raise BackendError(str(e)) from e

    def _fetch_one(self, conn, sql: str, params: Sequence[Any], what: str):
        row = conn.execute(sql, params).fetchone()
        if row is None:
            raise NotFoundError(f"{what} not found")
        return row

    # Accounts ----------------------------------------------------------------

    def list_accounts(self, ctx: UserContext) -> List[Account]:
        owner = require_user(ctx)
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM accounts WHERE owner = ? ORDER BY name", (owner,)
            ).fetchall()
        return [Account.from_row(r) for r in rows]

    # Categories --------------------------------------------------------------

    def list_categories(self, ctx: UserContext) -> List[Category]:
        owner = require_user(ctx)
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM categories WHERE owner = ? ORDER BY name", (owner,)
            ).fetchall()
        return [Category.from_row(r) for r in rows]

    def get_category(self, ctx: UserContext, category_id: str) -> Category:
        owner = require_user(ctx)
        with self._transaction() as conn:
            row = self._fetch_one(
                conn, "SELECT * FROM categories WHERE id = ? AND owner = ?",
                (category_id, owner), "Category",
            )
        return Category.from_row(row)

    def create_category(self, ctx: UserContext, name: str, color: str) -> Category:
        owner = require_user(ctx)
        fields = validate_category_input(name, color)
        category_id = db.new_id()
        stamp = db.now_iso()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO categories (id, owner, name, color, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (category_id, owner, fields['name'], fields['color'], stamp, stamp),
            )
        logger.info("Created category %s", fields['name'])
        return Category(id=category_id, name=fields['name'], color=fields['color'], owner=owner)

    def update_category(self, ctx: UserContext, category_id: str,
                        name: Optional[str] = None, color: Optional[str] = None) -> Category:
        """Rename or recolour a category.

        Transactions and rules refer to categories by name and are not
        rewritten on rename; they show up in :meth:`dangling_categories`.
        Period spend is recomputed against the new name.
        """
        owner = require_user(ctx)
        current = self.get_category(ctx, category_id)
        fields = validate_category_input(
            name if name is not None else current.name,
            color if color is not None else current.color,
        )
        with self._transaction() as conn:
            conn.execute(
                "UPDATE categories SET name = ?, color = ?, updated_at = ? "
                "WHERE id = ? AND owner = ?",
                (fields['name'], fields['color'], db.now_iso(), category_id, owner),
            )
        if fields['name'] != current.name:
            logger.info("Renamed category %s to %s", current.name, fields['name'])
            self.refresh_spend(ctx)
        return Category(id=category_id, name=fields['name'], color=fields['color'], owner=owner)

    def delete_category(self, ctx: UserContext, category_id: str) -> None:
        owner = require_user(ctx)
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM categories WHERE id = ? AND owner = ?", (category_id, owner)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Category not found")

    def dangling_categories(self, ctx: UserContext) -> List[str]:
        """Category names used by transactions that no longer exist as categories."""
        owner = require_user(ctx)
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT DISTINCT t.category FROM transactions t "
                "LEFT JOIN categories c ON c.owner = t.owner AND c.name = t.category "
                "WHERE t.owner = ? AND t.category IS NOT NULL AND c.id IS NULL "
                "ORDER BY t.category",
                (owner,),
            ).fetchall()
        return [r[0] for r in rows]

    # Rules -------------------------------------------------------------------

    def list_rules(self, ctx: UserContext) -> List[Rule]:
        """Rules newest first."""
        owner = require_user(ctx)
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM rules WHERE owner = ? ORDER BY created_at DESC, rowid DESC",
                (owner,),
            ).fetchall()
        return [Rule.from_row(r) for r in rows]

    def get_rule(self, ctx: UserContext, rule_id: str) -> Rule:
        owner = require_user(ctx)
        with self._transaction() as conn:
            row = self._fetch_one(
                conn, "SELECT * FROM rules WHERE id = ? AND owner = ?", (rule_id, owner), "Rule"
            )
        return Rule.from_row(row)

    def create_rule(self, ctx: UserContext, matcher: str, category: str,
                    confidence: Optional[int] = DEFAULT_RULE_CONFIDENCE) -> Rule:
        owner = require_user(ctx)
        fields = validate_rule_input(matcher, category, confidence)
        with self._transaction() as conn:
            rule = self._insert_rule(conn, owner, fields)
        logger.info("Created rule %s -> %s", rule.matcher, rule.category)
        return rule

    def _insert_rule(self, conn, owner: str, fields: Dict[str, Any]) -> Rule:
        rule_id = db.new_id()
        stamp = db.now_iso()
        conn.execute(
            "INSERT INTO rules (id, owner, matcher, category, confidence, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (rule_id, owner, fields['matcher'], fields['category'], fields['confidence'],
             stamp, stamp),
        )
        return Rule(id=rule_id, matcher=fields['matcher'], category=fields['category'],
                    confidence=fields['confidence'], owner=owner)

    def update_rule(self, ctx: UserContext, rule_id: str, matcher: Optional[str] = None,
                    category: Optional[str] = None, confidence: Optional[int] = None) -> Rule:
        owner = require_user(ctx)
        current = self.get_rule(ctx, rule_id)
        fields = validate_rule_input(
            matcher if matcher is not None else current.matcher,
            category if category is not None else current.category,
            confidence if confidence is not None else current.confidence,
        )
        with self._transaction() as conn:
            conn.execute(
                "UPDATE rules SET matcher = ?, category = ?, confidence = ?, updated_at = ? "
                "WHERE id = ? AND owner = ?",
                (fields['matcher'], fields['category'], fields['confidence'], db.now_iso(),
                 rule_id, owner),
            )
        return Rule(id=rule_id, owner=owner, **fields)

    def delete_rule(self, ctx: UserContext, rule_id: str) -> None:
        owner = require_user(ctx)
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM rules WHERE id = ? AND owner = ?", (rule_id, owner))
            if cursor.rowcount == 0:
                raise NotFoundError("Rule not found")

    # Transactions ------------------------------------------------------------

    def _transaction_filters(
        self,
        owner: str,
        search: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        uncategorized_only: bool,
    ) -> Tuple[str, List[Any]]:
        where: List[str] = ["owner = ?"]
        params: List[Any] = [owner]

        if search:
            where.append("description LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(search.strip())}%")
        if start_date:
            where.append("posted_at >= ?")
            params.append(db.to_iso_date(start_date))
        if end_date:
            # posted_at carries a time component; end date is inclusive
            where.append("posted_at < ?")
            params.append((date.fromisoformat(db.to_iso_date(end_date)) + timedelta(days=1)).isoformat())
        if uncategorized_only:
            where.append("(category IS NULL OR category = '' OR needs_review = 1)")
        return " WHERE " + " AND ".join(where), params

    def list_transactions(
        self,
        ctx: UserContext,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        uncategorized_only: bool = False,
    ) -> List[Transaction]:
        """Newest-first page of the user's transactions.

        ``limit=None`` returns every matching row.
        """
        owner = require_user(ctx)
        where, params = self._transaction_filters(
            owner, search, start_date, end_date, uncategorized_only
        )
        sql = "SELECT * FROM transactions" + where + " ORDER BY posted_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])
        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Transaction.from_row(r) for r in rows]

    def count_transactions(
        self,
        ctx: UserContext,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        uncategorized_only: bool = False,
    ) -> int:
        owner = require_user(ctx)
        where, params = self._transaction_filters(
            owner, search, start_date, end_date, uncategorized_only
        )
        with self._transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM transactions" + where, params).fetchone()[0]

    def get_transaction(self, ctx: UserContext, transaction_id: str) -> Transaction:
        owner = require_user(ctx)
        with self._transaction() as conn:
            row = self._fetch_one(
                conn, "SELECT * FROM transactions WHERE id = ? AND owner = ?",
                (transaction_id, owner), "Transaction",
            )
        return Transaction.from_row(row)

    def _set_category(self, conn, owner: str, transaction_id: str, category: str,
                      confidence: Optional[int]) -> None:
        cursor = conn.execute(
            "UPDATE transactions SET category = ?, confidence = ?, needs_review = 0, "
            "updated_at = ? WHERE id = ? AND owner = ?",
            (category, confidence, db.now_iso(), transaction_id, owner),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Transaction not found")

    def update_transaction_category(self, ctx: UserContext, transaction_id: str,
                                    category: str, confidence: Optional[int] = None,
                                    refresh: bool = True) -> Transaction:
        """Set a transaction's category; the only mutable part of a transaction.

        Period spend is recomputed in the same transaction unless ``refresh``
        is False, for callers that update many rows and refresh once.
        """
        owner = require_user(ctx)
        if not (category or '').strip():
            raise ValidationError("Please select a category", field='category')
        confidence = validate_confidence(confidence)
        with self._transaction() as conn:
            self._set_category(conn, owner, transaction_id, category.strip(), confidence)
            if refresh:
                self._refresh_spend(conn, owner)
        return self.get_transaction(ctx, transaction_id)

    def create_rule_and_categorize(self, ctx: UserContext, transaction_id: str, matcher: str,
                                   category: str, confidence: Optional[int]) -> Tuple[Rule, Transaction]:
        """Insert a rule and apply its category to one transaction atomically."""
        owner = require_user(ctx)
        fields = validate_rule_input(matcher, category, confidence)
        try:
            with self._transaction() as conn:
                rule = self._insert_rule(conn, owner, fields)
                self._set_category(conn, owner, transaction_id, rule.category, rule.confidence)
                self._refresh_spend(conn, owner)
        except BackendError as e:
            logger.error("Quick rule for transaction %s failed: %s", transaction_id, e)
            raise QuickRuleError(f"Failed to create rule: {e}") from e
        logger.info("Created rule %s -> %s from transaction %s",
                    rule.matcher, rule.category, transaction_id)
        return rule, self.get_transaction(ctx, transaction_id)

    def list_expenses(self, ctx: UserContext, start_date: Optional[date] = None,
                      end_date: Optional[date] = None,
                      categorized_only: bool = False) -> List[Transaction]:
        """Expense transactions (negative amounts) in a date range, oldest first."""
        owner = require_user(ctx)
        where, params = self._transaction_filters(owner, None, start_date, end_date, False)
        where += " AND amount_cents < 0"
        if categorized_only:
            where += " AND category IS NOT NULL"
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions" + where + " ORDER BY posted_at, id", params
            ).fetchall()
        return [Transaction.from_row(r) for r in rows]

    # Budgets -----------------------------------------------------------------

    def list_budgets(self, ctx: UserContext, active_only: bool = False) -> List[Budget]:
        owner = require_user(ctx)
        sql = "SELECT * FROM budgets WHERE owner = ?"
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY name, created_at"
        with self._transaction() as conn:
            rows = conn.execute(sql, (owner,)).fetchall()
        return [Budget.from_row(r) for r in rows]

    def get_budget(self, ctx: UserContext, budget_id: str) -> Budget:
        owner = require_user(ctx)
        with self._transaction() as conn:
            row = self._fetch_one(
                conn, "SELECT * FROM budgets WHERE id = ? AND owner = ?", (budget_id, owner), "Budget"
            )
        return Budget.from_row(row)

    def create_budget(
        self,
        ctx: UserContext,
        category_id: str,
        amount_cents: int,
        start_date: date,
        recurrence_type: str = 'monthly',
        recurrence_interval: int = 1,
        end_date: Optional[date] = None,
        is_active: bool = True,
        name: Optional[str] = None,
        horizon: Optional[date] = None,
    ) -> Budget:
        """Create a budget, generate its periods and compute their spend.

        The budget name defaults to its category's name.
        """
        owner = require_user(ctx)
        fields = validate_budget_input(
            category_id, amount_cents, start_date, recurrence_type, recurrence_interval, end_date
        )
        category = self.get_category(ctx, fields['category_id'])
        budget = Budget(
            id=db.new_id(),
            name=(name or '').strip() or category.name,
            is_active=bool(is_active),
            **fields,
        )
        stamp = db.now_iso()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO budgets (id, owner, category_id, name, amount_cents, start_date, "
                "recurrence_type, recurrence_interval, end_date, is_active, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (budget.id, owner, budget.category_id, budget.name, budget.amount_cents,
                 db.to_iso_date(budget.start_date), budget.recurrence_type,
                 budget.recurrence_interval, db.to_iso_date(budget.end_date),
                 1 if budget.is_active else 0, stamp, stamp),
            )
        logger.info("Created budget %s (%s every %d)", budget.name,
                    budget.recurrence_type, budget.recurrence_interval)
        self.generate_periods(ctx, budget.id, horizon=horizon)
        return budget

    def update_budget(self, ctx: UserContext, budget_id: str, horizon: Optional[date] = None,
                      today: Optional[date] = None, **updates: Any) -> Budget:
        """Update budget fields.

        Changing a timing field regenerates every period.  Changing only the
        amount rewrites the budgeted amount of periods that have not ended.
        """
        owner = require_user(ctx)
        unknown = set(updates) - set(BUDGET_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown budget fields: {', '.join(sorted(unknown))}")

        current = self.get_budget(ctx, budget_id)
        merged = {f: updates.get(f, getattr(current, f)) for f in BUDGET_FIELDS}
        fields = validate_budget_input(
            merged['category_id'], merged['amount_cents'], merged['start_date'],
            merged['recurrence_type'], merged['recurrence_interval'], merged['end_date'],
        )
        if fields['category_id'] != current.category_id:
            self.get_category(ctx, fields['category_id'])
        budget = Budget(
            id=budget_id,
            name=(merged['name'] or '').strip() or current.name,
            is_active=bool(merged['is_active']),
            **fields,
        )

        timing_changed = any(getattr(budget, f) != getattr(current, f) for f in TIMING_FIELDS)
        amount_changed = budget.amount_cents != current.amount_cents
        category_changed = budget.category_id != current.category_id

        with self._transaction() as conn:
            conn.execute(
                "UPDATE budgets SET category_id = ?, name = ?, amount_cents = ?, start_date = ?, "
                "recurrence_type = ?, recurrence_interval = ?, end_date = ?, is_active = ?, "
                "updated_at = ? WHERE id = ? AND owner = ?",
                (budget.category_id, budget.name, budget.amount_cents,
                 db.to_iso_date(budget.start_date), budget.recurrence_type,
                 budget.recurrence_interval, db.to_iso_date(budget.end_date),
                 1 if budget.is_active else 0, db.now_iso(), budget_id, owner),
            )
            if amount_changed and not timing_changed:
                conn.execute(
                    "UPDATE budget_periods SET budgeted_amount_cents = ? "
                    "WHERE budget_id = ? AND owner = ? AND period_end >= ?",
                    (budget.amount_cents, budget_id, owner,
                     db.to_iso_date(today or date.today())),
                )

        if timing_changed:
            logger.info("Timing of budget %s changed; regenerating periods", budget.name)
            self.generate_periods(ctx, budget_id, horizon=horizon, replace=True)
        elif category_changed:
            self.refresh_spend(ctx, budget_id=budget_id)
        return budget

    def delete_budget(self, ctx: UserContext, budget_id: str) -> None:
        owner = require_user(ctx)
        with self._transaction() as conn:
            conn.execute("DELETE FROM budget_periods WHERE budget_id = ? AND owner = ?",
                         (budget_id, owner))
            cursor = conn.execute("DELETE FROM budgets WHERE id = ? AND owner = ?",
                                  (budget_id, owner))
            if cursor.rowcount == 0:
                raise NotFoundError("Budget not found")

    # Budget periods ----------------------------------------------------------

    def list_periods(self, ctx: UserContext, budget_id: str) -> List[BudgetPeriod]:
        owner = require_user(ctx)
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM budget_periods WHERE budget_id = ? AND owner = ? "
                "ORDER BY period_start",
                (budget_id, owner),
            ).fetchall()
        return [BudgetPeriod.from_row(r) for r in rows]

    def generate_periods(self, ctx: UserContext, budget_id: str,
                         horizon: Optional[date] = None,
                         replace: bool = False) -> List[BudgetPeriod]:
        """Materialize a budget's periods up to ``horizon`` and refresh their spend.

        Existing periods keep their ids; with ``replace=True`` all periods are
        discarded first.  Returns the stored periods in order.
        """
        owner = require_user(ctx)
        budget = self.get_budget(ctx, budget_id)
        periods = generate_budget_periods(budget, horizon=horizon or default_horizon())
        with self._transaction() as conn:
            if replace:
                conn.execute("DELETE FROM budget_periods WHERE budget_id = ? AND owner = ?",
                             (budget_id, owner))
            conn.executemany(
                "INSERT INTO budget_periods (id, owner, budget_id, period_start, period_end, "
                "budgeted_amount_cents) VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT (budget_id, period_start) DO UPDATE SET "
                "period_end = excluded.period_end",
                [
                    (db.new_id(), owner, budget_id, db.to_iso_date(p.period_start),
                     db.to_iso_date(p.period_end), p.budgeted_amount_cents)
                    for p in periods
                ],
            )
        logger.debug("Generated %d periods for budget %s", len(periods), budget_id)
        self.refresh_spend(ctx, budget_id=budget_id)
        return self.list_periods(ctx, budget_id)

    def refresh_spend(self, ctx: UserContext, budget_id: Optional[str] = None) -> int:
        """Recompute ``spent_amount_cents`` of the user's periods from transactions.

        Returns the number of periods refreshed.
        """
        owner = require_user(ctx)
        with self._transaction() as conn:
            return self._refresh_spend(conn, owner, budget_id)

    def _refresh_spend(self, conn, owner: str, budget_id: Optional[str] = None) -> int:
        sql = REFRESH_SPEND_SQL
        params: List[Any] = [owner]
        if budget_id is not None:
            sql += " AND budget_id = ?"
            params.append(budget_id)
        return conn.execute(sql, params).rowcount

    # Analytics ---------------------------------------------------------------

    def _category_names(self, ctx: UserContext) -> Dict[str, str]:
        return {c.id: c.name for c in self.list_categories(ctx)}

    def _current_periods(self, ctx: UserContext, budget: Budget, today: date) -> List[BudgetPeriod]:
        """Stored periods of ``budget``, generated further when they stop before ``today``."""
        periods = self.list_periods(ctx, budget.id)
        if not budget.is_active or budget.start_date > today:
            return periods
        last_end = periods[-1].period_end if periods else None
        if last_end is not None and last_end >= today:
            return periods
        if last_end is not None and budget.end_date is not None and budget.end_date <= last_end:
            return periods
        logger.info("Periods of budget %s end before %s; extending", budget.name, today)
        return self.generate_periods(ctx, budget.id, horizon=default_horizon(today))

    def get_budget_analytics(self, ctx: UserContext, budget_id: str,
                             today: Optional[date] = None) -> BudgetAnalytics:
        today = today or date.today()
        budget = self.get_budget(ctx, budget_id)
        return build_budget_analytics(
            budget, self._current_periods(ctx, budget, today), today,
            category_name=self._category_names(ctx).get(budget.category_id),
        )

    def get_all_budget_analytics(self, ctx: UserContext, today: Optional[date] = None,
                                 active_only: bool = True) -> List[BudgetAnalytics]:
        today = today or date.today()
        names = self._category_names(ctx)
        return [
            build_budget_analytics(
                budget, self._current_periods(ctx, budget, today), today,
                category_name=names.get(budget.category_id),
            )
            for budget in self.list_budgets(ctx, active_only=active_only)
        ]
