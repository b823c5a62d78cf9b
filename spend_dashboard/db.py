"""SQLite storage for the dashboard.

Owns the schema, connections and a few low-level insert helpers used to seed
accounts and transactions.  Resource operations live in
:mod:`spend_dashboard.backend`.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from .config import DB_PATH, ensure_data_directories

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT '',
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    color TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT,
    UNIQUE (owner, name)
);

CREATE TABLE IF NOT EXISTS rules (
    id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    matcher TEXT NOT NULL,
    category TEXT NOT NULL,
    confidence INTEGER CHECK (confidence IS NULL OR confidence BETWEEN 0 AND 100),
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    account_id TEXT REFERENCES accounts (id) ON DELETE SET NULL,
    posted_at TEXT NOT NULL,
    amount_cents INTEGER NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    category TEXT,
    confidence INTEGER,
    needs_review INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS budgets (
    id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    category_id TEXT NOT NULL REFERENCES categories (id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
    start_date TEXT NOT NULL,
    recurrence_type TEXT NOT NULL
        CHECK (recurrence_type IN ('daily', 'weekly', 'monthly', 'yearly')),
    recurrence_interval INTEGER NOT NULL DEFAULT 1 CHECK (recurrence_interval > 0),
    end_date TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS budget_periods (
    id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    budget_id TEXT NOT NULL REFERENCES budgets (id) ON DELETE CASCADE,
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    budgeted_amount_cents INTEGER NOT NULL,
    spent_amount_cents INTEGER NOT NULL DEFAULT 0,
    UNIQUE (budget_id, period_start)
);

CREATE INDEX IF NOT EXISTS ix_txn_owner_posted ON transactions (owner, posted_at);
CREATE INDEX IF NOT EXISTS ix_txn_category ON transactions (category);
CREATE INDEX IF NOT EXISTS ix_rules_owner ON rules (owner);
CREATE INDEX IF NOT EXISTS ix_periods_budget ON budget_periods (budget_id, period_start);
"""

PathLike = Union[str, Path]


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_iso_date(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)[:10]).isoformat()


def to_iso_datetime(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).isoformat()
    return datetime.fromisoformat(str(value)).isoformat()


@contextmanager
def connect(db_path: Optional[PathLike] = None) -> Iterator[sqlite3.Connection]:
    if db_path is None:
        ensure_data_directories()
        db_path = DB_PATH
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[PathLike] = None) -> None:
    if db_path is not None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with connect(db_path) as conn:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    logger.debug("Initialized schema at %s", db_path or DB_PATH)


def insert_account(owner: str, name: str, account_type: str = '',
                   account_id: Optional[str] = None,
                   db_path: Optional[PathLike] = None) -> str:
    """Insert an account row and return its id."""
    account_id = account_id or new_id()
    stamp = now_iso()
    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO accounts (id, owner, name, type, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (account_id, owner, name, account_type, stamp, stamp),
        )
        conn.commit()
    return account_id


def insert_transactions(owner: str, rows: Iterable[Dict[str, Any]],
                        db_path: Optional[PathLike] = None) -> List[str]:
    """Insert already-synced transaction rows for ``owner``.

    Each row needs ``posted_at``, ``amount_cents`` and ``description``;
    ``id``, ``account_id``, ``category``, ``confidence`` and ``needs_review``
    are optional.  Returns the ids in input order.
    """
    stamp = now_iso()
    records = []
    ids: List[str] = []
    for row in rows:
        txn_id = row.get('id') or new_id()
        ids.append(txn_id)
        records.append((
            txn_id,
            owner,
            row.get('account_id'),
            to_iso_datetime(row['posted_at']),
            int(row['amount_cents']),
            row.get('description') or '',
            row.get('category'),
            row.get('confidence'),
            1 if row.get('needs_review') else 0,
            stamp,
            stamp,
        ))

    if not records:
        return ids

    with connect(db_path) as conn:
        conn.executemany(
            "INSERT INTO transactions (id, owner, account_id, posted_at, amount_cents, "
            "description, category, confidence, needs_review, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            records,
        )
        conn.commit()
    logger.info("Inserted %d transactions for %s", len(records), owner)
    return ids
