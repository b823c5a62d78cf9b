from datetime import datetime

import pytest

from spend_dashboard import db
from spend_dashboard.auth import UserContext
from spend_dashboard.backend import Backend


@pytest.fixture
def backend(tmp_path):
    return Backend(db_path=tmp_path / 'test.db')


@pytest.fixture
def ctx():
    return UserContext(user_id='user-1', email='one@example.com')


@pytest.fixture
def other_ctx():
    return UserContext(user_id='user-2')


@pytest.fixture
def seed_transactions(backend):
    """Insert transactions for a user; rows are (posted_at, amount_cents, description[, category])."""

    def _seed(ctx, rows, account_name='Everyday'):
        account_id = db.insert_account(ctx.user_id, account_name, 'checking',
                                       db_path=backend.db_path)
        payload = []
        for row in rows:
            posted_at, amount, description = row[:3]
            payload.append({
                'account_id': account_id,
                'posted_at': datetime.fromisoformat(posted_at),
                'amount_cents': amount,
                'description': description,
                'category': row[3] if len(row) > 3 else None,
            })
        return db.insert_transactions(ctx.user_id, payload, db_path=backend.db_path)

    return _seed
