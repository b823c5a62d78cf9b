#!/usr/bin/env python3
"""Show top uncategorized transactions to aid rule creation."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spend_dashboard import Backend, UserContext
from spend_dashboard.analytics import transactions_to_dataframe
from spend_dashboard.category_rules import (
    apply_rules_to_dataframe,
    quick_rule_matcher,
    suggest_rule_text,
)
from spend_dashboard.config import configure_logging
from spend_dashboard.formatting import format_cents, format_date


def main(user_id: str, limit: int = 200) -> None:
    backend = Backend()
    ctx = UserContext(user_id=user_id)
    df = transactions_to_dataframe(
        backend.list_transactions(ctx, limit=None, uncategorized_only=True)
    )
    if df.empty:
        print("All transactions are categorized. 🎉")
        return

    print(f"Total uncategorized: {len(df)}")
    freq = df['Description'].value_counts().head(limit)
    print("\nTop descriptions:")
    print(freq.to_string())

    print("\nSuggested quick rules:")
    suggestions = df['Description'].map(lambda d: quick_rule_matcher(suggest_rule_text(d)))
    print(suggestions.value_counts().head(20).to_string())

    rules = backend.list_rules(ctx)
    if rules:
        preview = apply_rules_to_dataframe(df, rules)
        matched = preview[preview['rule_history'].notna()]
        print(f"\nExisting rules would categorize {len(matched)} of these:")
        if not matched.empty:
            print(matched['Category'].value_counts().to_string())

    sample = df[['Posted At', 'Description', 'Amount Cents']].head(20).copy()
    sample['Posted At'] = sample['Posted At'].map(format_date)
    sample['Amount'] = sample.pop('Amount Cents').map(format_cents)
    print("\nSample rows:")
    print(sample.to_string(index=False))


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show uncategorized transaction stats.')
    parser.add_argument('--user', required=True, help='User id whose transactions to inspect')
    parser.add_argument('--limit', type=int, default=200, help='How many top descriptions to show')
    args = parser.parse_args()
    configure_logging()
    main(args.user, limit=args.limit)
