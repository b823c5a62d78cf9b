#!/usr/bin/env python3
"""Apply a user's categorization rules to their transactions."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spend_dashboard import Backend, UserContext
from spend_dashboard.category_rules import apply_category_rules_to_transactions
from spend_dashboard.config import configure_logging
from spend_dashboard.errors import SpendDashboardError


def main(user_id: str, dry_run: bool = False, include_categorized: bool = False) -> int:
    backend = Backend()
    ctx = UserContext(user_id=user_id)
    try:
        results = apply_category_rules_to_transactions(
            backend, ctx, dry_run=dry_run, include_categorized=include_categorized
        )
    except SpendDashboardError as e:
        print(f"Failed to apply rules: {e}", file=sys.stderr)
        return 1

    print(f"Checked:  {results['total_checked']}")
    print(f"Updated:  {results['updated']}{' (dry run)' if dry_run else ''}")
    print(f"Skipped:  {results['skipped']}")
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Apply categorization rules to transactions.')
    parser.add_argument('--user', required=True, help='User id whose rules to apply')
    parser.add_argument('--dry-run', action='store_true', help='Only report what would change')
    parser.add_argument('--all', dest='include_categorized', action='store_true',
                        help='Also re-apply rules to already categorized transactions')
    args = parser.parse_args()
    configure_logging()
    sys.exit(main(args.user, dry_run=args.dry_run, include_categorized=args.include_categorized))
