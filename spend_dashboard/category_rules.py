"""Category Rules - Wildcard pattern categorization.

This module decides which category a transaction description belongs to,
given the user's rules.  A rule's matcher uses ``%`` as a wildcard for any
sequence of characters and is otherwise matched literally against the whole
description:

* ``%COFFEE%`` - description contains ``COFFEE``
* ``UBER%``    - description starts with ``UBER``
* ``%FEE``     - description ends with ``FEE``
* ``RENT``     - description is exactly ``RENT``

Matching is case-sensitive.  When several rules match, the one with the
highest confidence wins outright.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

import pandas as pd

from .config import QUICK_RULE_CONFIDENCE
from .models import Rule, Transaction
from .validation import validate_rule_input

logger = logging.getLogger(__name__)

WILDCARD = '%'

_MERCHANT_PREFIX = re.compile(r"^([A-Za-z0-9\s&'-]+)")


@dataclass
class RuleMatch:
    category: str
    confidence: Optional[int]
    rule: Rule


@lru_cache(maxsize=1024)
def compile_matcher(matcher: str) -> Pattern[str]:
    """Translate a ``%`` wildcard matcher into an anchored regular expression."""
    pieces = matcher.split(WILDCARD)
    return re.compile('.*'.join(re.escape(piece) for piece in pieces), re.DOTALL)


def matches(matcher: str, description: Optional[str]) -> bool:
    if description is None:
        return False
    return compile_matcher(matcher).fullmatch(description) is not None


def _rank(rule: Rule) -> int:
    return rule.confidence if rule.confidence is not None else 0


class RuleMatcher:
    """Evaluates an ordered set of rules against transaction descriptions."""

    def __init__(self, rules: Iterable[Rule]):
        self.rules: List[Rule] = list(rules)

    def matching_rules(self, description: Optional[str]) -> List[Rule]:
        """All rules matching ``description``, highest confidence first.

        Rules of equal confidence keep their input order.
        """
        hits = [r for r in self.rules if matches(r.matcher, description)]
        return sorted(hits, key=_rank, reverse=True)

    def match(self, description: Optional[str]) -> Optional[RuleMatch]:
        """Return the winning rule's category and confidence, or None."""
        if description is None:
            return None
        best: Optional[Rule] = None
        for rule in self.rules:
            if not matches(rule.matcher, description):
                continue
            if best is None or _rank(rule) > _rank(best):
                best = rule
        if best is None:
            return None
        return RuleMatch(category=best.category, confidence=best.confidence, rule=best)

    def explain(self, description: Optional[str]) -> List[Dict[str, Any]]:
        """Describe every matching rule in precedence order (for the rules page)."""
        return [
            {
                'order': order,
                'rule_id': rule.id,
                'matcher': rule.matcher,
                'category': rule.category,
                'confidence': rule.confidence,
            }
            for order, rule in enumerate(self.matching_rules(description), start=1)
        ]


def best_match(description: Optional[str], rules: Iterable[Rule]) -> Optional[RuleMatch]:
    """Convenience wrapper around :meth:`RuleMatcher.match`."""
    return RuleMatcher(rules).match(description)


def suggest_rule_text(description: Optional[str]) -> str:
    """Guess the merchant part of a description to seed a quick rule.

    Example:
        >>> suggest_rule_text('COUNTDOWN METRO 4021 *AUCKLAND')
        'COUNTDOWN METRO 4021'
    """
    desc = (description or '').strip()
    found = _MERCHANT_PREFIX.match(desc)
    if found and found.group(1).strip():
        return found.group(1).strip()
    return desc


def quick_rule_matcher(rule_text: str) -> str:
    """Wrap rule text as a contains-pattern."""
    return f"{WILDCARD}{rule_text.strip()}{WILDCARD}"


def apply_category_rules_to_transactions(
    backend,
    ctx,
    dry_run: bool = False,
    include_categorized: bool = False,
) -> Dict[str, int]:
    """Apply the user's rules to their transactions.

    Args:
        backend: Backend to read rules/transactions from and write updates to
        ctx: Authenticated user context
        dry_run: If True, don't actually update transactions, just return counts
        include_categorized: If True, also re-apply rules to already-categorized
            transactions; otherwise only uncategorized or needs-review rows

    Budget period spend is refreshed once after the updates.

    Returns:
        Dict with 'updated', 'skipped', 'total_checked' counts
    """
    matcher = RuleMatcher(backend.list_rules(ctx))
    transactions = backend.list_transactions(
        ctx, limit=None, uncategorized_only=not include_categorized
    )

    results = {
        'updated': 0,
        'skipped': 0,
        'total_checked': len(transactions),
    }

    for transaction in transactions:
        found = matcher.match(transaction.description)
        if found is None:
            results['skipped'] += 1
            continue
        if (transaction.category == found.category
                and transaction.confidence == found.confidence
                and not transaction.needs_review):
            results['skipped'] += 1
            continue
        if not dry_run:
            backend.update_transaction_category(
                ctx, transaction.id, found.category, confidence=found.confidence,
                refresh=False,
            )
        results['updated'] += 1

    if results['updated'] and not dry_run:
        backend.refresh_spend(ctx)

    logger.info(
        "Rule application%s: %d updated, %d skipped of %d",
        " (dry run)" if dry_run else "",
        results['updated'], results['skipped'], results['total_checked'],
    )
    return results


def apply_rules_to_dataframe(df: pd.DataFrame, rules: Sequence[Rule]) -> pd.DataFrame:
    """Apply category rules to a DataFrame of transactions.

    Only rows without a category are touched.  Matched rows get ``Category``,
    ``Confidence`` and a JSON ``rule_history`` of every rule that matched.

    Args:
        df: DataFrame with 'Description' and optionally 'Category' columns
        rules: Rules to evaluate

    Returns:
        DataFrame with updated categories
    """
    matcher = RuleMatcher(rules)
    df = df.copy()

    if 'Category' not in df.columns:
        df['Category'] = None
    if 'Confidence' not in df.columns:
        df['Confidence'] = None
    if 'rule_history' not in df.columns:
        df['rule_history'] = None
    df['Category'] = df['Category'].astype(object)
    df['Confidence'] = df['Confidence'].astype(object)
    df['rule_history'] = df['rule_history'].astype(object)

    category_series = df['Category'].astype('string')
    normalized = category_series.fillna('').str.strip()
    mask = normalized.eq('') | normalized.str.lower().eq('uncategorized')

    for idx in df[mask].index:
        description = df.loc[idx, 'Description']
        if pd.isna(description):
            continue
        found = matcher.match(str(description))
        if found is None:
            continue
        df.at[idx, 'Category'] = found.category
        df.at[idx, 'Confidence'] = found.confidence
        df.at[idx, 'rule_history'] = json.dumps(matcher.explain(str(description)))

    return df


def quick_categorize(
    backend,
    ctx,
    transaction: Transaction,
    category: Optional[str],
    rule_text: Optional[str] = None,
    confidence: Optional[int] = QUICK_RULE_CONFIDENCE,
) -> Tuple[Rule, Transaction]:
    """Create a contains-rule from a transaction and categorize it with it.

    The rule text defaults to :func:`suggest_rule_text` of the description.
    Both writes happen in one backend operation; on failure a single
    :class:`~spend_dashboard.errors.QuickRuleError` is raised and neither
    change is kept.

    Returns:
        Tuple of (created rule, updated transaction)
    """
    text = rule_text if rule_text is not None else suggest_rule_text(transaction.description)
    fields = validate_rule_input(text, category, confidence)
    matcher = quick_rule_matcher(fields['matcher'])
    return backend.create_rule_and_categorize(
        ctx,
        transaction.id,
        matcher,
        fields['category'],
        fields['confidence'],
    )
