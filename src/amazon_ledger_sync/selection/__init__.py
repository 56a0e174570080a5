"""
Sync eligibility for persisted transaction records.

Decides which records are submitted to the ledger using a chain of
responsibility of eligibility rules, and keeps an audit status per order id.

Quick Start:
    >>> from amazon_ledger_sync.selection import SyncSelector
    >>>
    >>> selector = SyncSelector()
    >>> result = selector.select(records, selected_ids=["304-1111111-2222222"])
    >>> print(result.statuses)
"""
from amazon_ledger_sync.selection.selector import SyncSelector, normalize_order_ids, parse_order_ids
from amazon_ledger_sync.selection.base import EligibilityRule, Exclusion
from amazon_ledger_sync.selection.rules import (
    ALREADY_SYNCED,
    INVALID_AMOUNT,
    INVALID_DATE,
    AlreadySyncedRule,
    InvalidAmountRule,
    InvalidDateRule,
    LoyaltyCompanionRule,
    MultiOrderSiblingRule,
    SelectedOrdersRule,
)

__all__ = [
    "SyncSelector",
    "EligibilityRule",
    "Exclusion",
    "AlreadySyncedRule",
    "InvalidAmountRule",
    "InvalidDateRule",
    "LoyaltyCompanionRule",
    "MultiOrderSiblingRule",
    "SelectedOrdersRule",
    "normalize_order_ids",
    "parse_order_ids",
    "ALREADY_SYNCED",
    "INVALID_AMOUNT",
    "INVALID_DATE",
]
