from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from amazon_ledger_sync.domain.enums import SelectionStatus
from amazon_ledger_sync.domain.models import TransactionRecord


@dataclass(frozen=True)
class Exclusion:
    """
    Why a rule kept a record out of the sync.

    Attributes:
        rule: Name of the rule that matched
        bucket: Filter bucket the record is counted in, or None if the
            exclusion is not a data problem
        status: Audit status for the record's order id, or None to leave
            the status map alone
        detail: Optional detail shown next to the status
        weak: A weak status only replaces `not-found`, so it never hides
            what the order's primary record reported
    """
    rule: str
    bucket: Optional[str] = None
    status: Optional[SelectionStatus] = None
    detail: Optional[str] = None
    weak: bool = False


class EligibilityRule(ABC):
    """
    Abstract base class for all sync eligibility rules.

    Implements Chain of Responsibility:
    - Each rule checks whether it excludes a record
    - If it doesn't it passes to the next rule
    - A record that passes every rule is a sync candidate

    Usage:
        Create chain: data checks -> sync state -> grouping -> selection
        ```
        date_rule = InvalidDateRule()
        synced_rule = AlreadySyncedRule()

        date_rule.set_next(synced_rule)

        exclusion = date_rule.evaluate(record)
        ```
    """

    name = "rule"

    def __init__(self):
        self._next_rule: Optional['EligibilityRule'] = None

    def set_next(self, rule: 'EligibilityRule') -> 'EligibilityRule':
        """
        Set the next rule in the chain.

        Args:
            rule: The next rule to try if this one doesn't exclude

        Returns:
            The rule that was set (for chaining)

        Example:
            `rule1.set_next(rule2).set_next(rule3)`
        """
        self._next_rule = rule
        return rule

    @property
    def next_rule(self) -> Optional['EligibilityRule']:
        return self._next_rule

    @abstractmethod
    def _matches(self, record: TransactionRecord) -> bool:
        """
        Check if this rule excludes the record.

        Args:
            record: Record to check

        Returns:
            True if the record must not be submitted
        """
        pass

    @abstractmethod
    def _exclusion(self, record: TransactionRecord) -> Exclusion:
        """
        Describe the exclusion.

        Called only if _matches() returns True.
        """
        pass

    def evaluate(self, record: TransactionRecord) -> Optional[Exclusion]:
        """
        Run the record through this rule and the rest of the chain.

        Returns:
            The first matching exclusion, or None if the record is eligible
        """
        if self._matches(record):
            return self._exclusion(record)

        if self._next_rule:
            return self._next_rule.evaluate(record)

        return None

    def __repr__(self):
        return f"{self.__class__.__name__}()"
