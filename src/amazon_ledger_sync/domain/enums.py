from enum import Enum

class SelectionStatus(Enum):
    """Audit status of a caller-selected order id during a sync run"""
    QUEUED = "queued"
    SYNCED = "synced"
    ALREADY_SYNCED = "already-synced"
    INVALID_DATE = "invalid-date"
    NOT_FOUND = "not-found"


class SyncOutcome(Enum):
    """Result of one submitted payload"""
    CONFIRMED = "confirmed" # ledger returned a transaction id
    DUPLICATE = "duplicate" # ledger already had this import id
    UNCONFIRMED = "unconfirmed" # neither, safe to retry


class BlockKind(Enum):
    """Shape of a raw scraped transaction block"""
    SINGLE_ORDER = "single-order"
    MULTI_ORDER = "multi-order"
    COMPANION = "companion"
