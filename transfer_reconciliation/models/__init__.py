"""Domain models package."""

from transfer_reconciliation.models.transfer import (
    AUTO_MATCH_NOTE_PREFIX,
    MANUAL_MATCH_NOTE,
    REVERSAL_MATCH_NOTE_PREFIX,
    CollapsedTransfer,
    ManualMatchSuggestion,
    MatchCandidate,
    MatchResult,
    MatchType,
    ReversalMatch,
    TransactionRecord,
)

__all__ = [
    "AUTO_MATCH_NOTE_PREFIX",
    "MANUAL_MATCH_NOTE",
    "REVERSAL_MATCH_NOTE_PREFIX",
    "CollapsedTransfer",
    "ManualMatchSuggestion",
    "MatchCandidate",
    "MatchResult",
    "MatchType",
    "ReversalMatch",
    "TransactionRecord",
]
