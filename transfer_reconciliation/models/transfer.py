"""Value objects for transfer reconciliation.

Records and candidates are frozen dataclasses: the engine never mutates caller
data, and the automatic mode returns copies with the link field set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

# Notes markers written next to the link field.
AUTO_MATCH_NOTE_PREFIX = "[Matched Transfer:"
MANUAL_MATCH_NOTE = "[Manual Transfer Match]"
REVERSAL_MATCH_NOTE_PREFIX = "[Matched Transaction:"


class MatchType(str, Enum):
    """How a pair was matched."""

    EXACT = "exact"
    TOLERANCE = "tolerance"
    MANUAL = "manual"


@dataclass(frozen=True)
class TransactionRecord:
    """Matching-relevant projection of a ledger transaction."""

    id: str
    date: date
    amount: Decimal
    account: str
    description: str = ""
    reimbursement_id: str | None = None
    notes: str | None = None

    @property
    def is_claimed(self) -> bool:
        return bool(self.reimbursement_id)

    @property
    def is_outflow(self) -> bool:
        return self.amount < 0


@dataclass(frozen=True)
class MatchCandidate:
    """Scored pair of records; source_id sorts before target_id."""

    source_id: str
    target_id: str
    date_difference: int
    amount_difference: Decimal
    percentage_difference: Decimal
    # Scores are 0-1 ratios, not monetary values, so float is fine here.
    confidence: float
    match_type: MatchType
    breakdown: dict[str, float] = field(default_factory=dict, compare=False)

    @property
    def pair_key(self) -> tuple[str, str]:
        return (self.source_id, self.target_id)

    @property
    def match_id(self) -> str:
        return f"transfer-match-{self.source_id}-{self.target_id}"


@dataclass(frozen=True)
class MatchResult:
    """Accepted matches plus the eligible records left unmatched."""

    matches: list[MatchCandidate]
    unmatched: list[TransactionRecord]

    @property
    def average_confidence(self) -> float:
        if not self.matches:
            return 0.0
        return round(sum(m.confidence for m in self.matches) / len(self.matches), 4)


@dataclass(frozen=True)
class ManualMatchSuggestion:
    """A ranked suggestion for the human review queue."""

    id: str
    source_id: str
    target_id: str
    source_account: str
    target_account: str
    confidence: float
    match_type: MatchType
    date_difference: int
    amount_difference: Decimal
    reasoning: str


@dataclass(frozen=True)
class CollapsedTransfer:
    """A linked pair rendered as a single transfer row."""

    id: str
    date: date
    description: str
    source_account: str
    target_account: str
    amount: Decimal
    source: TransactionRecord
    target: TransactionRecord
    confidence: float
    match_type: MatchType
    amount_difference: Decimal


@dataclass(frozen=True)
class ReversalMatch:
    """Opposite-sign pair inside one account (cancellation or refund)."""

    source_id: str
    target_id: str
    account: str
    date_difference: int
    amount_difference: Decimal
    confidence: float
    match_type: MatchType
    reasoning: str

    @property
    def match_id(self) -> str:
        return f"same-account-match-{self.source_id}-{self.target_id}"
