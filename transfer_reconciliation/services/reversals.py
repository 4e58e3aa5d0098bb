"""Same-account reversal detection.

A charge and its cancellation (or refund) land in the same account with
opposite signs, usually within a day. They are not transfers, so they go
through a separate pass with its own tight defaults and a description-aware
confidence.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from transfer_reconciliation.logger import get_logger
from transfer_reconciliation.models import (
    REVERSAL_MATCH_NOTE_PREFIX,
    MatchType,
    ReversalMatch,
    TransactionRecord,
)
from transfer_reconciliation.services.transfer_assignment import GreedyAssignmentResolver
from transfer_reconciliation.services.transfer_candidates import generate_candidates, normalize_records
from transfer_reconciliation.services.transfer_matching import append_note, record_positions, with_link
from transfer_reconciliation.services.transfer_scoring import (
    TransferMatchingConfig,
    amount_difference,
    days_between,
    has_opposite_signs,
    load_transfer_matching_config,
    ordered_pair,
    percentage_difference,
    validate_confidence_floor,
    validate_max_days,
    validate_tolerance,
)

logger = get_logger(__name__)

CANCELLATION_KEYWORDS = ("cancel", "reverse", "reversal", "refund", "correction", "adjustment")
ONE_CENT = Decimal("0.01")


def descriptions_indicate_cancellation(desc_a: str, desc_b: str) -> bool:
    """Keyword hit on either side, or at least 60% shared significant words."""
    lower_a = desc_a.lower()
    lower_b = desc_b.lower()
    if any(word in lower_a or word in lower_b for word in CANCELLATION_KEYWORDS):
        return True

    words_a = [word for word in lower_a.split() if len(word) > 2]
    words_b = [word for word in lower_b.split() if len(word) > 2]
    if not words_a or not words_b:
        return False

    common = [word for word in words_a if word in words_b]
    return (len(common) * 2) / (len(words_a) + len(words_b)) >= 0.6


def reversal_confidence(a: TransactionRecord, b: TransactionRecord, diff_days: int, amount_diff: Decimal) -> float:
    confidence = Decimal("0.5")

    if diff_days == 0:
        confidence += Decimal("0.3")
    elif diff_days <= 1:
        confidence += Decimal("0.1")

    if amount_diff == 0:
        confidence += Decimal("0.15")
    elif amount_diff <= ONE_CENT:
        confidence += Decimal("0.1")
    else:
        confidence -= Decimal("0.1")

    if descriptions_indicate_cancellation(a.description, b.description):
        confidence += Decimal("0.2")
    else:
        confidence -= Decimal("0.05")

    return float(min(max(confidence, Decimal("0")), Decimal("0.99")))


def _score_reversal(a: TransactionRecord, b: TransactionRecord, max_days: int, tolerance: Decimal) -> ReversalMatch | None:
    if not has_opposite_signs(a.amount, b.amount):
        return None
    diff_days = days_between(a.date, b.date)
    if diff_days > max_days:
        return None
    pct = percentage_difference(a.amount, b.amount)
    if pct is None or pct > tolerance:
        return None

    source, target = ordered_pair(a, b)
    amount_diff = amount_difference(a.amount, b.amount)
    exact = diff_days == 0 and amount_diff < ONE_CENT
    unit = "day" if diff_days == 1 else "days"
    return ReversalMatch(
        source_id=source.id,
        target_id=target.id,
        account=source.account,
        date_difference=diff_days,
        amount_difference=amount_diff,
        confidence=reversal_confidence(source, target, diff_days, amount_diff),
        match_type=MatchType.EXACT if exact else MatchType.TOLERANCE,
        reasoning=(
            f"Same account matched transaction: {source.account}, {diff_days} {unit} apart, "
            f"amounts: {source.amount} / {target.amount}"
        ),
    )


def find_reversals(
    records: Iterable[Any],
    max_days_difference: int | None = None,
    tolerance_percentage: Decimal | float | str | None = None,
    *,
    config: TransferMatchingConfig | None = None,
) -> list[ReversalMatch]:
    """Conflict-free reversal pairs within single accounts, best first."""
    config = config or load_transfer_matching_config()
    max_days = validate_max_days(
        config.reversal_max_days if max_days_difference is None else max_days_difference
    )
    tolerance = validate_tolerance(
        config.reversal_tolerance if tolerance_percentage is None else tolerance_percentage
    )

    eligible = normalize_records(records)
    candidates = [
        match
        for a, b in generate_candidates(eligible, max_days, same_account=True)
        if (match := _score_reversal(a, b, max_days, tolerance)) is not None
    ]
    resolved = GreedyAssignmentResolver().resolve(candidates)
    logger.debug("Reversal detection finished", records=len(eligible), candidates=len(candidates), matches=len(resolved))
    return resolved


def auto_link_reversals(
    records: Iterable[Any],
    *,
    confidence_floor: float | None = None,
    config: TransferMatchingConfig | None = None,
) -> list[Any]:
    """Link reversal pairs at or above the floor; returns a new list."""
    config = config or load_transfer_matching_config()
    floor = validate_confidence_floor(
        config.reversal_confidence_floor if confidence_floor is None else confidence_floor
    )
    items = list(records)
    matches = [match for match in find_reversals(items, config=config) if match.confidence >= floor]
    if not matches:
        return items

    positions = record_positions(items)
    updated = list(items)
    for match in matches:
        note = f"{REVERSAL_MATCH_NOTE_PREFIX} {match.confidence:.2f} confidence]"
        for txn_id, partner_id in ((match.source_id, match.target_id), (match.target_id, match.source_id)):
            index, record = positions[txn_id]
            updated[index] = with_link(updated[index], partner_id, append_note(record.notes, note))

    logger.info("Linked reversal pairs", linked_pairs=len(matches), confidence_floor=floor)
    return updated
