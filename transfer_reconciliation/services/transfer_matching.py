"""Transfer matching entry points and link management.

Three entry points share one pipeline (normalize, generate, score, resolve):

- find_matches: side-effect-free preview of the conflict-free assignment
- auto_match: conservative floor, returns copies with the link field written
- find_manual_matches: permissive tolerance, every surviving candidate ranked
  with a reasoning string, for a human review queue

Nothing here mutates caller data. Persisting the returned records (and
serialising concurrent writers of the link field) is the caller's job.
"""

from __future__ import annotations

import copy
import dataclasses
import re
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from transfer_reconciliation.config import settings
from transfer_reconciliation.logger import get_logger, log_timing
from transfer_reconciliation.models import (
    AUTO_MATCH_NOTE_PREFIX,
    MANUAL_MATCH_NOTE,
    REVERSAL_MATCH_NOTE_PREFIX,
    CollapsedTransfer,
    ManualMatchSuggestion,
    MatchCandidate,
    MatchResult,
    MatchType,
    TransactionRecord,
)
from transfer_reconciliation.services.transfer_assignment import (
    AssignmentResolver,
    GreedyAssignmentResolver,
    rank_candidates,
)
from transfer_reconciliation.services.transfer_candidates import (
    field_name,
    generate_candidates,
    normalize_indexed,
    normalize_records,
)
from transfer_reconciliation.services.transfer_scoring import (
    CONFIDENCE_PLACES,
    TransferMatchingConfig,
    TransferMatchingError,
    amount_difference,
    combine_confidence,
    days_between,
    has_opposite_signs,
    load_transfer_matching_config,
    ordered_pair,
    percentage_difference,
    score_amount,
    score_date,
    score_description,
    score_pair,
    validate_confidence_floor,
    validate_max_days,
    validate_tolerance,
)

logger = get_logger(__name__)

MATCH_ID_PREFIXES = ("manual-transfer-match-", "transfer-match-", "same-account-match-")

_MATCH_NOTE_PATTERNS = [
    re.compile(r"\n?\[Matched Transfer: .+?\]"),
    re.compile(r"\n?\[Manual Transfer Match\]"),
    re.compile(r"\n?\[Matched Transaction: .+?\]"),
]
_TRANSFER_PREFIX = re.compile(r"^(transfer to|transfer from|atm withdrawal|deposit)\s*-?\s*", re.IGNORECASE)
_CHANNEL_SUFFIX = re.compile(r"\s*-\s*\w+\s*(online|atm|branch).*$", re.IGNORECASE)


class TransferLinkError(TransferMatchingError):
    """A requested link would break a transfer invariant."""

    pass


class TransferNotFoundError(TransferLinkError):
    """A referenced transaction id is not in the record set."""

    pass


# =============================================================================
# Pipeline
# =============================================================================


def score_candidates(
    records: Sequence[TransactionRecord],
    max_days: int,
    tolerance: Decimal,
    config: TransferMatchingConfig,
    *,
    max_workers: int | None = None,
) -> list[MatchCandidate]:
    """Candidates across different accounts that survive the hard constraints."""
    candidates: list[MatchCandidate] = []
    for a, b in generate_candidates(records, max_days, max_workers=max_workers):
        candidate = score_pair(a, b, max_days, tolerance, config)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def find_matches(
    records: Iterable[Any],
    max_days_difference: int,
    tolerance_percentage: Decimal | float | str,
    *,
    resolver: AssignmentResolver | None = None,
    config: TransferMatchingConfig | None = None,
    max_workers: int | None = None,
) -> MatchResult:
    """Find the conflict-free set of transfer matches.

    Args:
        records: Raw transaction records (claimed ones are ignored)
        max_days_difference: Inclusive date window in whole days
        tolerance_percentage: Inclusive relative amount tolerance, e.g. 0.01
        resolver: Assignment strategy (greedy by confidence if omitted)
        config: Scoring configuration (loaded from YAML/env if omitted)
        max_workers: Fan candidate generation out over day buckets

    Returns:
        MatchResult with accepted matches in rank order and the eligible
        records that were not matched, in input order.

    Raises:
        MatchingConfigurationError: window or tolerance is invalid
    """
    max_days = validate_max_days(max_days_difference)
    tolerance = validate_tolerance(tolerance_percentage)
    config = config or load_transfer_matching_config()
    resolver = resolver or GreedyAssignmentResolver()

    eligible = normalize_records(records)
    with log_timing(
        "find_matches",
        logger=logger,
        level="debug",
        records=len(eligible),
        max_days=max_days,
        tolerance=str(tolerance),
    ) as timing:
        candidates = score_candidates(eligible, max_days, tolerance, config, max_workers=max_workers)
        accepted = resolver.resolve(candidates)
        timing["candidates"] = len(candidates)
        timing["accepted"] = len(accepted)

    matched_ids = {record_id for match in accepted for record_id in match.pair_key}
    unmatched = [record for record in eligible if record.id not in matched_ids]
    return MatchResult(matches=accepted, unmatched=unmatched)


def auto_match(
    records: Iterable[Any],
    max_days_difference: int | None = None,
    tolerance_percentage: Decimal | float | str | None = None,
    *,
    confidence_floor: float | None = None,
    resolver: AssignmentResolver | None = None,
    config: TransferMatchingConfig | None = None,
) -> list[Any]:
    """Link high-confidence transfer pairs.

    Returns a new list in input order. Both legs of every accepted match are
    replaced by copies carrying the partner id in the link field plus a
    confidence note; every other item is returned unchanged. Records that are
    already claimed are never re-matched.
    """
    config = config or load_transfer_matching_config()
    max_days = validate_max_days(config.auto_max_days if max_days_difference is None else max_days_difference)
    tolerance = validate_tolerance(config.auto_tolerance if tolerance_percentage is None else tolerance_percentage)
    floor = validate_confidence_floor(config.auto_confidence_floor if confidence_floor is None else confidence_floor)

    items = list(records)
    result = find_matches(items, max_days, tolerance, resolver=resolver, config=config)
    accepted = [match for match in result.matches if match.confidence >= floor]

    logger.info(
        "Automatic transfer matching finished",
        candidates_accepted=len(result.matches),
        linked_pairs=len(accepted),
        below_floor=len(result.matches) - len(accepted),
        confidence_floor=floor,
    )
    return apply_matches(items, accepted)


def describe_match(candidate: MatchCandidate, currency_symbol: str | None = None) -> str:
    """Human-readable reasoning, e.g. 'Amounts differ by $0.54 (0.07%), 0 days apart'."""
    symbol = settings.currency_symbol if currency_symbol is None else currency_symbol
    unit = "day" if candidate.date_difference == 1 else "days"
    if candidate.amount_difference == 0:
        amount_part = "Amounts match exactly"
    else:
        amount_part = (
            f"Amounts differ by {symbol}{candidate.amount_difference:.2f} "
            f"({candidate.percentage_difference:.2%})"
        )
    return f"{amount_part}, {candidate.date_difference} {unit} apart"


def find_manual_matches(
    records: Iterable[Any],
    max_days_difference: int | None = None,
    tolerance_percentage: Decimal | float | str | None = None,
    *,
    config: TransferMatchingConfig | None = None,
) -> list[ManualMatchSuggestion]:
    """Ranked suggestions for human review.

    Uses the permissive manual window and tolerance by default and skips
    assignment, so one record may appear in several suggestions. The hard
    constraints (opposite sign, different account) still apply.
    """
    config = config or load_transfer_matching_config()
    max_days = validate_max_days(config.manual_max_days if max_days_difference is None else max_days_difference)
    tolerance = validate_tolerance(config.manual_tolerance if tolerance_percentage is None else tolerance_percentage)

    eligible = normalize_records(records)
    by_id = {record.id: record for record in eligible}
    with log_timing("find_manual_matches", logger=logger, level="debug", records=len(eligible)) as timing:
        ranked = rank_candidates(score_candidates(eligible, max_days, tolerance, config))
        timing["suggestions"] = len(ranked)

    return [
        ManualMatchSuggestion(
            id=f"manual-transfer-match-{candidate.source_id}-{candidate.target_id}",
            source_id=candidate.source_id,
            target_id=candidate.target_id,
            source_account=by_id[candidate.source_id].account,
            target_account=by_id[candidate.target_id].account,
            confidence=candidate.confidence,
            match_type=candidate.match_type,
            date_difference=candidate.date_difference,
            amount_difference=candidate.amount_difference,
            reasoning=describe_match(candidate),
        )
        for candidate in ranked
    ]


# =============================================================================
# Link field write-back
# =============================================================================


def append_note(notes: str | None, note: str) -> str:
    return f"{notes}\n{note}" if notes else note


def strip_match_notes(notes: str | None) -> str | None:
    if not notes:
        return None
    for pattern in _MATCH_NOTE_PATTERNS:
        notes = pattern.sub("", notes)
    return notes.strip() or None


def with_link(raw: Any, link_value: str | None, notes: str | None) -> Any:
    """Copy of raw with the link field and notes replaced; raw is untouched."""
    link_key = field_name(raw, "reimbursement_id")
    notes_key = field_name(raw, "notes")

    if isinstance(raw, Mapping):
        updated = dict(raw)
        updated[link_key] = link_value
        updated[notes_key] = notes
        return updated

    if dataclasses.is_dataclass(raw) and not isinstance(raw, type):
        names = {f.name for f in dataclasses.fields(raw)}
        if link_key in names and notes_key in names:
            return dataclasses.replace(raw, **{link_key: link_value, notes_key: notes})

    clone = copy.copy(raw)
    setattr(clone, link_key, link_value)
    setattr(clone, notes_key, notes)
    return clone


def record_positions(items: Sequence[Any]) -> dict[str, tuple[int, TransactionRecord]]:
    return {record.id: (index, record) for index, record in normalize_indexed(items, include_claimed=True)}


def apply_matches(records: Iterable[Any], matches: Iterable[MatchCandidate]) -> list[Any]:
    """Write the link field on both legs of each match; returns a new list."""
    items = list(records)
    positions = record_positions(items)
    updated = list(items)

    for match in matches:
        source = positions.get(match.source_id)
        target = positions.get(match.target_id)
        if source is None or target is None:
            logger.warning(
                "Skipping match that references unknown records",
                source_id=match.source_id,
                target_id=match.target_id,
            )
            continue
        note = f"{AUTO_MATCH_NOTE_PREFIX} {match.confidence:.2f} confidence]"
        for (index, record), partner_id in ((source, match.target_id), (target, match.source_id)):
            updated[index] = with_link(updated[index], partner_id, append_note(record.notes, note))
    return updated


def link_transfers(records: Iterable[Any], source_id: str, target_id: str) -> list[Any]:
    """Link two records after a human confirmed the match.

    Raises:
        TransferNotFoundError: either id is not an eligible record
        TransferLinkError: same record, same account, same sign, or one side
            is already linked to something else
    """
    items = list(records)
    positions = record_positions(items)
    source_id, target_id = str(source_id), str(target_id)

    if source_id == target_id:
        raise TransferLinkError("A transaction cannot be linked to itself")
    missing = [txn_id for txn_id in (source_id, target_id) if txn_id not in positions]
    if missing:
        raise TransferNotFoundError(f"Transaction(s) not found: {', '.join(missing)}")

    source_index, source = positions[source_id]
    target_index, target = positions[target_id]
    if source.account == target.account:
        raise TransferLinkError("Cannot match transfers within the same account")
    if not has_opposite_signs(source.amount, target.amount):
        raise TransferLinkError("Transfer legs must have opposite signs")
    for record, partner in ((source, target), (target, source)):
        if record.reimbursement_id and record.reimbursement_id != partner.id:
            raise TransferLinkError(
                f"Transaction {record.id} is already linked to {record.reimbursement_id}; unlink it first"
            )

    updated = list(items)
    for index, record, partner_id in ((source_index, source, target_id), (target_index, target, source_id)):
        notes = append_note(strip_match_notes(record.notes), MANUAL_MATCH_NOTE)
        updated[index] = with_link(updated[index], partner_id, notes)

    logger.info("Linked transfer pair", source_id=source_id, target_id=target_id)
    return updated


def parse_match_id(match_id: str, known_ids: Iterable[str]) -> tuple[str, str] | None:
    """Split a match id back into its two record ids.

    Ids may themselves contain dashes (UUIDs), so every split point is tried
    and the one naming two known records wins.
    """
    known = set(known_ids)
    for prefix in MATCH_ID_PREFIXES:
        if match_id.startswith(prefix):
            body = match_id[len(prefix) :]
            break
    else:
        return None

    for position, char in enumerate(body):
        if char != "-":
            continue
        left, right = body[:position], body[position + 1 :]
        if left in known and right in known:
            return left, right
    return None


def unlink_transfers(
    records: Iterable[Any],
    match_id: str | None = None,
    *,
    source_id: str | None = None,
    target_id: str | None = None,
) -> list[Any]:
    """Clear the link field on both legs so they can be matched again.

    Accepts either a match id or an explicit source/target pair. Unknown ids
    leave the records unchanged.
    """
    items = list(records)
    positions = record_positions(items)

    if source_id is not None and target_id is not None:
        pair: tuple[str, str] | None = (str(source_id), str(target_id))
    elif match_id:
        pair = parse_match_id(match_id, positions)
    else:
        pair = None

    if pair is None or pair[0] not in positions or pair[1] not in positions:
        logger.info("No linked pair found to unlink", match_id=match_id, source_id=source_id, target_id=target_id)
        return items

    updated = list(items)
    for txn_id in pair:
        index, record = positions[txn_id]
        updated[index] = with_link(updated[index], None, strip_match_notes(record.notes))

    logger.info("Unlinked transfer pair", source_id=pair[0], target_id=pair[1])
    return updated


# =============================================================================
# Existing links
# =============================================================================


def is_manual_match(record: TransactionRecord) -> bool:
    """Linked by a human: the notes carry no automatic match marker."""
    if not record.reimbursement_id or not record.notes:
        return False
    return AUTO_MATCH_NOTE_PREFIX not in record.notes and REVERSAL_MATCH_NOTE_PREFIX not in record.notes


def _measure_link(
    record: TransactionRecord,
    partner: TransactionRecord,
    config: TransferMatchingConfig,
) -> MatchCandidate:
    source, target = ordered_pair(record, partner)
    diff_days = days_between(source.date, target.date)
    amount_diff = amount_difference(source.amount, target.amount)
    pct = percentage_difference(source.amount, target.amount) or Decimal("0")
    amount_score = score_amount(pct, config.auto_tolerance)
    date_score = score_date(diff_days, config.auto_max_days)

    if is_manual_match(record) or is_manual_match(partner):
        match_type = MatchType.MANUAL
    elif amount_diff == 0 and diff_days == 0:
        match_type = MatchType.EXACT
    else:
        match_type = MatchType.TOLERANCE

    in_range = diff_days <= config.auto_max_days and pct <= config.auto_tolerance
    return MatchCandidate(
        source_id=source.id,
        target_id=target.id,
        date_difference=diff_days,
        amount_difference=amount_diff,
        percentage_difference=pct,
        confidence=combine_confidence(amount_score, date_score, config) if in_range else 0.0,
        match_type=match_type,
        breakdown={
            "amount": float(round(amount_score, CONFIDENCE_PLACES)),
            "date": float(round(date_score, CONFIDENCE_PLACES)),
            "description": score_description(source.description, target.description),
        },
    )


def get_linked_transfers(
    records: Iterable[Any],
    *,
    config: TransferMatchingConfig | None = None,
) -> list[MatchCandidate]:
    """Rebuild the transfer matches recorded in the link fields.

    Same-account links are reversals, not transfers, and are left out.
    Confidence is re-scored against the automatic window and tolerance, and
    is 0 for pairs that now fall outside them.
    """
    config = config or load_transfer_matching_config()
    linked = normalize_records(records, include_claimed=True)
    by_id = {record.id: record for record in linked}

    seen: set[str] = set()
    links: list[MatchCandidate] = []
    for record in linked:
        if record.id in seen or not record.reimbursement_id:
            continue
        partner = by_id.get(record.reimbursement_id)
        if partner is None or partner.id in seen or partner.account == record.account:
            continue
        seen.update((record.id, partner.id))
        links.append(_measure_link(record, partner, config))
    return links


def _clean_description(description: str) -> str:
    return _CHANNEL_SUFFIX.sub("", _TRANSFER_PREFIX.sub("", description)).strip()


def generate_transfer_description(source: TransactionRecord, target: TransactionRecord) -> str:
    """Short label for a collapsed transfer row."""
    if "atm" in source.description.lower():
        return "ATM Withdrawal"
    source_desc = _clean_description(source.description)
    target_desc = _clean_description(target.description)
    if source_desc and source_desc != target_desc:
        return f"Transfer: {source_desc}"
    if target_desc:
        return f"Transfer: {target_desc}"
    return f"Transfer: {source.account} -> {target.account}"


def collapse_transfers(
    records: Iterable[Any],
    *,
    config: TransferMatchingConfig | None = None,
) -> list[CollapsedTransfer]:
    """One row per linked transfer; the money-out leg is the source."""
    items = list(records)
    by_id = {record.id: record for record in normalize_records(items, include_claimed=True)}

    collapsed: list[CollapsedTransfer] = []
    for link in get_linked_transfers(items, config=config):
        first, second = by_id[link.source_id], by_id[link.target_id]
        source, target = (first, second) if first.is_outflow else (second, first)
        collapsed.append(
            CollapsedTransfer(
                id=f"collapsed-{source.id}-{target.id}",
                date=source.date,
                description=generate_transfer_description(source, target),
                source_account=source.account,
                target_account=target.account,
                amount=abs(source.amount),
                source=source,
                target=target,
                confidence=link.confidence,
                match_type=link.match_type,
                amount_difference=link.amount_difference,
            )
        )
    return collapsed


def count_unmatched(records: Iterable[Any]) -> int:
    """Eligible records still waiting for a counterpart."""
    return len(normalize_records(records))

