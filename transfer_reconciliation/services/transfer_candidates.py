"""Record normalization and candidate pair generation.

Raw records may be TransactionRecord instances, mappings (API payloads, CSV
rows) or arbitrary objects with matching attributes. Only the projection the
matcher needs is extracted; anything unusable is dropped, never rejected.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from transfer_reconciliation.logger import get_logger
from transfer_reconciliation.models import TransactionRecord
from transfer_reconciliation.services.transfer_scoring import ordered_pair, validate_max_days

logger = get_logger(__name__)

CandidatePair = tuple[TransactionRecord, TransactionRecord]

# Accepted spellings per field, first match wins.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "transaction_id"),
    "date": ("date", "txn_date"),
    "amount": ("amount",),
    "account": ("account", "account_id"),
    "description": ("description", "memo"),
    "reimbursement_id": ("reimbursement_id", "reimbursementId"),
    "notes": ("notes",),
}


def _has_field(raw: Any, name: str) -> bool:
    if isinstance(raw, Mapping):
        return name in raw
    return hasattr(raw, name)


def field_name(raw: Any, field: str) -> str:
    """Return the spelling of a field present on raw, or the canonical one."""
    for alias in FIELD_ALIASES[field]:
        if _has_field(raw, alias):
            return alias
    return field


def read_field(raw: Any, field: str) -> Any:
    for alias in FIELD_ALIASES[field]:
        if isinstance(raw, Mapping):
            if alias in raw:
                return raw[alias]
        elif hasattr(raw, alias):
            return getattr(raw, alias)
    return None


def record_id(raw: Any) -> str | None:
    value = read_field(raw, "id")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _parse_date(value: Any) -> date | None:
    # datetime is a date subclass; check it first to drop the time of day
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError:
            return None
    return None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_record(raw: Any) -> tuple[TransactionRecord | None, str | None]:
    """Project a raw record; returns (record, None) or (None, reason)."""
    txn_id = record_id(raw)
    if txn_id is None:
        return None, "missing_id"

    amount = _parse_amount(read_field(raw, "amount"))
    if amount is None:
        return None, "invalid_amount"
    if amount == 0:
        return None, "zero_amount"

    txn_date = _parse_date(read_field(raw, "date"))
    if txn_date is None:
        return None, "missing_date"

    account = _optional_text(read_field(raw, "account"))
    if account is None:
        return None, "missing_account"

    # Type hints are not enforced; only an already-clean record is reused.
    if (
        isinstance(raw, TransactionRecord)
        and type(raw.date) is date
        and isinstance(raw.amount, Decimal)
        and raw.id == txn_id
        and raw.account == account
    ):
        return raw, None

    return (
        TransactionRecord(
            id=txn_id,
            date=txn_date,
            amount=amount,
            account=account,
            description=str(read_field(raw, "description") or ""),
            reimbursement_id=_optional_text(read_field(raw, "reimbursement_id")),
            notes=_optional_text(read_field(raw, "notes")),
        ),
        None,
    )


def normalize_indexed(
    records: Iterable[Any],
    *,
    include_claimed: bool = False,
) -> list[tuple[int, TransactionRecord]]:
    """Normalize records, keeping each one's position in the input."""
    eligible: list[tuple[int, TransactionRecord]] = []
    seen: set[str] = set()
    for index, raw in enumerate(records):
        record, reason = normalize_record(raw)
        if record is None:
            logger.debug("Skipping record for transfer matching", index=index, reason=reason)
            continue
        if record.id in seen:
            logger.debug("Skipping duplicate record id", index=index, record_id=record.id)
            continue
        seen.add(record.id)
        if record.is_claimed and not include_claimed:
            continue
        eligible.append((index, record))
    return eligible


def normalize_records(
    records: Iterable[Any],
    *,
    include_claimed: bool = False,
) -> list[TransactionRecord]:
    """Return the transfer-eligible projection of records.

    Eligible means: an id, a non-zero amount, a date and an account. Claimed
    records (link field set) are skipped unless include_claimed is True.
    """
    return [record for _, record in normalize_indexed(records, include_claimed=include_claimed)]


# =============================================================================
# Candidate generation
# =============================================================================


def _accounts_compatible(a: TransactionRecord, b: TransactionRecord, same_account: bool) -> bool:
    if a.id == b.id:
        return False
    if same_account:
        return a.account == b.account
    return a.account != b.account


def _pairs_from_day(
    start: int,
    days: Sequence[int],
    buckets: Mapping[int, list[TransactionRecord]],
    max_days: int,
    same_account: bool,
) -> list[CandidatePair]:
    """Pairs whose earlier leg falls on days[start]; later buckets only, so no pair repeats."""
    day = days[start]
    bucket = buckets[day]
    pairs: list[CandidatePair] = []

    for i, a in enumerate(bucket):
        for b in bucket[i + 1 :]:
            if _accounts_compatible(a, b, same_account):
                pairs.append(ordered_pair(a, b))

    end = start + 1
    while end < len(days) and days[end] - day <= max_days:
        for a in bucket:
            for b in buckets[days[end]]:
                if _accounts_compatible(a, b, same_account):
                    pairs.append(ordered_pair(a, b))
        end += 1
    return pairs


def generate_candidates(
    records: Sequence[TransactionRecord],
    max_days_difference: int,
    *,
    same_account: bool = False,
    max_workers: int | None = None,
) -> list[CandidatePair]:
    """Every unordered pair within the date window.

    Records are bucketed by day and a window slides over the sorted day keys,
    so only records whose dates are at most max_days_difference apart are
    compared. Pairs come back as (lower id, higher id), sorted by those ids.
    Transfers pair different accounts; same_account=True is for reversals.
    """
    max_days = validate_max_days(max_days_difference)

    buckets: dict[int, list[TransactionRecord]] = defaultdict(list)
    for record in records:
        buckets[record.date.toordinal()].append(record)
    days = sorted(buckets)

    if max_workers and max_workers > 1 and len(days) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            chunks = list(
                pool.map(
                    lambda start: _pairs_from_day(start, days, buckets, max_days, same_account),
                    range(len(days)),
                )
            )
    else:
        chunks = [_pairs_from_day(start, days, buckets, max_days, same_account) for start in range(len(days))]

    pairs = [pair for chunk in chunks for pair in chunk]
    pairs.sort(key=lambda pair: (pair[0].id, pair[1].id))
    return pairs
