"""Constraints and confidence scoring for transfer candidates."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from difflib import SequenceMatcher
from pathlib import Path
from typing import Any

import yaml

from transfer_reconciliation.config import settings
from transfer_reconciliation.logger import get_logger
from transfer_reconciliation.models import MatchCandidate, MatchType, TransactionRecord

logger = get_logger(__name__)

ONE = Decimal("1")
ZERO = Decimal("0")
CONFIDENCE_PLACES = 4


class TransferMatchingError(Exception):
    """Base error for transfer reconciliation."""

    pass


class MatchingConfigurationError(TransferMatchingError, ValueError):
    """Caller supplied an invalid window, tolerance, threshold or weight."""

    pass


@dataclass(frozen=True)
class TransferMatchingConfig:
    """Runtime configuration for transfer matching."""

    weight_amount: Decimal
    weight_date: Decimal
    auto_max_days: int
    auto_tolerance: Decimal
    auto_confidence_floor: float
    manual_max_days: int
    manual_tolerance: Decimal
    reversal_max_days: int
    reversal_tolerance: Decimal
    reversal_confidence_floor: float


DEFAULT_CONFIG = TransferMatchingConfig(
    weight_amount=Decimal("0.70"),
    weight_date=Decimal("0.30"),
    auto_max_days=7,
    auto_tolerance=Decimal("0.01"),
    auto_confidence_floor=0.80,
    manual_max_days=8,
    manual_tolerance=Decimal("0.12"),
    reversal_max_days=1,
    reversal_tolerance=Decimal("0.01"),
    reversal_confidence_floor=0.70,
)

_config_cache: TransferMatchingConfig | None = None


# =============================================================================
# Validation
# =============================================================================


def validate_max_days(value: Any) -> int:
    """Return the window as int or raise MatchingConfigurationError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise MatchingConfigurationError(
            f"max_days_difference must be a whole number of days, got {value!r}"
        )
    if value < 0:
        raise MatchingConfigurationError(f"max_days_difference must be >= 0, got {value}")
    return value


def validate_tolerance(value: Any) -> Decimal:
    """Return the tolerance as Decimal or raise MatchingConfigurationError."""
    if isinstance(value, bool):
        raise MatchingConfigurationError(f"tolerance_percentage must be a number, got {value!r}")
    try:
        tolerance = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise MatchingConfigurationError(
            f"tolerance_percentage must be a number, got {value!r}"
        ) from exc
    if not tolerance.is_finite() or tolerance <= ZERO:
        raise MatchingConfigurationError(
            f"tolerance_percentage must be a positive fraction (e.g. 0.01), got {value!r}"
        )
    return tolerance


def validate_confidence_floor(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise MatchingConfigurationError(f"confidence floor must be a number, got {value!r}")
    floor = float(value)
    if not 0.0 <= floor <= 1.0:
        raise MatchingConfigurationError(f"confidence floor must be within [0, 1], got {value!r}")
    return floor


def validate_config(config: TransferMatchingConfig) -> TransferMatchingConfig:
    """Reject configurations that would silently change matching behaviour."""
    for name in ("weight_amount", "weight_date"):
        weight = getattr(config, name)
        if not ZERO <= weight <= ONE:
            raise MatchingConfigurationError(f"{name} must be within [0, 1], got {weight}")
    if config.weight_amount + config.weight_date != ONE:
        raise MatchingConfigurationError(
            "weight_amount and weight_date must sum to 1, "
            f"got {config.weight_amount} + {config.weight_date}"
        )
    if config.weight_amount < config.weight_date:
        raise MatchingConfigurationError("weight_amount must be >= weight_date")

    validate_max_days(config.auto_max_days)
    validate_max_days(config.manual_max_days)
    validate_max_days(config.reversal_max_days)
    validate_tolerance(config.auto_tolerance)
    validate_tolerance(config.manual_tolerance)
    validate_tolerance(config.reversal_tolerance)
    validate_confidence_floor(config.auto_confidence_floor)
    validate_confidence_floor(config.reversal_confidence_floor)
    return config


# =============================================================================
# Configuration loading
# =============================================================================


def _config_path() -> Path:
    if settings.transfer_config_path:
        return Path(settings.transfer_config_path)
    return Path(__file__).resolve().parents[2] / "config" / "transfer_matching.yaml"


def _config_from_yaml(raw: dict[str, Any], base: TransferMatchingConfig) -> TransferMatchingConfig:
    weights = (raw.get("scoring") or {}).get("weights") or {}
    automatic = raw.get("automatic") or {}
    manual = raw.get("manual") or {}
    reversals = raw.get("reversals") or {}

    return TransferMatchingConfig(
        weight_amount=Decimal(str(weights.get("amount", base.weight_amount))),
        weight_date=Decimal(str(weights.get("date", base.weight_date))),
        auto_max_days=int(automatic.get("max_days", base.auto_max_days)),
        auto_tolerance=Decimal(str(automatic.get("tolerance", base.auto_tolerance))),
        auto_confidence_floor=float(automatic.get("confidence_floor", base.auto_confidence_floor)),
        manual_max_days=int(manual.get("max_days", base.manual_max_days)),
        manual_tolerance=Decimal(str(manual.get("tolerance", base.manual_tolerance))),
        reversal_max_days=int(reversals.get("max_days", base.reversal_max_days)),
        reversal_tolerance=Decimal(str(reversals.get("tolerance", base.reversal_tolerance))),
        reversal_confidence_floor=float(
            reversals.get("confidence_floor", base.reversal_confidence_floor)
        ),
    )


def load_transfer_matching_config(force_reload: bool = False) -> TransferMatchingConfig:
    """Load matching configuration from YAML and environment overrides.

    Caches the result to avoid repeated disk I/O. An unreadable YAML file falls
    back to the defaults; a readable one with invalid values raises.
    """
    global _config_cache
    if _config_cache is not None and not force_reload:
        return _config_cache

    config = DEFAULT_CONFIG
    config_path = _config_path()

    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
            config = _config_from_yaml(raw, config)
        except (yaml.YAMLError, OSError, AttributeError, TypeError, ValueError, ArithmeticError) as e:
            logger.warning(
                "Failed to load transfer matching config - using defaults",
                config_path=str(config_path),
                error=str(e),
                error_type=type(e).__name__,
            )
            config = DEFAULT_CONFIG

    floor_env = os.getenv("TRANSFER_AUTO_CONFIDENCE_FLOOR")
    max_days_env = os.getenv("TRANSFER_AUTO_MAX_DAYS")
    tolerance_env = os.getenv("TRANSFER_AUTO_TOLERANCE")
    try:
        if floor_env:
            config = replace(config, auto_confidence_floor=float(floor_env))
        if max_days_env:
            config = replace(config, auto_max_days=int(max_days_env))
        if tolerance_env:
            config = replace(config, auto_tolerance=Decimal(tolerance_env))
    except (ValueError, InvalidOperation) as exc:
        raise MatchingConfigurationError(f"Invalid transfer matching environment override: {exc}") from exc

    _config_cache = validate_config(config)
    return _config_cache


def clear_transfer_matching_config_cache() -> None:
    global _config_cache
    _config_cache = None


# =============================================================================
# Pair measurements
# =============================================================================


def has_opposite_signs(amount_a: Decimal, amount_b: Decimal) -> bool:
    """Money must leave one account and arrive in the other."""
    return (amount_a > 0) != (amount_b > 0)


def days_between(date_a: date, date_b: date) -> int:
    return abs((date_a - date_b).days)


def amount_difference(amount_a: Decimal, amount_b: Decimal) -> Decimal:
    return abs(abs(amount_a) - abs(amount_b))


def percentage_difference(amount_a: Decimal, amount_b: Decimal) -> Decimal | None:
    """Relative difference against the average absolute amount; None if undefined."""
    average = (abs(amount_a) + abs(amount_b)) / 2
    if average == ZERO:
        return None
    return amount_difference(amount_a, amount_b) / average


def score_amount(pct_difference: Decimal, tolerance: Decimal) -> Decimal:
    """Amount closeness (0-1); 0 at the tolerance edge."""
    return ONE - min(ONE, pct_difference / tolerance)


def score_date(diff_days: int, max_days: int) -> Decimal:
    """Date closeness (0-1); 0 at the window edge."""
    if max_days == 0:
        return ONE if diff_days == 0 else ZERO
    return max(ZERO, ONE - Decimal(diff_days) / Decimal(max_days))


def combine_confidence(
    amount_score: Decimal,
    date_score: Decimal,
    config: TransferMatchingConfig = DEFAULT_CONFIG,
) -> float:
    total = amount_score * config.weight_amount + date_score * config.weight_date
    total = min(ONE, max(ZERO, total))
    return float(round(total, CONFIDENCE_PLACES))


def normalize_text(value: str) -> str:
    """Normalize text for similarity comparison."""
    cleaned = re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()
    return re.sub(r"\s+", " ", cleaned)


def score_description(a: str | None, b: str | None) -> float:
    """Description similarity (0-1). Diagnostic only, never part of confidence."""
    if not a or not b:
        return 0.0
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a or not norm_b:
        return 0.0
    ratio = SequenceMatcher(None, norm_a, norm_b).ratio()
    tokens_a = set(norm_a.split())
    tokens_b = set(norm_b.split())
    token_score = len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
    return round(0.6 * ratio + 0.4 * token_score, CONFIDENCE_PLACES)


def ordered_pair(
    a: TransactionRecord, b: TransactionRecord
) -> tuple[TransactionRecord, TransactionRecord]:
    """Lower id first so output is reproducible."""
    return (a, b) if a.id <= b.id else (b, a)


def score_pair(
    a: TransactionRecord,
    b: TransactionRecord,
    max_days: int,
    tolerance: Decimal,
    config: TransferMatchingConfig = DEFAULT_CONFIG,
) -> MatchCandidate | None:
    """Apply the hard constraints and score a pair; None when disqualified.

    The opposite-sign check runs before anything else and is never relaxed.
    Both the date window and the tolerance are inclusive.
    """
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
    amount_score = score_amount(pct, tolerance)
    date_score = score_date(diff_days, max_days)

    exact = amount_diff == ZERO and diff_days == 0
    return MatchCandidate(
        source_id=source.id,
        target_id=target.id,
        date_difference=diff_days,
        amount_difference=amount_diff,
        percentage_difference=pct,
        confidence=combine_confidence(amount_score, date_score, config),
        match_type=MatchType.EXACT if exact else MatchType.TOLERANCE,
        breakdown={
            "amount": float(round(amount_score, CONFIDENCE_PLACES)),
            "date": float(round(date_score, CONFIDENCE_PLACES)),
            "description": score_description(source.description, target.description),
        },
    )
