"""Unit tests for transfer constraint checks, scoring and configuration."""

from dataclasses import replace
from decimal import Decimal

import pytest

from tests.factories import make_record
from transfer_reconciliation.config import settings
from transfer_reconciliation.models import MatchType
from transfer_reconciliation.services import transfer_scoring
from transfer_reconciliation.services.transfer_scoring import (
    DEFAULT_CONFIG,
    MatchingConfigurationError,
    TransferMatchingConfig,
    combine_confidence,
    days_between,
    has_opposite_signs,
    load_transfer_matching_config,
    normalize_text,
    percentage_difference,
    score_amount,
    score_date,
    score_description,
    score_pair,
    validate_config,
    validate_confidence_floor,
    validate_max_days,
    validate_tolerance,
)

# =============================================================================
# Validation
# =============================================================================


@pytest.mark.parametrize("value", [-1, 1.5, "7", True, None])
def test_validate_max_days_rejects_invalid(value) -> None:
    with pytest.raises(MatchingConfigurationError):
        validate_max_days(value)


def test_validate_max_days_accepts_zero() -> None:
    assert validate_max_days(0) == 0


@pytest.mark.parametrize("value", [0, "-0.01", "abc", float("nan"), "Infinity", True])
def test_validate_tolerance_rejects_invalid(value) -> None:
    with pytest.raises(MatchingConfigurationError):
        validate_tolerance(value)


def test_validate_tolerance_coerces_to_decimal() -> None:
    assert validate_tolerance("0.05") == Decimal("0.05")
    assert validate_tolerance(0.01) == Decimal("0.01")


@pytest.mark.parametrize("value", [-0.1, 1.01, "0.8", False])
def test_validate_confidence_floor_rejects_invalid(value) -> None:
    with pytest.raises(MatchingConfigurationError):
        validate_confidence_floor(value)


def test_matching_configuration_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        validate_max_days(-3)


def test_validate_config_rejects_bad_weights() -> None:
    with pytest.raises(MatchingConfigurationError, match="sum to 1"):
        validate_config(replace(DEFAULT_CONFIG, weight_amount=Decimal("0.5")))
    with pytest.raises(MatchingConfigurationError, match=">= weight_date"):
        validate_config(replace(DEFAULT_CONFIG, weight_amount=Decimal("0.4"), weight_date=Decimal("0.6")))


# =============================================================================
# Measurements and scores
# =============================================================================


def test_has_opposite_signs() -> None:
    assert has_opposite_signs(Decimal("-10"), Decimal("10"))
    assert has_opposite_signs(Decimal("10"), Decimal("-9.5"))
    assert not has_opposite_signs(Decimal("10"), Decimal("10"))
    assert not has_opposite_signs(Decimal("-10"), Decimal("-10"))


def test_percentage_difference_uses_average_magnitude() -> None:
    assert percentage_difference(Decimal("-99.5"), Decimal("100.5")) == Decimal("0.01")
    assert percentage_difference(Decimal("0"), Decimal("0")) is None


def test_score_amount_and_date_edges() -> None:
    assert score_amount(Decimal("0"), Decimal("0.01")) == Decimal("1")
    assert score_amount(Decimal("0.01"), Decimal("0.01")) == Decimal("0")
    assert score_amount(Decimal("0.05"), Decimal("0.01")) == Decimal("0")

    assert score_date(0, 7) == Decimal("1")
    assert score_date(7, 7) == Decimal("0")
    assert score_date(0, 0) == Decimal("1")
    assert score_date(1, 0) == Decimal("0")


def test_combine_confidence_weights_amount_over_date() -> None:
    assert combine_confidence(Decimal("1"), Decimal("0")) == 0.7
    assert combine_confidence(Decimal("0"), Decimal("1")) == 0.3
    custom = replace(DEFAULT_CONFIG, weight_amount=Decimal("0.6"), weight_date=Decimal("0.4"))
    assert combine_confidence(Decimal("0"), Decimal("1"), custom) == 0.4


def test_days_between_is_symmetric() -> None:
    a = make_record("a", "-1", "A", day=0)
    b = make_record("b", "1", "B", day=3)
    assert days_between(a.date, b.date) == days_between(b.date, a.date) == 3


def test_description_similarity() -> None:
    assert normalize_text("  Transfer-To  SAVINGS!! ") == "transfer to savings"
    assert score_description("Transfer to savings", "transfer to savings") == 1.0
    assert score_description("", "anything") == 0.0
    assert 0.0 < score_description("Transfer to savings", "Savings deposit") < 1.0


# =============================================================================
# score_pair
# =============================================================================


def test_score_pair_exact_match() -> None:
    a = make_record("a", "-825.54", "Checking")
    b = make_record("b", "825.54", "Savings")

    candidate = score_pair(a, b, 7, Decimal("0.01"))

    assert candidate is not None
    assert candidate.confidence == 1.0
    assert candidate.match_type == MatchType.EXACT
    assert candidate.amount_difference == Decimal("0")
    assert (candidate.source_id, candidate.target_id) == ("a", "b")


def test_score_pair_orders_by_id() -> None:
    a = make_record("z", "-10", "A")
    b = make_record("m", "10", "B")
    candidate = score_pair(a, b, 7, Decimal("0.01"))
    assert candidate is not None
    assert candidate.pair_key == ("m", "z")


def test_score_pair_rejects_same_sign_before_anything_else() -> None:
    a = make_record("a", "100", "A")
    b = make_record("b", "100", "B")
    assert score_pair(a, b, 7, Decimal("1")) is None


def test_score_pair_tolerance_is_inclusive() -> None:
    at_edge = score_pair(make_record("a", "-99.5", "A"), make_record("b", "100.5", "B"), 7, Decimal("0.01"))
    assert at_edge is not None
    assert at_edge.match_type == MatchType.TOLERANCE
    assert at_edge.confidence == 0.3

    beyond = score_pair(make_record("a", "-99.49", "A"), make_record("b", "100.51", "B"), 7, Decimal("0.01"))
    assert beyond is None


def test_score_pair_date_window_is_inclusive() -> None:
    a = make_record("a", "-50", "A", day=0)
    assert score_pair(a, make_record("b", "50", "B", day=7), 7, Decimal("0.01")) is not None
    assert score_pair(a, make_record("b", "50", "B", day=8), 7, Decimal("0.01")) is None


def test_score_pair_tolerance_match_confidence() -> None:
    candidate = score_pair(
        make_record("a", "-825.54", "A"),
        make_record("b", "825.00", "B"),
        7,
        Decimal("0.01"),
    )
    assert candidate is not None
    assert candidate.amount_difference == Decimal("0.54")
    assert candidate.confidence == pytest.approx(0.9542, abs=1e-4)
    assert candidate.breakdown["date"] == 1.0


# =============================================================================
# Configuration loading
# =============================================================================


def test_load_config_reads_shipped_yaml() -> None:
    config = load_transfer_matching_config()
    assert config == DEFAULT_CONFIG
    assert load_transfer_matching_config() is config


def test_load_config_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRANSFER_AUTO_CONFIDENCE_FLOOR", "0.9")
    monkeypatch.setenv("TRANSFER_AUTO_MAX_DAYS", "3")
    monkeypatch.setenv("TRANSFER_AUTO_TOLERANCE", "0.02")

    config = load_transfer_matching_config(force_reload=True)

    assert config.auto_confidence_floor == 0.9
    assert config.auto_max_days == 3
    assert config.auto_tolerance == Decimal("0.02")


def test_load_config_rejects_bad_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRANSFER_AUTO_MAX_DAYS", "a week")
    with pytest.raises(MatchingConfigurationError):
        load_transfer_matching_config(force_reload=True)

    monkeypatch.setenv("TRANSFER_AUTO_MAX_DAYS", "7")
    monkeypatch.setenv("TRANSFER_AUTO_CONFIDENCE_FLOOR", "1.5")
    with pytest.raises(MatchingConfigurationError):
        load_transfer_matching_config(force_reload=True)


def test_load_config_custom_yaml(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "matching.yaml"
    config_file.write_text(
        "scoring:\n"
        "  weights:\n"
        "    amount: 0.6\n"
        "    date: 0.4\n"
        "automatic:\n"
        "  max_days: 5\n"
        "manual:\n"
        "  tolerance: 0.2\n"
    )
    monkeypatch.setattr(settings, "transfer_config_path", str(config_file))

    config = load_transfer_matching_config(force_reload=True)

    assert isinstance(config, TransferMatchingConfig)
    assert config.weight_amount == Decimal("0.6")
    assert config.auto_max_days == 5
    assert config.manual_tolerance == Decimal("0.2")
    assert config.auto_tolerance == DEFAULT_CONFIG.auto_tolerance


def test_load_config_malformed_yaml_falls_back(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "matching.yaml"
    config_file.write_text("scoring: [unclosed\n")
    monkeypatch.setattr(settings, "transfer_config_path", str(config_file))

    assert load_transfer_matching_config(force_reload=True) == DEFAULT_CONFIG


def test_load_config_missing_file_uses_defaults(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "transfer_config_path", str(tmp_path / "absent.yaml"))
    assert load_transfer_matching_config(force_reload=True) == DEFAULT_CONFIG


def test_load_config_rejects_invalid_weights_in_yaml(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "matching.yaml"
    config_file.write_text("scoring:\n  weights:\n    amount: 0.5\n    date: 0.3\n")
    monkeypatch.setattr(settings, "transfer_config_path", str(config_file))

    with pytest.raises(MatchingConfigurationError):
        load_transfer_matching_config(force_reload=True)


def test_clear_cache_forces_reload(monkeypatch: pytest.MonkeyPatch) -> None:
    first = load_transfer_matching_config()
    monkeypatch.setenv("TRANSFER_AUTO_MAX_DAYS", "2")
    assert load_transfer_matching_config() is first

    transfer_scoring.clear_transfer_matching_config_cache()
    assert load_transfer_matching_config().auto_max_days == 2
