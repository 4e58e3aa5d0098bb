"""Tests for greedy conflict-free assignment."""

from decimal import Decimal

from transfer_reconciliation.models import MatchCandidate, MatchType
from transfer_reconciliation.services.transfer_assignment import (
    GreedyAssignmentResolver,
    candidate_sort_key,
    rank_candidates,
)


def _candidate(
    source_id: str,
    target_id: str,
    confidence: float,
    *,
    days: int = 0,
    amount_diff: str = "0",
) -> MatchCandidate:
    return MatchCandidate(
        source_id=source_id,
        target_id=target_id,
        date_difference=days,
        amount_difference=Decimal(amount_diff),
        percentage_difference=Decimal("0"),
        confidence=confidence,
        match_type=MatchType.TOLERANCE,
    )


def test_rank_candidates_orders_by_confidence_then_tie_breaks() -> None:
    candidates = [
        _candidate("c", "d", 0.9, days=2),
        _candidate("a", "b", 0.95),
        _candidate("e", "f", 0.9, days=1, amount_diff="0.10"),
        _candidate("g", "h", 0.9, days=1, amount_diff="0.05"),
        _candidate("a", "z", 0.9, days=1, amount_diff="0.05"),
    ]

    ranked = rank_candidates(candidates)

    assert [c.pair_key for c in ranked] == [
        ("a", "b"),
        ("a", "z"),
        ("g", "h"),
        ("e", "f"),
        ("c", "d"),
    ]


def test_candidate_sort_key_prefers_higher_confidence() -> None:
    assert candidate_sort_key(_candidate("a", "b", 0.9)) < candidate_sort_key(_candidate("a", "b", 0.8))


def test_greedy_resolver_claims_each_record_once() -> None:
    candidates = [
        _candidate("x", "z", 0.87, days=3),
        _candidate("x", "y", 1.0),
        _candidate("y", "w", 0.95),
        _candidate("w", "v", 0.9),
    ]

    accepted = GreedyAssignmentResolver().resolve(candidates)

    assert [c.pair_key for c in accepted] == [("x", "y"), ("w", "v")]
    ids = [record_id for c in accepted for record_id in c.pair_key]
    assert len(ids) == len(set(ids))


def test_greedy_resolver_is_order_independent() -> None:
    candidates = [
        _candidate("a", "b", 0.8),
        _candidate("a", "c", 0.8),
        _candidate("b", "c", 0.8),
    ]

    forward = GreedyAssignmentResolver().resolve(candidates)
    backward = GreedyAssignmentResolver().resolve(list(reversed(candidates)))

    assert forward == backward
    assert [c.pair_key for c in forward] == [("a", "b")]


def test_greedy_resolver_empty() -> None:
    assert GreedyAssignmentResolver().resolve([]) == []
