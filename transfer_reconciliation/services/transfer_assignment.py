"""Conflict-free assignment of scored candidates.

Greedy highest-confidence-first is not globally optimal (that is weighted
bipartite matching), but it is deterministic and easy to explain: a pair was
chosen because nothing ranked above it claimed either record. An optimal
solver can replace it by implementing AssignmentResolver.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Protocol, TypeVar


class RankedPair(Protocol):
    source_id: str
    target_id: str
    confidence: float
    date_difference: int
    amount_difference: Decimal


P = TypeVar("P", bound=RankedPair)


class AssignmentResolver(Protocol):
    def resolve(self, candidates: Iterable[P]) -> list[P]: ...


def candidate_sort_key(candidate: RankedPair) -> tuple[float, int, Decimal, str, str]:
    """Confidence desc, then closer date, smaller amount gap, then ids."""
    return (
        -candidate.confidence,
        candidate.date_difference,
        candidate.amount_difference,
        candidate.source_id,
        candidate.target_id,
    )


def rank_candidates(candidates: Iterable[P]) -> list[P]:
    return sorted(candidates, key=candidate_sort_key)


class GreedyAssignmentResolver:
    """Accept candidates in rank order unless a record is already claimed."""

    def resolve(self, candidates: Iterable[P]) -> list[P]:
        claimed: set[str] = set()
        accepted: list[P] = []
        for candidate in rank_candidates(candidates):
            if candidate.source_id in claimed or candidate.target_id in claimed:
                continue
            accepted.append(candidate)
            claimed.add(candidate.source_id)
            claimed.add(candidate.target_id)
        return accepted
