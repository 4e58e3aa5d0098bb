"""Services package."""

from transfer_reconciliation.services.reversals import auto_link_reversals, find_reversals
from transfer_reconciliation.services.transfer_assignment import (
    AssignmentResolver,
    GreedyAssignmentResolver,
    rank_candidates,
)
from transfer_reconciliation.services.transfer_candidates import generate_candidates, normalize_records
from transfer_reconciliation.services.transfer_matching import (
    TransferLinkError,
    TransferNotFoundError,
    apply_matches,
    auto_match,
    collapse_transfers,
    find_manual_matches,
    find_matches,
    get_linked_transfers,
    link_transfers,
    unlink_transfers,
)
from transfer_reconciliation.services.transfer_scoring import (
    DEFAULT_CONFIG,
    MatchingConfigurationError,
    TransferMatchingConfig,
    TransferMatchingError,
    load_transfer_matching_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "AssignmentResolver",
    "GreedyAssignmentResolver",
    "MatchingConfigurationError",
    "TransferLinkError",
    "TransferMatchingConfig",
    "TransferMatchingError",
    "TransferNotFoundError",
    "apply_matches",
    "auto_link_reversals",
    "auto_match",
    "collapse_transfers",
    "find_manual_matches",
    "find_matches",
    "find_reversals",
    "generate_candidates",
    "get_linked_transfers",
    "link_transfers",
    "load_transfer_matching_config",
    "normalize_records",
    "rank_candidates",
    "unlink_transfers",
]
