"""Transfer reconciliation API router.

Stateless: callers post the transactions they want reconciled and persist
whatever comes back through their own storage layer.
"""

from typing import NoReturn

from fastapi import APIRouter

from transfer_reconciliation.logger import get_logger, log_exception
from transfer_reconciliation.schemas.transfers import (
    AutoMatchRequest,
    AutoMatchResponse,
    CollapsedTransferListResponse,
    CollapsedTransferResponse,
    LinkRequest,
    ManualMatchListResponse,
    ManualMatchRequest,
    ManualMatchSuggestionResponse,
    MatchRequest,
    MatchResultResponse,
    ReversalMatchListResponse,
    ReversalMatchResponse,
    TransactionPayload,
    TransactionsRequest,
    TransactionsResponse,
    UnlinkRequest,
)
from transfer_reconciliation.services.reversals import find_reversals
from transfer_reconciliation.services.transfer_matching import (
    TransferLinkError,
    TransferNotFoundError,
    auto_match,
    collapse_transfers,
    count_unmatched,
    find_manual_matches,
    find_matches,
    link_transfers,
    unlink_transfers,
)
from transfer_reconciliation.services.transfer_scoring import MatchingConfigurationError, load_transfer_matching_config
from transfer_reconciliation.utils.exceptions import raise_bad_request, raise_conflict, raise_not_found

router = APIRouter(prefix="/transfers", tags=["transfers"])
logger = get_logger(__name__)


def _records(transactions: list[TransactionPayload]) -> list[dict]:
    return [txn.model_dump() for txn in transactions]


def _items(records: list[dict]) -> list[TransactionPayload]:
    return [TransactionPayload.model_validate(record) for record in records]


def _reject_configuration(exc: MatchingConfigurationError) -> NoReturn:
    log_exception(logger, exc, "Rejected transfer matching request", level="warning", include_traceback=False)
    raise_bad_request(str(exc), cause=exc)


@router.post("/matches", response_model=MatchResultResponse)
def preview_matches(payload: MatchRequest) -> MatchResultResponse:
    try:
        config = load_transfer_matching_config()
        max_days = config.auto_max_days if payload.max_days_difference is None else payload.max_days_difference
        tolerance = config.auto_tolerance if payload.tolerance_percentage is None else payload.tolerance_percentage
        result = find_matches(_records(payload.transactions), max_days, tolerance, config=config)
    except MatchingConfigurationError as exc:
        _reject_configuration(exc)
    return MatchResultResponse.model_validate(result)


@router.post("/auto-match", response_model=AutoMatchResponse)
def run_auto_match(payload: AutoMatchRequest) -> AutoMatchResponse:
    records = _records(payload.transactions)
    try:
        updated = auto_match(
            records,
            payload.max_days_difference,
            payload.tolerance_percentage,
            confidence_floor=payload.confidence_floor,
        )
    except MatchingConfigurationError as exc:
        _reject_configuration(exc)

    linked = sum(1 for before, after in zip(records, updated, strict=True) if before is not after)
    return AutoMatchResponse(items=_items(updated), linked=linked // 2, unmatched=count_unmatched(updated))


@router.post("/manual-matches", response_model=ManualMatchListResponse)
def list_manual_matches(payload: ManualMatchRequest) -> ManualMatchListResponse:
    try:
        suggestions = find_manual_matches(
            _records(payload.transactions),
            payload.max_days_difference,
            payload.tolerance_percentage,
        )
    except MatchingConfigurationError as exc:
        _reject_configuration(exc)
    items = [ManualMatchSuggestionResponse.model_validate(s) for s in suggestions]
    return ManualMatchListResponse(items=items, total=len(items))


@router.post("/link", response_model=TransactionsResponse)
def link_pair(payload: LinkRequest) -> TransactionsResponse:
    try:
        updated = link_transfers(_records(payload.transactions), payload.source_id, payload.target_id)
    except TransferNotFoundError as exc:
        raise_not_found("Transaction", cause=exc)
    except TransferLinkError as exc:
        raise_conflict(str(exc), cause=exc)
    return TransactionsResponse(items=_items(updated))


@router.post("/unlink", response_model=TransactionsResponse)
def unlink_pair(payload: UnlinkRequest) -> TransactionsResponse:
    if not payload.match_id and not (payload.source_id and payload.target_id):
        raise_bad_request("Provide match_id or both source_id and target_id")
    updated = unlink_transfers(
        _records(payload.transactions),
        payload.match_id,
        source_id=payload.source_id,
        target_id=payload.target_id,
    )
    return TransactionsResponse(items=_items(updated))


@router.post("/collapsed", response_model=CollapsedTransferListResponse)
def list_collapsed_transfers(payload: TransactionsRequest) -> CollapsedTransferListResponse:
    items = [CollapsedTransferResponse.model_validate(c) for c in collapse_transfers(_records(payload.transactions))]
    return CollapsedTransferListResponse(items=items, total=len(items))


@router.post("/reversals", response_model=ReversalMatchListResponse)
def list_reversals(payload: TransactionsRequest) -> ReversalMatchListResponse:
    try:
        matches = find_reversals(_records(payload.transactions))
    except MatchingConfigurationError as exc:
        _reject_configuration(exc)
    items = [ReversalMatchResponse.model_validate(m) for m in matches]
    return ReversalMatchListResponse(items=items, total=len(items))
