"""Pydantic schemas package."""

from transfer_reconciliation.schemas.base import BaseResponse, ListResponse
from transfer_reconciliation.schemas.transfers import (
    AutoMatchRequest,
    AutoMatchResponse,
    CollapsedTransferListResponse,
    LinkRequest,
    ManualMatchListResponse,
    ManualMatchRequest,
    MatchRequest,
    MatchResultResponse,
    ReversalMatchListResponse,
    TransactionPayload,
    TransactionsRequest,
    TransactionsResponse,
    UnlinkRequest,
)

__all__ = [
    "AutoMatchRequest",
    "AutoMatchResponse",
    "BaseResponse",
    "CollapsedTransferListResponse",
    "LinkRequest",
    "ListResponse",
    "ManualMatchListResponse",
    "ManualMatchRequest",
    "MatchRequest",
    "MatchResultResponse",
    "ReversalMatchListResponse",
    "TransactionPayload",
    "TransactionsRequest",
    "TransactionsResponse",
    "UnlinkRequest",
]
