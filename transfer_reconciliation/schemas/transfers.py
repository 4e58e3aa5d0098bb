"""Pydantic schemas for the transfer reconciliation API."""

import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, field_validator

from transfer_reconciliation.models import MatchType
from transfer_reconciliation.schemas.base import BaseResponse, ListResponse


class TransactionPayload(BaseResponse):
    """A ledger transaction as sent by the caller.

    Fields other than id are optional: partially populated records are
    accepted and simply left out of matching. An unparseable date or amount
    becomes None instead of failing the whole request.
    """

    id: str
    date: dt.date | None = None
    amount: Decimal | None = None
    account: str | None = None
    description: str = ""
    reimbursement_id: str | None = None
    notes: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> dt.date | None:
        """Truncate timestamps to their day; drop anything unreadable."""
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, dt.date):
            return v
        if isinstance(v, str) and v.strip():
            try:
                return dt.datetime.fromisoformat(v.strip()).date()
            except ValueError:
                return None
        return None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            amount = v if isinstance(v, Decimal) else Decimal(str(v).strip())
        except (InvalidOperation, ValueError):
            return None
        return amount if amount.is_finite() else None


class MatchRequest(BaseModel):
    """Request body for the side-effect-free preview; omitted values use the configured defaults."""

    transactions: list[TransactionPayload]
    max_days_difference: int | None = None
    tolerance_percentage: Decimal | None = None


class AutoMatchRequest(BaseModel):
    """Request body for automatic linking; omitted values use the configured defaults."""

    transactions: list[TransactionPayload]
    max_days_difference: int | None = None
    tolerance_percentage: Decimal | None = None
    confidence_floor: float | None = None


class ManualMatchRequest(BaseModel):
    """Request body for the review queue."""

    transactions: list[TransactionPayload]
    max_days_difference: int | None = None
    tolerance_percentage: Decimal | None = None


class LinkRequest(BaseModel):
    """Request body to link a human-confirmed pair."""

    transactions: list[TransactionPayload]
    source_id: str
    target_id: str


class UnlinkRequest(BaseModel):
    """Request body to clear a link, by match id or by explicit ids."""

    transactions: list[TransactionPayload]
    match_id: str | None = None
    source_id: str | None = None
    target_id: str | None = None


class TransactionsRequest(BaseModel):
    transactions: list[TransactionPayload]


class MatchCandidateResponse(BaseResponse):
    match_id: str
    source_id: str
    target_id: str
    date_difference: int
    amount_difference: Decimal
    percentage_difference: Decimal
    confidence: float
    match_type: MatchType
    breakdown: dict[str, float] = Field(default_factory=dict)


class MatchResultResponse(BaseResponse):
    matches: list[MatchCandidateResponse]
    unmatched: list[TransactionPayload]
    average_confidence: float


class TransactionsResponse(BaseModel):
    items: list[TransactionPayload]


class AutoMatchResponse(TransactionsResponse):
    linked: int
    unmatched: int


class ManualMatchSuggestionResponse(BaseResponse):
    id: str
    source_id: str
    target_id: str
    source_account: str
    target_account: str
    confidence: float
    match_type: MatchType
    date_difference: int
    amount_difference: Decimal
    reasoning: str


class CollapsedTransferResponse(BaseResponse):
    id: str
    date: dt.date
    description: str
    source_account: str
    target_account: str
    amount: Decimal
    source: TransactionPayload
    target: TransactionPayload
    confidence: float
    match_type: MatchType
    amount_difference: Decimal


class ReversalMatchResponse(BaseResponse):
    source_id: str
    target_id: str
    account: str
    date_difference: int
    amount_difference: Decimal
    confidence: float
    match_type: MatchType
    reasoning: str


ManualMatchListResponse = ListResponse[ManualMatchSuggestionResponse]
CollapsedTransferListResponse = ListResponse[CollapsedTransferResponse]
ReversalMatchListResponse = ListResponse[ReversalMatchResponse]
