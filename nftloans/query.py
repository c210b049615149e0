"""
query.py - Read-only queries over a LoanView

All list queries page in descending key order with an exclusive
start_after cursor. The page size defaults to DEFAULT_QUERY_LIMIT and is
capped at MAX_QUERY_LIMIT. Every offer returned carries its effective
state (soft refusal applied).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .core import (
    BorrowerInfo, CollateralInfo, ContractInfo, LoanView, OfferInfo,
    DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT,
    BorrowerNotFound, OfferNotFound,
)
from .offers import get_collateral, get_offer, offer_sort_key


# ============================================================================
# RESPONSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralResponse:
    borrower: str
    loan_id: int
    collateral: CollateralInfo


@dataclass(frozen=True, slots=True)
class MultipleCollateralsResponse:
    collaterals: Tuple[CollateralResponse, ...]
    next_collateral: Optional[int]


@dataclass(frozen=True, slots=True)
class MultipleCollateralsAllResponse:
    collaterals: Tuple[CollateralResponse, ...]
    next_collateral: Optional[Tuple[str, int]]


@dataclass(frozen=True, slots=True)
class OfferResponse:
    global_offer_id: str
    offer_info: OfferInfo


@dataclass(frozen=True, slots=True)
class MultipleOffersResponse:
    offers: Tuple[OfferResponse, ...]
    next_offer: Optional[str]


def page_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_QUERY_LIMIT
    return max(0, min(limit, MAX_QUERY_LIMIT))


# ============================================================================
# CONFIG AND BORROWERS
# ============================================================================

def query_contract_info(view: LoanView) -> ContractInfo:
    return view.get_contract_info()


def query_borrower_info(view: LoanView, borrower: str) -> BorrowerInfo:
    borrower_info = view.get_borrower_info(borrower)
    if borrower_info is None:
        raise BorrowerNotFound(f"Borrower {borrower} has never listed collateral")
    return borrower_info


# ============================================================================
# COLLATERALS
# ============================================================================

def query_collateral_info(view: LoanView, borrower: str, loan_id: int) -> CollateralInfo:
    return get_collateral(view, borrower, loan_id)


def query_collaterals(
    view: LoanView,
    borrower: str,
    start_after: Optional[int] = None,
    limit: Optional[int] = None,
) -> MultipleCollateralsResponse:
    """
    One borrower's listings, newest first.

    next_collateral is set only when the page is full.
    """
    size = page_limit(limit)
    loan_ids = sorted((loan_id for _, loan_id in view.collateral_keys(borrower)), reverse=True)
    if start_after is not None:
        loan_ids = [loan_id for loan_id in loan_ids if loan_id < start_after]
    page = loan_ids[:size]

    collaterals = tuple(
        CollateralResponse(borrower, loan_id, view.get_collateral(borrower, loan_id))
        for loan_id in page
    )
    next_collateral = page[-1] if page and len(page) == size else None
    return MultipleCollateralsResponse(collaterals, next_collateral)


def query_all_collaterals(
    view: LoanView,
    start_after: Optional[Tuple[str, int]] = None,
    limit: Optional[int] = None,
) -> MultipleCollateralsAllResponse:
    """
    Every listing, in descending (borrower, loan_id) order.

    next_collateral is the last key of the page, if any.
    """
    size = page_limit(limit)
    keys = sorted(view.collateral_keys(), reverse=True)
    if start_after is not None:
        keys = [key for key in keys if key < tuple(start_after)]
    page = keys[:size]

    collaterals = tuple(
        CollateralResponse(borrower, loan_id, view.get_collateral(borrower, loan_id))
        for borrower, loan_id in page
    )
    return MultipleCollateralsAllResponse(collaterals, page[-1] if page else None)


# ============================================================================
# OFFERS
# ============================================================================

def query_offer_info(view: LoanView, global_offer_id: str) -> OfferResponse:
    return OfferResponse(global_offer_id, get_offer(view, global_offer_id))


def _offer_page(
    view: LoanView,
    offer_ids: List[str],
    start_after: Optional[str],
    limit: Optional[int],
) -> MultipleOffersResponse:
    size = page_limit(limit)
    ids = sorted(offer_ids, key=offer_sort_key, reverse=True)
    if start_after is not None:
        try:
            cursor = offer_sort_key(start_after)
        except ValueError as err:
            raise OfferNotFound(f"Offer cursor {start_after!r} is not an offer id") from err
        ids = [gid for gid in ids if offer_sort_key(gid) < cursor]
    page = ids[:size]

    offers = tuple(OfferResponse(gid, get_offer(view, gid)) for gid in page)
    return MultipleOffersResponse(offers, page[-1] if page else None)


def query_offers(
    view: LoanView,
    borrower: str,
    loan_id: int,
    start_after: Optional[str] = None,
    limit: Optional[int] = None,
) -> MultipleOffersResponse:
    """Offers made on one listing, newest first."""
    return _offer_page(view, view.offer_ids_for_collateral(borrower, loan_id), start_after, limit)


def query_lender_offers(
    view: LoanView,
    lender: str,
    start_after: Optional[str] = None,
    limit: Optional[int] = None,
) -> MultipleOffersResponse:
    """Offers made by one lender, newest first."""
    return _offer_page(view, view.offer_ids_for_lender(lender), start_after, limit)
