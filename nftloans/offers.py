"""
offers.py - Offer registry, derived offer state, and offer-level guards

Offers are stored once, keyed by their global offer id, and reachable
through three projections kept by OfferIndex:
    global id           -> OfferInfo
    lender              -> [global ids]
    (borrower, loan_id) -> [global ids]

Ids never change and offers are never deleted, so an insert is the only
operation that touches the secondary projections.

Soft refusal: an offer still PUBLISHED in storage whose collateral has left
PUBLISHED (another offer was accepted, or the listing was withdrawn) reads
as REFUSED. The derivation is applied at every read boundary; only a
withdrawal of the refused escrow writes it back.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Dict, Iterator, List, Optional, Tuple

from .core import (
    CollateralInfo, LoanState, LoanView, OfferInfo, OfferState,
    Unauthorized, OfferNotFound, LoanNotFound, NotCounterable, NotRefusable,
)
from .collateral import is_loan_counterable


# ============================================================================
# DERIVED STATE
# ============================================================================

def effective_offer_state(offer: OfferInfo, collateral: Optional[CollateralInfo]) -> OfferState:
    """Return the offer state as callers should see it."""
    if (
        offer.state == OfferState.PUBLISHED
        and collateral is not None
        and collateral.state != LoanState.PUBLISHED
    ):
        return OfferState.REFUSED
    return offer.state


def with_effective_state(offer: OfferInfo, collateral: Optional[CollateralInfo]) -> OfferInfo:
    """Return the offer with its state replaced by the effective state."""
    state = effective_offer_state(offer, collateral)
    if state == offer.state:
        return offer
    return replace(offer, state=state)


# ============================================================================
# OFFER INDEX
# ============================================================================

def offer_sort_key(global_offer_id: str) -> int:
    """Global ids are decimal strings; order them numerically."""
    return int(global_offer_id)


class OfferIndex:
    """
    Offer storage with lender and collateral projections.

    Example:
        index = OfferIndex()
        index.insert("1", offer)
        index.by_lender("bob")              # ["1"]
        index.by_collateral("alice", 0)     # ["1"]
    """

    def __init__(self):
        self._offers: Dict[str, OfferInfo] = {}
        self._by_lender: Dict[str, List[str]] = {}
        self._by_collateral: Dict[Tuple[str, int], List[str]] = {}

    def __contains__(self, global_offer_id: str) -> bool:
        return global_offer_id in self._offers

    def __len__(self) -> int:
        return len(self._offers)

    def __iter__(self) -> Iterator[str]:
        return iter(self._offers)

    def get(self, global_offer_id: str) -> Optional[OfferInfo]:
        return self._offers.get(global_offer_id)

    def items(self):
        return self._offers.items()

    def insert(self, global_offer_id: str, offer: OfferInfo) -> None:
        if global_offer_id in self._offers:
            raise ValueError(f"Offer {global_offer_id} already exists")
        self._offers[global_offer_id] = offer
        self._by_lender.setdefault(offer.lender, []).append(global_offer_id)
        self._by_collateral.setdefault((offer.borrower, offer.loan_id), []).append(global_offer_id)

    def update(self, global_offer_id: str, offer: OfferInfo) -> None:
        current = self._offers.get(global_offer_id)
        if current is None:
            raise KeyError(global_offer_id)
        if (current.lender, current.borrower, current.loan_id) != (offer.lender, offer.borrower, offer.loan_id):
            raise ValueError(f"Offer {global_offer_id} cannot change lender or collateral")
        self._offers[global_offer_id] = offer

    def by_lender(self, lender: str) -> List[str]:
        return list(self._by_lender.get(lender, ()))

    def by_collateral(self, borrower: str, loan_id: int) -> List[str]:
        return list(self._by_collateral.get((borrower, loan_id), ()))

    def copy(self) -> OfferIndex:
        cloned = OfferIndex()
        cloned._offers = dict(self._offers)
        cloned._by_lender = {k: list(v) for k, v in self._by_lender.items()}
        cloned._by_collateral = {k: list(v) for k, v in self._by_collateral.items()}
        return cloned


# ============================================================================
# LOOKUPS AND GUARDS
# ============================================================================

def get_offer(view: LoanView, global_offer_id: str) -> OfferInfo:
    """Return the offer with its effective state, or raise OfferNotFound."""
    offer = view.get_offer(global_offer_id)
    if offer is None:
        raise OfferNotFound(f"Offer {global_offer_id} not found")
    return offer


def get_stored_offer(view: LoanView, global_offer_id: str) -> OfferInfo:
    """Return the offer exactly as stored, or raise OfferNotFound."""
    offer = view.get_stored_offer(global_offer_id)
    if offer is None:
        raise OfferNotFound(f"Offer {global_offer_id} not found")
    return offer


def get_collateral(view: LoanView, borrower: str, loan_id: int) -> CollateralInfo:
    collateral = view.get_collateral(borrower, loan_id)
    if collateral is None:
        raise LoanNotFound(f"Loan {borrower}/{loan_id} not found")
    return collateral


def get_active_loan(view: LoanView, collateral: CollateralInfo) -> Tuple[str, OfferInfo]:
    """Return (global id, offer) of the collateral's accepted offer."""
    if collateral.active_offer is None:
        raise OfferNotFound("The loan has no active offer")
    return collateral.active_offer, get_offer(view, collateral.active_offer)


def is_lender(sender: str, offer: OfferInfo) -> None:
    if sender != offer.lender:
        raise Unauthorized(f"{sender} is not the lender of this offer")


def is_offer_borrower(sender: str, offer: OfferInfo) -> None:
    if sender != offer.borrower:
        raise Unauthorized(f"{sender} is not the borrower targeted by this offer")


def is_active_lender(view: LoanView, sender: str, collateral: CollateralInfo) -> OfferInfo:
    """Return the active offer if sender is its lender."""
    _, offer = get_active_loan(view, collateral)
    is_lender(sender, offer)
    return offer


def is_offer_refusable(collateral: CollateralInfo, offer: OfferInfo) -> None:
    """
    Succeed if the borrower may still refuse the offer.

    Both "collateral no longer takes offers" and "offer not PUBLISHED"
    surface as NotRefusable.
    """
    try:
        is_loan_counterable(collateral)
    except NotCounterable as err:
        raise NotRefusable(err.state) from err
    if offer.state != OfferState.PUBLISHED:
        raise NotRefusable(offer.state)
