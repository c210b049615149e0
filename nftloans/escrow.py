"""
escrow.py - Lender principal held by the contract

A lender's principal enters escrow when the offer is made and leaves it
exactly once: to the borrower at acceptance, or back to the lender on
cancellation or after a refusal. OfferInfo.deposited_funds is the escrow
balance of an offer; it is set on entry and cleared on exit.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from .core import (
    BankSend, Coin, LoanTerms, LoanView, OfferInfo,
    MultipleCoins, FundsDontMatchTerms, NoFundsToWithdraw,
)


def single_coin(funds: Sequence[Coin]) -> Coin:
    if len(funds) != 1:
        raise MultipleCoins(f"Expected exactly one coin, got {len(funds)}")
    return funds[0]


def validate_offer_funds(funds: Sequence[Coin], terms: LoanTerms) -> Coin:
    """The funds attached to an offer must be exactly the principal."""
    coin = single_coin(funds)
    if coin != terms.principal:
        raise FundsDontMatchTerms(f"Sent {coin}, terms require {terms.principal}")
    return coin


def release_escrow(view: LoanView, offer: OfferInfo, recipient: str) -> Tuple[OfferInfo, List[BankSend]]:
    """
    Pay an offer's escrow out to recipient.

    Returns the offer with deposited_funds cleared and the matching
    transfers; a zero escrow produces no transfer.
    """
    if offer.deposited_funds is None:
        raise NoFundsToWithdraw(offer.state)
    sends = []
    if offer.deposited_funds.amount > 0:
        sends.append(BankSend(view.contract_address, recipient, offer.deposited_funds))
    return replace(offer, deposited_funds=None), sends


def escrow_totals(offers: Sequence[OfferInfo]) -> Dict[str, int]:
    """Sum of deposited_funds per denom across the given offers."""
    totals: Dict[str, int] = defaultdict(int)
    for offer in offers:
        if offer.deposited_funds is not None:
            totals[offer.deposited_funds.denom] += offer.deposited_funds.amount
    return dict(totals)
