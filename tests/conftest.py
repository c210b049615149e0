"""
conftest.py - Shared pytest fixtures for nftloans tests

Provides common fixtures used across unit, functional and conformance tests:
- A funded book with minted NFTs (test_mode, quiet)
- An engine over that book
- Standard terms and assets from the reference scenarios
- Helpers that list collateral and make offers, returning their ids
"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from nftloans import (
    LoanBook, LoanEngine, LoanTerms, MessageInfo,
    Coin, Cw721Coin, Sg721Token, Cw20Coin,
    instantiate,
)

from tests.fake_view import FakeView, default_contract_info


# =============================================================================
# CONSTANTS
# =============================================================================

DENOM = "luna"
START_HEIGHT = 12345

BORROWER = "alice"
LENDER = "bob"
LENDER_2 = "carol"
OWNER = "owner"
TREASURY = "treasury"

NFT = Cw721Coin("nft", "58")
NFT_2 = Cw721Coin("nft", "59")
SG_NFT = Sg721Token("sg_nft", "1")
CW20 = Cw20Coin("token", 100)

INITIAL_BALANCE = 10_000


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_terms(principal: int = 456, interest: int = 50, duration: int = 1, denom: str = DENOM) -> LoanTerms:
    """Reference terms: 456 luna principal, 50 luna interest, 1 block."""
    return LoanTerms(Coin(denom, principal), interest, duration)


def create_book(fee_rate: str = "0.05", verbose: bool = False) -> LoanBook:
    """Book with funded accounts and alice's NFTs minted."""
    config = instantiate(MessageInfo(OWNER), "nft-loans", TREASURY, Decimal(fee_rate))
    book = LoanBook(
        "test", config,
        initial_height=START_HEIGHT,
        initial_time=datetime(2019, 10, 23),
        verbose=verbose,
        test_mode=True,
    )
    for asset in (NFT, NFT_2, SG_NFT):
        book.mint_nft(asset, BORROWER)
    for account in (BORROWER, LENDER, LENDER_2):
        book.set_balance(account, DENOM, INITIAL_BALANCE)
    return book


def list_collateral(
    engine: LoanEngine,
    borrower: str = BORROWER,
    tokens: Sequence = (NFT,),
    terms: Optional[LoanTerms] = None,
    **kwargs,
) -> int:
    """Deposit collateral and return its loan id."""
    tx = engine.deposit_collateral(borrower, list(tokens), terms=terms, **kwargs)
    return int(tx.attribute("loan_id"))


def place_offer(
    engine: LoanEngine,
    lender: str = LENDER,
    borrower: str = BORROWER,
    loan_id: int = 0,
    terms: Optional[LoanTerms] = None,
) -> str:
    """Make an offer funded with exactly the principal; return its global id."""
    tx = engine.make_offer(lender, borrower, loan_id, terms or make_terms())
    return tx.attribute("global_offer_id")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def book():
    return create_book()


@pytest.fixture
def zero_fee_book():
    return create_book(fee_rate="0")


@pytest.fixture
def engine(book):
    return LoanEngine(book)


@pytest.fixture
def zero_fee_engine(zero_fee_book):
    return LoanEngine(zero_fee_book)


@pytest.fixture
def terms():
    return make_terms()


@pytest.fixture
def started_loan(engine, terms):
    """alice's NFT listed, bob's offer accepted; returns (loan_id, global_offer_id)."""
    loan_id = list_collateral(engine)
    offer_id = place_offer(engine, terms=terms, loan_id=loan_id)
    engine.accept_offer(BORROWER, offer_id)
    return loan_id, offer_id


@pytest.fixture
def empty_view():
    return FakeView(contract_info=default_contract_info())
