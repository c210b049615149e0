"""
Tests for settlement.py - Repayment and default

Tests:
- calculate_lender_payback / calculate_treasury_cut arithmetic
- compute_repay_borrowed_funds payment checks and message order
- compute_withdraw_defaulted_loan guards and custody transfer
"""

import pytest
from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from nftloans import (
    Coin, LoanState, BankSend, NftTransfer, FeeDeposit,
    calculate_lender_payback, calculate_treasury_cut,
    WrongLoanState, MultipleCoins, FundsDontMatchTerms, InsufficientRepayment,
    LoanAlreadyDefaulted, Unauthorized, LoanNotFound, FEE_TYPE_FUNDS,
)

from tests.conftest import (
    BORROWER, LENDER, LENDER_2, TREASURY, DENOM, NFT, SG_NFT, INITIAL_BALANCE,
    list_collateral, place_offer, make_terms,
)


# ============================================================================
# Pure calculations
# ============================================================================

class TestLenderPayback:
    """principal + floor(interest * (1 - fee_rate))"""

    def test_reference_values(self):
        assert calculate_lender_payback(456, 50, Decimal("0.05")) == 503

    def test_zero_fee(self):
        assert calculate_lender_payback(456, 50, Decimal("0")) == 506

    def test_truncates_lender_interest(self):
        assert calculate_lender_payback(100, 7, Decimal("0.5")) == 103

    def test_zero_interest(self):
        assert calculate_lender_payback(456, 0, Decimal("0.05")) == 456

    def test_treasury_cut(self):
        assert calculate_treasury_cut(506, 503) == 3
        assert calculate_treasury_cut(600, 503) == 97

    @given(
        principal=st.integers(min_value=0, max_value=10**12),
        interest=st.integers(min_value=0, max_value=10**12),
        fee_bp=st.integers(min_value=0, max_value=9999),
    )
    @settings(max_examples=50)
    def test_payback_bounds(self, principal, interest, fee_bp):
        """
        PROPERTY: principal <= payback <= principal + interest, so the cut
        on an exact repayment is never negative.
        """
        fee_rate = Decimal(fee_bp) / Decimal(10000)
        payback = calculate_lender_payback(principal, interest, fee_rate)
        assert principal <= payback <= principal + interest
        assert calculate_treasury_cut(principal + interest, payback) >= 0


# ============================================================================
# Repayment
# ============================================================================

class TestRepay:
    """Tests for repay_borrowed_funds."""

    def test_repay_with_fee(self, engine, book, started_loan):
        loan_id, offer_id = started_loan
        tx = engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])

        assert book.get_collateral(BORROWER, loan_id).state == LoanState.ENDED
        assert book.owner_of("nft", "58") == BORROWER
        assert book.get_balance(LENDER, DENOM) == INITIAL_BALANCE - 456 + 503
        assert book.get_balance(BORROWER, DENOM) == INITIAL_BALANCE + 456 - 506
        assert book.get_balance(TREASURY, DENOM) == 3
        assert book.fee_distributor.deposits == [(("nft",), FEE_TYPE_FUNDS, Coin(DENOM, 3))]
        assert tx.attribute("lender_payback") == "503"
        assert tx.attribute("treasury_cut") == "3"

    def test_message_order(self, engine, book, started_loan):
        loan_id, _ = started_loan
        tx = engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])
        contract = book.contract_address
        assert tx.funds_in == (BankSend(BORROWER, contract, Coin(DENOM, 506)),)
        assert tx.messages == (
            BankSend(contract, LENDER, Coin(DENOM, 503)),
            NftTransfer(NFT, contract, BORROWER),
            FeeDeposit(contract, TREASURY, ("nft",), FEE_TYPE_FUNDS, Coin(DENOM, 3)),
        )

    def test_overpayment_goes_to_treasury(self, engine, book, started_loan):
        loan_id, _ = started_loan
        engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 600)])
        assert book.get_balance(LENDER, DENOM) == INITIAL_BALANCE - 456 + 503
        assert book.get_balance(TREASURY, DENOM) == 97

    def test_zero_fee_sends_no_fee_deposit(self, zero_fee_engine, zero_fee_book):
        loan_id = list_collateral(zero_fee_engine)
        offer_id = place_offer(zero_fee_engine, loan_id=loan_id)
        zero_fee_engine.accept_offer(BORROWER, offer_id)
        tx = zero_fee_engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])

        assert not any(isinstance(m, FeeDeposit) for m in tx.messages)
        assert zero_fee_book.fee_distributor.deposits == []
        assert zero_fee_book.get_balance(LENDER, DENOM) == INITIAL_BALANCE + 50

    def test_short_payment(self, engine, started_loan):
        loan_id, _ = started_loan
        with pytest.raises(InsufficientRepayment) as exc_info:
            engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 505)])
        assert exc_info.value.expected == Coin(DENOM, 506)
        assert exc_info.value.received == Coin(DENOM, 505)

    def test_wrong_denom(self, engine, started_loan):
        loan_id, _ = started_loan
        with pytest.raises(FundsDontMatchTerms):
            engine.repay_borrowed_funds(BORROWER, loan_id, [Coin("other", 506)])

    def test_multiple_coins(self, engine, started_loan):
        loan_id, _ = started_loan
        with pytest.raises(MultipleCoins):
            engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506), Coin(DENOM, 1)])
        with pytest.raises(MultipleCoins):
            engine.repay_borrowed_funds(BORROWER, loan_id, [])

    def test_past_deadline(self, engine, book, started_loan):
        """Duration 1: at start_block + 1 the loan is in default."""
        loan_id, _ = started_loan
        book.advance_block()
        with pytest.raises(WrongLoanState) as exc_info:
            engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])
        assert exc_info.value.state == LoanState.DEFAULTED

    def test_repay_unstarted(self, engine):
        loan_id = list_collateral(engine)
        with pytest.raises(WrongLoanState) as exc_info:
            engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])
        assert exc_info.value.state == LoanState.PUBLISHED

    def test_repay_twice(self, engine, started_loan):
        loan_id, _ = started_loan
        engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])
        with pytest.raises(WrongLoanState) as exc_info:
            engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])
        assert exc_info.value.state == LoanState.ENDED

    def test_unknown_loan(self, engine):
        with pytest.raises(LoanNotFound):
            engine.repay_borrowed_funds(BORROWER, 9, [Coin(DENOM, 506)])

    def test_fee_tagged_with_every_collection(self, engine, book):
        loan_id = list_collateral(engine, tokens=[NFT, SG_NFT])
        offer_id = place_offer(engine, loan_id=loan_id)
        engine.accept_offer(BORROWER, offer_id)
        engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])
        assert book.fee_distributor.deposits[0][0] == ("nft", "sg_nft")
        assert book.owner_of("sg_nft", "1") == BORROWER


# ============================================================================
# Default
# ============================================================================

class TestWithdrawDefaultedLoan:
    """Tests for withdraw_defaulted_loan."""

    def test_lender_claims_collateral(self, engine, book, started_loan):
        loan_id, _ = started_loan
        book.advance_block()
        tx = engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)

        assert book.get_collateral(BORROWER, loan_id).state == LoanState.DEFAULTED
        assert book.owner_of("nft", "58") == LENDER
        assert tx.messages == (NftTransfer(NFT, book.contract_address, LENDER),)
        assert not tx.funds_in
        assert book.get_balance(LENDER, DENOM) == INITIAL_BALANCE - 456

    def test_second_claim(self, engine, book, started_loan):
        loan_id, _ = started_loan
        book.advance_block()
        engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)
        with pytest.raises(LoanAlreadyDefaulted):
            engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)

    def test_not_yet_due(self, engine, started_loan):
        loan_id, _ = started_loan
        with pytest.raises(WrongLoanState) as exc_info:
            engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)
        assert exc_info.value.state == LoanState.STARTED

    def test_only_active_lender(self, engine, book, started_loan):
        loan_id, _ = started_loan
        book.advance_block()
        with pytest.raises(Unauthorized):
            engine.withdraw_defaulted_loan(LENDER_2, BORROWER, loan_id)
        with pytest.raises(Unauthorized):
            engine.withdraw_defaulted_loan(BORROWER, BORROWER, loan_id)

    def test_repaid_loan(self, engine, book, started_loan):
        loan_id, _ = started_loan
        engine.repay_borrowed_funds(BORROWER, loan_id, [Coin(DENOM, 506)])
        book.advance_block(10)
        with pytest.raises(WrongLoanState) as exc_info:
            engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)
        assert exc_info.value.state == LoanState.ENDED

    def test_unstarted_loan(self, engine):
        loan_id = list_collateral(engine)
        with pytest.raises(WrongLoanState) as exc_info:
            engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)
        assert exc_info.value.state == LoanState.PUBLISHED

    def test_longer_duration(self, engine, book):
        loan_id = list_collateral(engine)
        offer_id = place_offer(engine, loan_id=loan_id, terms=make_terms(duration=5))
        engine.accept_offer(BORROWER, offer_id)
        book.advance_block(4)
        with pytest.raises(WrongLoanState):
            engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)
        book.advance_block()
        engine.withdraw_defaulted_loan(LENDER, BORROWER, loan_id)
        assert book.owner_of("nft", "58") == LENDER
