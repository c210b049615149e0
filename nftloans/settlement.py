"""
settlement.py - Repayment and default settlement

A started loan ends in one of two ways:

REPAY (borrower, before the deadline):
    The borrower sends at least principal + interest in the principal's denom.
    The lender receives principal + floor(interest * (1 - fee_rate)); the
    collateral goes back to the borrower; everything else the borrower sent
    (the protocol's interest cut plus any overpayment) goes to the fee
    distributor. Overpayment is not refunded.

DEFAULT (lender, at or after start_block + duration_in_blocks):
    The collateral goes to the lender. No funds move.

Example (principal 456, interest 50, fee_rate 0.05, 506 sent):
    lender payback = 456 + floor(47.5) = 503
    treasury cut   = 506 - 503 = 3
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal, ROUND_DOWN
from typing import List

from .core import (
    BankSend, Coin, FeeDeposit, LoanState, LoanView, MessageInfo,
    OutboundMessage, PendingTransaction, RecordChange, build_transaction,
    RECORD_COLLATERAL, FEE_TYPE_FUNDS,
    FundsDontMatchTerms, InsufficientRepayment, LoanAlreadyDefaulted,
)
from .collateral import (
    can_repay_loan, is_loan_defaulted, collateral_addresses, custody_transfers,
)
from .offers import get_collateral, get_active_loan, is_active_lender
from .escrow import single_coin


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_lender_payback(principal: int, interest: int, fee_rate: Decimal) -> int:
    """
    Amount the lender receives on repayment.

    principal + interest * (1 - fee_rate), the interest share truncated
    toward zero.

    Example:
        >>> calculate_lender_payback(456, 50, Decimal("0.05"))
        503
    """
    lender_interest = (Decimal(interest) * (Decimal(1) - fee_rate)).to_integral_value(rounding=ROUND_DOWN)
    return principal + int(lender_interest)


def calculate_treasury_cut(amount_sent: int, lender_payback: int) -> int:
    """Everything the borrower sent beyond the lender's payback."""
    return amount_sent - lender_payback


# ============================================================================
# REPAYMENT
# ============================================================================

def compute_repay_borrowed_funds(view: LoanView, info: MessageInfo, loan_id: int) -> PendingTransaction:
    """
    Borrower repays a started loan and gets the collateral back.

    Messages, in order: payback to the lender, one transfer per asset back
    to the borrower, fee deposit to the fee distributor. Zero amounts are
    not sent.

    Raises:
        LoanNotFound, WrongLoanState, MultipleCoins, FundsDontMatchTerms,
        InsufficientRepayment
    """
    borrower = info.sender
    collateral = get_collateral(view, borrower, loan_id)
    global_offer_id, offer = None, None
    if collateral.state == LoanState.STARTED:
        global_offer_id, offer = get_active_loan(view, collateral)
    can_repay_loan(collateral, offer, view.block_height)

    terms = offer.terms
    payment = single_coin(info.funds)
    if payment.denom != terms.principal.denom:
        raise FundsDontMatchTerms(f"Repayment in {payment.denom}, loan is in {terms.principal.denom}")
    expected = terms.total_due
    if payment.amount < expected.amount:
        raise InsufficientRepayment(expected, payment)

    config = view.get_contract_info()
    denom = payment.denom
    payback = calculate_lender_payback(terms.principal.amount, terms.interest, config.fee_rate)
    cut = calculate_treasury_cut(payment.amount, payback)
    contract = view.contract_address

    messages: List[OutboundMessage] = []
    if payback > 0:
        messages.append(BankSend(contract, offer.lender, Coin(denom, payback)))
    messages.extend(custody_transfers(collateral, contract, borrower))
    if cut > 0:
        messages.append(FeeDeposit(
            sender=contract,
            recipient=config.fee_distributor,
            addresses=collateral_addresses(collateral),
            fee_type=FEE_TYPE_FUNDS,
            coin=Coin(denom, cut),
        ))

    ended = replace(collateral, state=LoanState.ENDED)
    change = RecordChange(RECORD_COLLATERAL, (borrower, loan_id), collateral, ended)
    return build_transaction(
        view, borrower, "repay_borrowed_funds", [change],
        messages=messages,
        funds_in=[payment],
        attributes=[
            ("borrower", borrower),
            ("lender", offer.lender),
            ("loan_id", loan_id),
            ("global_offer_id", global_offer_id),
            ("lender_payback", payback),
            ("treasury_cut", cut),
        ],
    )


# ============================================================================
# DEFAULT
# ============================================================================

def compute_withdraw_defaulted_loan(
    view: LoanView,
    info: MessageInfo,
    borrower: str,
    loan_id: int,
) -> PendingTransaction:
    """
    Lender claims the collateral of a loan past its deadline.

    Raises:
        LoanNotFound, WrongLoanState (not yet due, or not started),
        Unauthorized (not the active lender), LoanAlreadyDefaulted
    """
    collateral = get_collateral(view, borrower, loan_id)
    offer = None
    if collateral.active_offer is not None:
        _, offer = get_active_loan(view, collateral)
    is_loan_defaulted(collateral, offer, view.block_height)
    offer = is_active_lender(view, info.sender, collateral)
    global_offer_id = collateral.active_offer
    if collateral.state == LoanState.DEFAULTED:
        raise LoanAlreadyDefaulted(collateral.state)

    defaulted = replace(collateral, state=LoanState.DEFAULTED)
    change = RecordChange(RECORD_COLLATERAL, (borrower, loan_id), collateral, defaulted)
    return build_transaction(
        view, info.sender, "withdraw_defaulted_loan", [change],
        messages=custody_transfers(collateral, view.contract_address, offer.lender),
        attributes=[
            ("borrower", borrower),
            ("lender", offer.lender),
            ("loan_id", loan_id),
            ("global_offer_id", global_offer_id),
        ],
    )
