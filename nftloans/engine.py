"""
engine.py - Loan Engine

Routes contract messages to the pure compute_* functions and applies the
result to a LoanBook.

Each call:
1. Build a PendingTransaction from the book's current state (guards run here)
2. Execute it on the book (staleness, balance and ownership checks run here)
3. Return the executed Transaction, or raise

The transaction log is the audit trail - the engine keeps no state of its own.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional, Sequence, Union

from .core import (
    AssetInfo, Coin, ExecuteResult, LoanTerms, LoanView, MessageInfo,
    PendingTransaction, Transaction, TransactionRejected,
)
from .book import LoanBook
from .lifecycle import (
    compute_deposit_collateral, compute_modify_collateral, compute_withdraw_collateral,
    compute_make_offer, compute_accept_loan, compute_accept_offer,
    compute_cancel_offer, compute_refuse_offer, compute_withdraw_refused_offer,
)
from .settlement import compute_repay_borrowed_funds, compute_withdraw_defaulted_loan
from .admin import (
    compute_set_owner, compute_claim_ownership,
    compute_set_fee_distributor, compute_set_fee_rate,
)


_HANDLERS = {
    'deposit_collateral': compute_deposit_collateral,
    'modify_collateral': compute_modify_collateral,
    'withdraw_collateral': compute_withdraw_collateral,
    'make_offer': compute_make_offer,
    'accept_loan': compute_accept_loan,
    'accept_offer': compute_accept_offer,
    'cancel_offer': compute_cancel_offer,
    'refuse_offer': compute_refuse_offer,
    'withdraw_refused_offer': compute_withdraw_refused_offer,
    'repay_borrowed_funds': compute_repay_borrowed_funds,
    'withdraw_defaulted_loan': compute_withdraw_defaulted_loan,
    'set_owner': compute_set_owner,
    'claim_ownership': compute_claim_ownership,
    'set_fee_distributor': compute_set_fee_distributor,
    'set_fee_rate': compute_set_fee_rate,
}


def transact(view: LoanView, info: MessageInfo, action: str, **kwargs) -> PendingTransaction:
    """
    Compute the PendingTransaction for one contract message.

    This is the unified entry point for every execute message, routing to
    the matching compute_* function by action name.

    Args:
        view: Read-only contract state
        info: Sender and attached funds
        action: One of:
            - deposit_collateral (tokens, terms, comment, loan_preview)
            - modify_collateral (loan_id, terms, comment, loan_preview)
            - withdraw_collateral (loan_id)
            - make_offer (borrower, loan_id, terms, comment)
            - accept_loan (borrower, loan_id, comment)
            - accept_offer / cancel_offer / refuse_offer /
              withdraw_refused_offer (global_offer_id)
            - repay_borrowed_funds (loan_id)
            - withdraw_defaulted_loan (borrower, loan_id)
            - set_owner (new_owner), claim_ownership ()
            - set_fee_distributor (fee_distributor), set_fee_rate (fee_rate)
        **kwargs: Action arguments

    Example:
        pending = transact(book, MessageInfo("bob", (Coin("uluna", 456),)),
                           "make_offer", borrower="alice", loan_id=0, terms=terms)

    Raises:
        ValueError: If the action is unknown
    """
    handler = _HANDLERS.get(action)
    if handler is None:
        raise ValueError(f"Unknown action: {action}")
    return handler(view, info, **kwargs)


class LoanEngine:
    """
    Message front end over a LoanBook.

    Example:
        engine = LoanEngine(book)
        tx = engine.deposit_collateral("alice", [Cw721Coin("nft", "58")], terms=terms)
        loan_id = int(tx.attribute("loan_id"))
        tx = engine.make_offer("bob", "alice", loan_id, terms)
        engine.accept_offer("alice", tx.attribute("global_offer_id"))
    """

    def __init__(self, book: LoanBook):
        self.book = book
        self.verbose = book.verbose

    def submit(self, pending: PendingTransaction) -> Transaction:
        """
        Execute a pending transaction on the book.

        Returns the applied Transaction (the original one for an intent that
        was already applied).

        Raises:
            TransactionRejected: If the book rejects the transaction
        """
        result = self.book.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(f"{pending.origin.action} rejected by {self.book.name}")
        return self.book.find_transaction(pending.intent_id)

    def handle(self, info: MessageInfo, action: str, **kwargs) -> Transaction:
        return self.submit(transact(self.book, info, action, **kwargs))

    def advance_blocks(self, blocks: int = 1) -> int:
        self.book.advance_block(blocks)
        return self.book.block_height

    # ========================================================================
    # BORROWER
    # ========================================================================

    def deposit_collateral(
        self,
        borrower: str,
        tokens: Sequence[AssetInfo],
        terms: Optional[LoanTerms] = None,
        comment: Optional[str] = None,
        loan_preview: Optional[AssetInfo] = None,
    ) -> Transaction:
        return self.handle(
            MessageInfo(borrower), 'deposit_collateral',
            tokens=tokens, terms=terms, comment=comment, loan_preview=loan_preview,
        )

    def modify_collateral(
        self,
        borrower: str,
        loan_id: int,
        terms: Optional[LoanTerms] = None,
        comment: Optional[str] = None,
        loan_preview: Optional[AssetInfo] = None,
    ) -> Transaction:
        return self.handle(
            MessageInfo(borrower), 'modify_collateral',
            loan_id=loan_id, terms=terms, comment=comment, loan_preview=loan_preview,
        )

    def withdraw_collateral(self, borrower: str, loan_id: int) -> Transaction:
        return self.handle(MessageInfo(borrower), 'withdraw_collateral', loan_id=loan_id)

    def accept_offer(self, borrower: str, global_offer_id: str) -> Transaction:
        return self.handle(MessageInfo(borrower), 'accept_offer', global_offer_id=global_offer_id)

    def refuse_offer(self, borrower: str, global_offer_id: str) -> Transaction:
        return self.handle(MessageInfo(borrower), 'refuse_offer', global_offer_id=global_offer_id)

    def repay_borrowed_funds(self, borrower: str, loan_id: int, funds: Sequence[Coin]) -> Transaction:
        return self.handle(MessageInfo(borrower, tuple(funds)), 'repay_borrowed_funds', loan_id=loan_id)

    # ========================================================================
    # LENDER
    # ========================================================================

    def make_offer(
        self,
        lender: str,
        borrower: str,
        loan_id: int,
        terms: LoanTerms,
        comment: Optional[str] = None,
        funds: Optional[Sequence[Coin]] = None,
    ) -> Transaction:
        """Make an offer; funds default to exactly the principal."""
        if funds is None:
            funds = (terms.principal,)
        return self.handle(
            MessageInfo(lender, tuple(funds)), 'make_offer',
            borrower=borrower, loan_id=loan_id, terms=terms, comment=comment,
        )

    def accept_loan(
        self,
        lender: str,
        borrower: str,
        loan_id: int,
        comment: Optional[str] = None,
        funds: Optional[Sequence[Coin]] = None,
    ) -> Transaction:
        """Take the borrower's terms; funds default to the proposed principal."""
        if funds is None:
            collateral = self.book.get_collateral(borrower, loan_id)
            terms = collateral.terms if collateral is not None else None
            funds = (terms.principal,) if terms is not None else ()
        return self.handle(
            MessageInfo(lender, tuple(funds)), 'accept_loan',
            borrower=borrower, loan_id=loan_id, comment=comment,
        )

    def cancel_offer(self, lender: str, global_offer_id: str) -> Transaction:
        return self.handle(MessageInfo(lender), 'cancel_offer', global_offer_id=global_offer_id)

    def withdraw_refused_offer(self, lender: str, global_offer_id: str) -> Transaction:
        return self.handle(MessageInfo(lender), 'withdraw_refused_offer', global_offer_id=global_offer_id)

    def withdraw_defaulted_loan(self, lender: str, borrower: str, loan_id: int) -> Transaction:
        return self.handle(
            MessageInfo(lender), 'withdraw_defaulted_loan', borrower=borrower, loan_id=loan_id
        )

    # ========================================================================
    # OWNER
    # ========================================================================

    def set_owner(self, sender: str, new_owner: str) -> Transaction:
        return self.handle(MessageInfo(sender), 'set_owner', new_owner=new_owner)

    def claim_ownership(self, sender: str) -> Transaction:
        return self.handle(MessageInfo(sender), 'claim_ownership')

    def set_fee_distributor(self, sender: str, fee_distributor: str) -> Transaction:
        return self.handle(MessageInfo(sender), 'set_fee_distributor', fee_distributor=fee_distributor)

    def set_fee_rate(self, sender: str, fee_rate: Union[Decimal, str, int]) -> Transaction:
        return self.handle(MessageInfo(sender), 'set_fee_rate', fee_rate=fee_rate)
