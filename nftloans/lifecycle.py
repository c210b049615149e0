"""
lifecycle.py - Listing, offer and acceptance operations

Pure functions from (view, message info, arguments) to a PendingTransaction.
None of them mutate anything; guards raise LoanError subclasses and leave
the book untouched.

Operations:
    compute_deposit_collateral      borrower lists assets (no transfer)
    compute_modify_collateral       borrower edits a PUBLISHED listing
    compute_withdraw_collateral     borrower withdraws a PUBLISHED listing
    compute_make_offer              lender escrows principal against a listing
    compute_accept_loan             lender takes the borrower's own terms
    compute_accept_offer            borrower accepts one offer
    compute_cancel_offer            lender cancels a PUBLISHED offer
    compute_refuse_offer            borrower refuses a PUBLISHED offer
    compute_withdraw_refused_offer  lender recovers escrow of a refused offer
"""

from __future__ import annotations
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from .core import (
    # Types
    AssetInfo, BorrowerInfo, CollateralInfo, LoanState, LoanTerms, LoanView,
    MessageInfo, OfferInfo, OfferState, OutboundMessage, PendingTransaction,
    RecordChange, build_transaction,
    # Record kinds
    RECORD_BORROWER, RECORD_COLLATERAL, RECORD_CONFIG, RECORD_OFFER, CONFIG_KEY,
    # Exceptions
    NoAssets, NoTermsSpecified, WrongOfferState, CantChangeOfferState,
    NotWithdrawable, SenderNotOwner,
)
from .collateral import (
    is_loan_modifiable, is_loan_counterable, is_loan_acceptable,
    is_collateral_withdrawable, validate_loan_preview, custody_transfers,
)
from .offers import (
    get_collateral, get_stored_offer, with_effective_state,
    is_lender, is_offer_borrower, is_offer_refusable,
)
from .escrow import validate_offer_funds, release_escrow


# ============================================================================
# COLLATERAL LISTING
# ============================================================================

def next_loan_id(borrower_info: Optional[BorrowerInfo]) -> int:
    """A borrower's first listing gets id 0; each later one the next integer."""
    if borrower_info is None:
        return 0
    return borrower_info.last_collateral_id + 1


def compute_deposit_collateral(
    view: LoanView,
    info: MessageInfo,
    tokens: Sequence[AssetInfo],
    terms: Optional[LoanTerms] = None,
    comment: Optional[str] = None,
    loan_preview: Optional[AssetInfo] = None,
) -> PendingTransaction:
    """
    List assets as collateral for a new loan.

    The assets stay with the borrower until an offer is accepted. The
    borrower may propose terms a lender can take directly via accept_loan.

    Raises:
        NoAssets: tokens is empty
        AssetNotInLoan: loan_preview is not one of tokens
    """
    assets = tuple(tokens)
    if not assets:
        raise NoAssets("A collateral listing needs at least one asset")
    validate_loan_preview(assets, loan_preview)

    borrower = info.sender
    borrower_info = view.get_borrower_info(borrower)
    loan_id = next_loan_id(borrower_info)

    collateral = CollateralInfo(
        associated_assets=assets,
        list_date=view.block_time,
        state=LoanState.PUBLISHED,
        terms=terms,
        comment=comment,
        loan_preview=loan_preview,
    )
    changes = [
        RecordChange(RECORD_BORROWER, borrower, borrower_info, BorrowerInfo(loan_id)),
        RecordChange(RECORD_COLLATERAL, (borrower, loan_id), None, collateral),
    ]
    return build_transaction(
        view, borrower, "deposit_collateral", changes,
        attributes=[("borrower", borrower), ("loan_id", loan_id)],
    )


def compute_modify_collateral(
    view: LoanView,
    info: MessageInfo,
    loan_id: int,
    terms: Optional[LoanTerms] = None,
    comment: Optional[str] = None,
    loan_preview: Optional[AssetInfo] = None,
) -> PendingTransaction:
    """
    Update the supplied fields of a PUBLISHED listing and refresh its list date.

    Fields passed as None keep their current value.
    """
    borrower = info.sender
    collateral = get_collateral(view, borrower, loan_id)
    is_loan_modifiable(collateral)

    if loan_preview is not None:
        validate_loan_preview(collateral.associated_assets, loan_preview)

    updated = replace(
        collateral,
        terms=terms if terms is not None else collateral.terms,
        comment=comment if comment is not None else collateral.comment,
        loan_preview=loan_preview if loan_preview is not None else collateral.loan_preview,
        list_date=view.block_time,
    )
    change = RecordChange(RECORD_COLLATERAL, (borrower, loan_id), collateral, updated)
    return build_transaction(
        view, borrower, "modify_collateral", [change],
        attributes=[("borrower", borrower), ("loan_id", loan_id)],
    )


def compute_withdraw_collateral(view: LoanView, info: MessageInfo, loan_id: int) -> PendingTransaction:
    """Withdraw a PUBLISHED listing; its open offers then read as refused."""
    borrower = info.sender
    collateral = get_collateral(view, borrower, loan_id)
    is_collateral_withdrawable(collateral)

    withdrawn = replace(collateral, state=LoanState.ASSET_WITHDRAWN)
    change = RecordChange(RECORD_COLLATERAL, (borrower, loan_id), collateral, withdrawn)
    return build_transaction(
        view, borrower, "withdraw_collateral", [change],
        attributes=[("borrower", borrower), ("loan_id", loan_id)],
    )


# ============================================================================
# OFFERS
# ============================================================================

def _make_offer_raw(
    view: LoanView,
    info: MessageInfo,
    borrower: str,
    loan_id: int,
    terms: LoanTerms,
    comment: Optional[str],
) -> Tuple[str, OfferInfo, CollateralInfo, List[RecordChange]]:
    """
    Create a PUBLISHED offer holding the lender's principal in escrow.

    Returns (global offer id, new offer, updated collateral, changes).
    """
    collateral = get_collateral(view, borrower, loan_id)
    is_loan_counterable(collateral)
    deposit = validate_offer_funds(info.funds, terms)

    config = view.get_contract_info()
    new_config = replace(config, global_offer_index=config.global_offer_index + 1)
    global_offer_id = str(new_config.global_offer_index)
    new_collateral = replace(collateral, offer_amount=collateral.offer_amount + 1)

    offer = OfferInfo(
        lender=info.sender,
        borrower=borrower,
        loan_id=loan_id,
        offer_id=new_collateral.offer_amount,
        terms=terms,
        state=OfferState.PUBLISHED,
        list_date=view.block_time,
        deposited_funds=deposit,
        comment=comment,
    )
    changes = [
        RecordChange(RECORD_CONFIG, CONFIG_KEY, config, new_config),
        RecordChange(RECORD_COLLATERAL, (borrower, loan_id), collateral, new_collateral),
        RecordChange(RECORD_OFFER, global_offer_id, None, offer),
    ]
    return global_offer_id, offer, new_collateral, changes


def compute_make_offer(
    view: LoanView,
    info: MessageInfo,
    borrower: str,
    loan_id: int,
    terms: LoanTerms,
    comment: Optional[str] = None,
) -> PendingTransaction:
    """
    Offer to lend against a listing.

    The message must carry exactly the principal in terms; it is moved into
    the contract and held as the offer's escrow.

    Raises:
        LoanNotFound, NotCounterable, MultipleCoins, FundsDontMatchTerms
    """
    global_offer_id, offer, _, changes = _make_offer_raw(
        view, info, borrower, loan_id, terms, comment
    )
    return build_transaction(
        view, info.sender, "make_offer", changes,
        funds_in=[offer.deposited_funds],
        attributes=[
            ("borrower", borrower),
            ("loan_id", loan_id),
            ("global_offer_id", global_offer_id),
        ],
    )


def _accept_offer_raw(
    view: LoanView,
    global_offer_id: str,
    offer: OfferInfo,
    collateral: CollateralInfo,
) -> Tuple[List[RecordChange], List[OutboundMessage]]:
    """
    Start the loan: escrow goes to the borrower, assets come into custody.

    The offer's stored state is checked, not its derived state.
    """
    is_loan_acceptable(collateral)
    if offer.state != OfferState.PUBLISHED:
        raise WrongOfferState(offer.state)

    borrower = offer.borrower
    accepted, principal_sends = release_escrow(view, offer, borrower)
    accepted = replace(accepted, state=OfferState.ACCEPTED)
    started = replace(
        collateral,
        state=LoanState.STARTED,
        start_block=view.block_height,
        active_offer=global_offer_id,
    )

    messages: List[OutboundMessage] = list(principal_sends)
    for transfer in custody_transfers(collateral, borrower, view.contract_address, at_acceptance=True):
        owner = view.owner_of(transfer.asset.address, transfer.asset.token_id)
        if owner != borrower:
            raise SenderNotOwner(transfer.asset.address, transfer.asset.token_id, owner)
        messages.append(transfer)

    changes = [
        RecordChange(RECORD_COLLATERAL, (borrower, offer.loan_id), collateral, started),
        RecordChange(RECORD_OFFER, global_offer_id, offer, accepted),
    ]
    return changes, messages


def compute_accept_loan(
    view: LoanView,
    info: MessageInfo,
    borrower: str,
    loan_id: int,
    comment: Optional[str] = None,
) -> PendingTransaction:
    """
    Take the terms the borrower proposed: make the offer and accept it at once.
    """
    collateral = get_collateral(view, borrower, loan_id)
    if collateral.terms is None:
        raise NoTermsSpecified(f"Loan {borrower}/{loan_id} has no proposed terms")

    global_offer_id, offer, counted, offer_changes = _make_offer_raw(
        view, info, borrower, loan_id, collateral.terms, comment
    )
    accept_changes, messages = _accept_offer_raw(view, global_offer_id, offer, counted)
    return build_transaction(
        view, info.sender, "accept_loan", offer_changes + accept_changes,
        messages=messages,
        funds_in=[offer.deposited_funds],
        attributes=[
            ("borrower", borrower),
            ("lender", info.sender),
            ("loan_id", loan_id),
            ("global_offer_id", global_offer_id),
        ],
    )


def compute_accept_offer(view: LoanView, info: MessageInfo, global_offer_id: str) -> PendingTransaction:
    """
    Borrower accepts one offer on their listing.

    Raises:
        OfferNotFound, Unauthorized, NotAcceptable, WrongOfferState,
        WrongAssetDeposited, SenderNotOwner
    """
    offer = get_stored_offer(view, global_offer_id)
    is_offer_borrower(info.sender, offer)
    collateral = get_collateral(view, offer.borrower, offer.loan_id)

    changes, messages = _accept_offer_raw(view, global_offer_id, offer, collateral)
    return build_transaction(
        view, info.sender, "accept_offer", changes,
        messages=messages,
        attributes=[
            ("borrower", offer.borrower),
            ("lender", offer.lender),
            ("loan_id", offer.loan_id),
            ("global_offer_id", global_offer_id),
        ],
    )


def compute_cancel_offer(view: LoanView, info: MessageInfo, global_offer_id: str) -> PendingTransaction:
    """Lender cancels a PUBLISHED offer and recovers the escrow."""
    stored = get_stored_offer(view, global_offer_id)
    is_lender(info.sender, stored)
    collateral = get_collateral(view, stored.borrower, stored.loan_id)

    current = with_effective_state(stored, collateral)
    if current.state != OfferState.PUBLISHED:
        raise CantChangeOfferState(current.state, OfferState.CANCELLED)
    is_loan_modifiable(collateral)

    refunded, refunds = release_escrow(view, stored, stored.lender)
    cancelled = replace(refunded, state=OfferState.CANCELLED)
    change = RecordChange(RECORD_OFFER, global_offer_id, stored, cancelled)
    return build_transaction(
        view, info.sender, "cancel_offer", [change],
        messages=refunds,
        attributes=[("global_offer_id", global_offer_id)],
    )


def compute_refuse_offer(view: LoanView, info: MessageInfo, global_offer_id: str) -> PendingTransaction:
    """Borrower refuses a PUBLISHED offer. The escrow stays until the lender withdraws it."""
    stored = get_stored_offer(view, global_offer_id)
    is_offer_borrower(info.sender, stored)
    collateral = get_collateral(view, stored.borrower, stored.loan_id)
    is_offer_refusable(collateral, stored)

    refused = replace(stored, state=OfferState.REFUSED)
    change = RecordChange(RECORD_OFFER, global_offer_id, stored, refused)
    return build_transaction(
        view, info.sender, "refuse_offer", [change],
        attributes=[("global_offer_id", global_offer_id)],
    )


def compute_withdraw_refused_offer(
    view: LoanView,
    info: MessageInfo,
    global_offer_id: str,
) -> PendingTransaction:
    """
    Lender recovers the escrow of a refused offer.

    Works for explicit refusals and for offers that read as refused because
    the collateral moved on; the refusal is then written to storage.
    """
    stored = get_stored_offer(view, global_offer_id)
    is_lender(info.sender, stored)
    collateral = get_collateral(view, stored.borrower, stored.loan_id)

    current = with_effective_state(stored, collateral)
    if current.state != OfferState.REFUSED:
        raise NotWithdrawable(current.state)

    withdrawn, refunds = release_escrow(view, current, stored.lender)
    change = RecordChange(RECORD_OFFER, global_offer_id, stored, withdrawn)
    return build_transaction(
        view, info.sender, "withdraw_refused_offer", [change],
        messages=refunds,
        attributes=[("global_offer_id", global_offer_id)],
    )
