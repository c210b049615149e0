"""
collateral.py - Collateral guards and custody transfers

Pure predicates over a CollateralInfo record. Each guard returns None when
the transition is allowed and raises a StateGuardViolation carrying the
record's actual state otherwise.

Collateral state machine:
    PUBLISHED -> STARTED -> ENDED        (repaid)
                         -> DEFAULTED    (claimed by the lender after timeout)
    PUBLISHED -> ASSET_WITHDRAWN         (listing withdrawn by the borrower)
"""

from __future__ import annotations
from typing import List, Optional, Tuple

from .core import (
    AssetInfo, CollateralInfo, LoanState, NftTransfer, OfferInfo,
    NotModifiable, NotCounterable, NotAcceptable, NotWithdrawable,
    WrongLoanState, WrongAssetDeposited, UnrecognizedAsset, AssetNotInLoan,
    is_nft,
)


# ============================================================================
# STATE GUARDS
# ============================================================================

def is_loan_modifiable(collateral: CollateralInfo) -> None:
    if collateral.state != LoanState.PUBLISHED:
        raise NotModifiable(collateral.state)


def is_loan_counterable(collateral: CollateralInfo) -> None:
    if collateral.state != LoanState.PUBLISHED:
        raise NotCounterable(collateral.state)


def is_loan_acceptable(collateral: CollateralInfo) -> None:
    if collateral.state != LoanState.PUBLISHED:
        raise NotAcceptable(collateral.state)


def is_collateral_withdrawable(collateral: CollateralInfo) -> None:
    if collateral.state != LoanState.PUBLISHED:
        raise NotWithdrawable(collateral.state)


def default_block(collateral: CollateralInfo, offer: OfferInfo) -> int:
    """First block height at which the loan counts as defaulted."""
    return collateral.start_block + offer.terms.duration_in_blocks


def is_loan_defaulted(
    collateral: CollateralInfo,
    offer: Optional[OfferInfo],
    block_height: int,
) -> None:
    """
    Succeed if the loan is in default.

    A STARTED loan defaults once block_height >= start_block + duration.
    A DEFAULTED loan is, trivially, in default. Anything else raises
    WrongLoanState with the actual state.
    """
    if collateral.state == LoanState.STARTED:
        if block_height >= default_block(collateral, offer):
            return
        raise WrongLoanState(collateral.state)
    if collateral.state == LoanState.DEFAULTED:
        return
    raise WrongLoanState(collateral.state)


def can_repay_loan(
    collateral: CollateralInfo,
    offer: Optional[OfferInfo],
    block_height: int,
) -> None:
    """
    Succeed if the loan can still be repaid.

    A loan past its deadline reports DEFAULTED even before the lender claims it.
    """
    try:
        is_loan_defaulted(collateral, offer, block_height)
    except WrongLoanState:
        pass
    else:
        raise WrongLoanState(LoanState.DEFAULTED)
    if collateral.state != LoanState.STARTED:
        raise WrongLoanState(collateral.state)


# ============================================================================
# LISTING VALIDATION
# ============================================================================

def validate_loan_preview(
    assets: Tuple[AssetInfo, ...],
    loan_preview: Optional[AssetInfo],
) -> None:
    if loan_preview is not None and loan_preview not in assets:
        raise AssetNotInLoan(f"Preview {loan_preview!r} is not one of the listed assets")


# ============================================================================
# CUSTODY TRANSFERS
# ============================================================================

def collateral_addresses(collateral: CollateralInfo) -> Tuple[str, ...]:
    """Collection addresses of the collateral's NFTs, in listing order."""
    addresses = []
    for asset in collateral.associated_assets:
        if not is_nft(asset):
            raise UnrecognizedAsset(f"Cannot settle asset {asset!r}")
        addresses.append(asset.address)
    return tuple(addresses)


def custody_transfers(
    collateral: CollateralInfo,
    sender: str,
    recipient: str,
    at_acceptance: bool = False,
) -> List[NftTransfer]:
    """
    One NftTransfer per listed asset, in listing order.

    Non-NFT assets raise WrongAssetDeposited when taken into custody and
    UnrecognizedAsset when released.
    """
    transfers = []
    for asset in collateral.associated_assets:
        if not is_nft(asset):
            if at_acceptance:
                raise WrongAssetDeposited(f"Asset {asset!r} cannot be held as collateral")
            raise UnrecognizedAsset(f"Cannot release asset {asset!r}")
        transfers.append(NftTransfer(asset, sender, recipient))
    return transfers
