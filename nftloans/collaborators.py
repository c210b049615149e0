"""
collaborators.py - External systems the loan contract talks to

The contract never owns assets or balances directly; it asks an ownership
oracle who holds an NFT and emits transfers that other systems carry out.
This module defines those interfaces and in-memory reference
implementations used by LoanBook and the tests:

    Bank            native balances (BankTransferSink)
    NftRegistry     NFT ownership (AssetOwnershipOracle + AssetTransferSink)
    FeeDistributor  protocol fee collection (FeeDistributionSink)
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .core import AssetInfo, Coin, LoanError, is_nft


class InsufficientFunds(LoanError):
    """Raised when a bank transfer would overdraw the sender."""
    pass


class AssetTransferFailed(LoanError):
    """Raised when an NFT transfer is attempted by an address that does not own it."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class AssetOwnershipOracle(Protocol):
    def owner_of(self, address: str, token_id: str) -> Optional[str]:
        ...


@runtime_checkable
class AssetTransferSink(Protocol):
    def transfer(self, asset: AssetInfo, sender: str, recipient: str) -> None:
        ...


@runtime_checkable
class FeeDistributionSink(Protocol):
    def deposit_fees(self, addresses: Tuple[str, ...], fee_type: str, coin: Coin) -> None:
        ...


@runtime_checkable
class BankTransferSink(Protocol):
    def send(self, sender: str, recipient: str, coin: Coin) -> None:
        ...


# ============================================================================
# BANK
# ============================================================================

class Bank:
    """
    Integer balances per address and denom.

    Transfers never overdraw: send() raises InsufficientFunds instead.
    """

    def __init__(self):
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))

    def get_balance(self, address: str, denom: str) -> int:
        if address not in self.balances:
            return 0
        return self.balances[address].get(denom, 0)

    def set_balance(self, address: str, denom: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Balance must be non-negative, got {amount}")
        self.balances[address][denom] = amount

    def send(self, sender: str, recipient: str, coin: Coin) -> None:
        available = self.get_balance(sender, coin.denom)
        if available < coin.amount:
            raise InsufficientFunds(
                f"{sender} has {available}{coin.denom}, needs {coin}"
            )
        self.balances[sender][coin.denom] = available - coin.amount
        self.balances[recipient][coin.denom] += coin.amount

    def total_supply(self, denom: str) -> int:
        return sum(bals.get(denom, 0) for bals in self.balances.values())

    def copy(self) -> Bank:
        cloned = Bank()
        for address, bals in self.balances.items():
            cloned.balances[address] = defaultdict(int, bals)
        return cloned


# ============================================================================
# NFT REGISTRY
# ============================================================================

class NftRegistry:
    """
    Ownership table for CW721 / SG721 tokens, keyed by (collection address, token id).
    """

    def __init__(self):
        self.owners: Dict[Tuple[str, str], str] = {}

    def mint(self, asset: AssetInfo, owner: str) -> None:
        if not is_nft(asset):
            raise ValueError(f"Only NFTs can be minted, got {asset!r}")
        self.owners[(asset.address, asset.token_id)] = owner

    def owner_of(self, address: str, token_id: str) -> Optional[str]:
        return self.owners.get((address, token_id))

    def transfer(self, asset: AssetInfo, sender: str, recipient: str) -> None:
        current = self.owner_of(asset.address, asset.token_id)
        if current != sender:
            raise AssetTransferFailed(
                f"{sender} cannot transfer {asset.address}/{asset.token_id} owned by {current}"
            )
        self.owners[(asset.address, asset.token_id)] = recipient

    def tokens_of(self, owner: str) -> List[Tuple[str, str]]:
        return sorted(key for key, holder in self.owners.items() if holder == owner)

    def copy(self) -> NftRegistry:
        cloned = NftRegistry()
        cloned.owners = dict(self.owners)
        return cloned


# ============================================================================
# FEE DISTRIBUTOR
# ============================================================================

class FeeDistributor:
    """Records every fee deposit it receives, in arrival order."""

    def __init__(self):
        self.deposits: List[Tuple[Tuple[str, ...], str, Coin]] = []

    def deposit_fees(self, addresses: Tuple[str, ...], fee_type: str, coin: Coin) -> None:
        self.deposits.append((tuple(addresses), fee_type, coin))

    def total_collected(self, denom: str) -> int:
        return sum(coin.amount for _, _, coin in self.deposits if coin.denom == denom)

    def copy(self) -> FeeDistributor:
        cloned = FeeDistributor()
        cloned.deposits = list(self.deposits)
        return cloned
