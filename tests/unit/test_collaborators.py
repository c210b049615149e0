"""
Tests for collaborators.py - In-memory bank, NFT registry and fee distributor

Tests:
- Each reference implementation satisfies its collaborator protocol
- Bank transfers never overdraw
- NFT transfers only from the current owner
- Fee deposits are recorded in arrival order
"""

import pytest

from nftloans import (
    Coin, Cw721Coin, Cw20Coin,
    AssetOwnershipOracle, AssetTransferSink, FeeDistributionSink, BankTransferSink,
    Bank, NftRegistry, FeeDistributor, InsufficientFunds, AssetTransferFailed,
)


NFT = Cw721Coin("nft", "58")


class TestProtocolConformance:
    """The book's default collaborators implement the interfaces it drives."""

    def test_bank_is_transfer_sink(self):
        assert isinstance(Bank(), BankTransferSink)

    def test_registry_is_oracle_and_transfer_sink(self):
        registry = NftRegistry()
        assert isinstance(registry, AssetOwnershipOracle)
        assert isinstance(registry, AssetTransferSink)

    def test_fee_distributor_is_fee_sink(self):
        assert isinstance(FeeDistributor(), FeeDistributionSink)

    def test_book_collaborators(self, book):
        assert isinstance(book.bank, BankTransferSink)
        assert isinstance(book.nfts, AssetOwnershipOracle)
        assert isinstance(book.nfts, AssetTransferSink)
        assert isinstance(book.fee_distributor, FeeDistributionSink)

    def test_non_conforming_object(self):
        assert not isinstance(object(), BankTransferSink)
        assert not isinstance(Bank(), FeeDistributionSink)


class TestBank:
    def test_send(self):
        bank = Bank()
        bank.set_balance("alice", "luna", 100)
        bank.send("alice", "bob", Coin("luna", 40))
        assert bank.get_balance("alice", "luna") == 60
        assert bank.get_balance("bob", "luna") == 40
        assert bank.total_supply("luna") == 100

    def test_overdraft(self):
        bank = Bank()
        bank.set_balance("alice", "luna", 10)
        with pytest.raises(InsufficientFunds):
            bank.send("alice", "bob", Coin("luna", 11))
        assert bank.get_balance("alice", "luna") == 10

    def test_unknown_account_reads_zero(self):
        bank = Bank()
        assert bank.get_balance("nobody", "luna") == 0
        assert "nobody" not in bank.balances

    def test_copy_is_independent(self):
        bank = Bank()
        bank.set_balance("alice", "luna", 10)
        cloned = bank.copy()
        cloned.send("alice", "bob", Coin("luna", 10))
        assert bank.get_balance("alice", "luna") == 10


class TestNftRegistry:
    def test_transfer_by_owner(self):
        registry = NftRegistry()
        registry.mint(NFT, "alice")
        registry.transfer(NFT, "alice", "contract")
        assert registry.owner_of("nft", "58") == "contract"
        assert registry.tokens_of("contract") == [("nft", "58")]

    def test_transfer_by_non_owner(self):
        registry = NftRegistry()
        registry.mint(NFT, "alice")
        with pytest.raises(AssetTransferFailed):
            registry.transfer(NFT, "bob", "contract")
        assert registry.owner_of("nft", "58") == "alice"

    def test_only_nfts_minted(self):
        with pytest.raises(ValueError):
            NftRegistry().mint(Cw20Coin("token", 5), "alice")


class TestFeeDistributor:
    def test_deposits_in_order(self):
        distributor = FeeDistributor()
        distributor.deposit_fees(("nft",), "funds", Coin("luna", 3))
        distributor.deposit_fees(["nft", "sg_nft"], "funds", Coin("luna", 2))
        assert distributor.deposits == [
            (("nft",), "funds", Coin("luna", 3)),
            (("nft", "sg_nft"), "funds", Coin("luna", 2)),
        ]
        assert distributor.total_collected("luna") == 5
        assert distributor.total_collected("other") == 0
