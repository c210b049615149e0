"""
book.py - Stateful store for the NFT loan contract

The LoanBook is the only object that mutates contract state. It holds the
configuration, borrower sequences, collaterals and offers, and drives the
external collaborators (bank, NFT registry, fee distributor) when a
transaction is applied.

Key responsibilities:
    - Implements the LoanView protocol for the pure compute_* functions
    - Applies PendingTransactions atomically: every record write and every
      transfer succeeds, or nothing happens
    - Rejects transactions computed against records that changed since
      (optimistic concurrency), so two acceptances built from the same
      snapshot cannot both apply
    - Tracks block height and time
    - Always validates and always logs
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from .core import (
    # Types
    AssetInfo, BankSend, BorrowerInfo, CollateralInfo, ContractInfo,
    ExecuteResult, FeeDeposit, NftTransfer, OfferInfo, PendingTransaction,
    RecordChange, Transaction,
    # Constants
    CONTRACT_ADDRESS, CONFIG_KEY,
    RECORD_BORROWER, RECORD_COLLATERAL, RECORD_CONFIG, RECORD_OFFER,
    # Exceptions
    LoanError,
)
from .collaborators import Bank, NftRegistry, FeeDistributor
from .offers import OfferIndex, with_effective_state
from .escrow import escrow_totals


# Height and time of the first block when none are given.
DEFAULT_START_HEIGHT = 12345
DEFAULT_START_TIME = datetime(2019, 10, 23, 2, 23, 39)

# Seconds between consecutive blocks when advancing by block count.
DEFAULT_BLOCK_SECONDS = 6


class LoanBook:
    """
    Contract state with full validation and audit trail.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own LoanBook instance.

    Example:
        config = instantiate(MessageInfo("owner"), "nft-loans", "treasury", "0.05")
        book = LoanBook("main", config)
        book.mint_nft(Cw721Coin("nft", "58"), "alice")

        pending = compute_deposit_collateral(book, MessageInfo("alice"), [Cw721Coin("nft", "58")])
        result = book.execute(pending)
    """

    def __init__(
        self,
        name: str,
        contract_info: ContractInfo,
        contract_address: str = CONTRACT_ADDRESS,
        initial_height: int = DEFAULT_START_HEIGHT,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False,
        bank: Optional[Bank] = None,
        nfts: Optional[NftRegistry] = None,
        fee_distributor: Optional[FeeDistributor] = None,
    ):
        """
        Create a book.

        Args:
            name: Book identifier
            contract_info: Initial configuration (see admin.instantiate)
            contract_address: Address holding escrow and custodied assets
            initial_height: Starting block height
            initial_time: Starting block time (default: DEFAULT_START_TIME)
            verbose: Print every applied or rejected transaction (default: True)
            test_mode: Allow set_balance() calls (default: False)
            bank, nfts, fee_distributor: Collaborators (fresh in-memory ones by default)
        """
        self.name = name
        self.contract_info = contract_info
        self._contract_address = contract_address
        self._block_height = initial_height
        self._block_time = initial_time or DEFAULT_START_TIME
        self.verbose = verbose
        self._test_mode = test_mode

        self.bank = bank or Bank()
        self.nfts = nfts or NftRegistry()
        self.fee_distributor = fee_distributor or FeeDistributor()

        self.borrowers: Dict[str, BorrowerInfo] = {}
        self.collaterals: Dict[Tuple[str, int], CollateralInfo] = {}
        self.offers = OfferIndex()

        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._next_sequence: int = 0

    # ========================================================================
    # LoanView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def block_height(self) -> int:
        return self._block_height

    @property
    def block_time(self) -> datetime:
        return self._block_time

    @property
    def contract_address(self) -> str:
        return self._contract_address

    def get_contract_info(self) -> ContractInfo:
        return self.contract_info

    def get_borrower_info(self, borrower: str) -> Optional[BorrowerInfo]:
        return self.borrowers.get(borrower)

    def get_collateral(self, borrower: str, loan_id: int) -> Optional[CollateralInfo]:
        return self.collaterals.get((borrower, loan_id))

    def collateral_keys(self, borrower: Optional[str] = None) -> List[Tuple[str, int]]:
        if borrower is None:
            return list(self.collaterals)
        return [key for key in self.collaterals if key[0] == borrower]

    def get_offer(self, global_offer_id: str) -> Optional[OfferInfo]:
        """Return the offer with soft refusal applied."""
        offer = self.offers.get(global_offer_id)
        if offer is None:
            return None
        return with_effective_state(offer, self.get_collateral(offer.borrower, offer.loan_id))

    def get_stored_offer(self, global_offer_id: str) -> Optional[OfferInfo]:
        return self.offers.get(global_offer_id)

    def offer_ids_for_collateral(self, borrower: str, loan_id: int) -> List[str]:
        return self.offers.by_collateral(borrower, loan_id)

    def offer_ids_for_lender(self, lender: str) -> List[str]:
        return self.offers.by_lender(lender)

    def owner_of(self, address: str, token_id: str) -> Optional[str]:
        return self.nfts.owner_of(address, token_id)

    def get_balance(self, address: str, denom: str) -> int:
        return self.bank.get_balance(address, denom)

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def verify_escrow(self) -> Dict[str, Any]:
        """
        Check that the contract holds exactly the escrow of its open offers.

        For every denom, the contract's bank balance must equal the sum of
        deposited_funds over all stored offers.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every denom balances
            - 'escrowed': Dict[str, int] - Sum of deposited_funds per denom
            - 'held': Dict[str, int] - Contract balance per denom
            - 'discrepancies': List[Dict] - denom, escrowed, held, difference

        Example:
            result = book.verify_escrow()
            assert result['valid'], result['discrepancies']
        """
        escrowed = escrow_totals([offer for _, offer in self.offers.items()])
        held = {
            denom: amount
            for denom, amount in self.bank.balances.get(self.contract_address, {}).items()
            if amount
        }
        discrepancies = []
        for denom in sorted(set(escrowed) | set(held)):
            expected = escrowed.get(denom, 0)
            actual = held.get(denom, 0)
            if expected != actual:
                discrepancies.append({
                    'denom': denom,
                    'escrowed': expected,
                    'held': actual,
                    'difference': actual - expected,
                })
        return {
            'valid': len(discrepancies) == 0,
            'escrowed': escrowed,
            'held': held,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # BLOCKS
    # ========================================================================

    def advance_block(self, blocks: int = 1, seconds_per_block: int = DEFAULT_BLOCK_SECONDS) -> None:
        """
        Move the chain forward by a number of blocks.

        Height can only move forward, never backward.
        """
        if blocks < 0:
            raise ValueError(f"Cannot move back {-blocks} blocks")
        self._block_height += blocks
        self._block_time += timedelta(seconds=blocks * seconds_per_block)

    # ========================================================================
    # SETUP (Mutating)
    # ========================================================================

    def set_balance(self, address: str, denom: str, amount: int) -> None:
        """
        Directly set a bank balance. Only available in test_mode.

        Raises:
            RuntimeError: If not in test_mode
        """
        if not self._test_mode:
            raise RuntimeError(
                "set_balance() is only available in test_mode. "
                "Fund accounts by executing transactions instead."
            )
        self.bank.set_balance(address, denom, amount)

    def mint_nft(self, asset: AssetInfo, owner: str) -> None:
        """Register an NFT held by owner outside the contract."""
        self.nfts.mint(asset, owner)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{book_name}:{sequence:012d}:{block_height}"""
        return f"exec:{self.name}:{sequence:012d}:{self._block_height}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply a PendingTransaction atomically.

        Every record change must still match the stored record it was
        computed against, every bank transfer must be covered by the
        sender's balance at that point in the sequence, and every NFT
        transfer must come from the token's current owner.

        Re-submitting an intent that was already applied returns
        ALREADY_APPLIED instead of REJECTED.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if this intent was already executed
            ExecuteResult.REJECTED if validation failed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            if pending.intent_id in self.seen_intent_ids:
                if self.verbose:
                    print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
                return ExecuteResult.ALREADY_APPLIED
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            changes=pending.changes,
            funds_in=pending.funds_in,
            messages=pending.messages,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            book_name=self.name,
            block_height=self._block_height,
            sequence_number=sequence,
            attributes=pending.attributes,
        )

        for change in tx.changes:
            self._write_record(change)
        for send in tx.funds_in:
            self.bank.send(send.sender, send.recipient, send.coin)
        for message in tx.messages:
            self._dispatch(message)

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def find_transaction(self, intent_id: str) -> Optional[Transaction]:
        """Return the latest applied transaction with this intent, if any."""
        for tx in reversed(self.transaction_log):
            if tx.intent_id == intent_id:
                return tx
        return None

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w
        text = f" {icon} {result}"
        lines[-1] = f"├{bar}┤"
        lines.append(f"│{text[:w] + ' ' * (w - len(text[:w]))}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _read_record(self, kind: str, key: Any) -> Any:
        if kind == RECORD_CONFIG:
            if key != CONFIG_KEY:
                raise LoanError(f"Unknown config key: {key!r}")
            return self.contract_info
        if kind == RECORD_BORROWER:
            return self.borrowers.get(key)
        if kind == RECORD_COLLATERAL:
            return self.collaterals.get(key)
        if kind == RECORD_OFFER:
            return self.offers.get(key)
        raise LoanError(f"Unknown record kind: {kind!r}")

    def _write_record(self, change: RecordChange) -> None:
        if change.kind == RECORD_CONFIG:
            self.contract_info = change.new
        elif change.kind == RECORD_BORROWER:
            self.borrowers[change.key] = change.new
        elif change.kind == RECORD_COLLATERAL:
            self.collaterals[change.key] = change.new
        elif change.kind == RECORD_OFFER:
            if change.old is None:
                self.offers.insert(change.key, change.new)
            else:
                self.offers.update(change.key, change.new)

    def _dispatch(self, message: Any) -> None:
        if isinstance(message, BankSend):
            self.bank.send(message.sender, message.recipient, message.coin)
        elif isinstance(message, NftTransfer):
            self.nfts.transfer(message.asset, message.sender, message.recipient)
        elif isinstance(message, FeeDeposit):
            self.bank.send(message.sender, message.recipient, message.coin)
            self.fee_distributor.deposit_fees(message.addresses, message.fee_type, message.coin)

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate a pending transaction without touching any state.

        Returns:
            (True, "") if valid, (False, reason) otherwise
        """
        for change in pending.changes:
            try:
                current = self._read_record(change.kind, change.key)
            except LoanError as err:
                return False, str(err)
            if current != change.old:
                return False, f"stale {change.kind} record {change.key!r}"
            if change.new is None:
                return False, f"{change.kind} record {change.key!r} cannot be deleted"

        # Replay the transfers against shadow balances and owners.
        balances: Dict[Tuple[str, str], int] = {}
        owners: Dict[Tuple[str, str], Optional[str]] = {}

        def debit(sender: str, recipient: str, denom: str, amount: int) -> Optional[str]:
            src = (sender, denom)
            available = balances.get(src, self.bank.get_balance(sender, denom))
            if available < amount:
                return f"insufficient funds: {sender} has {available}{denom}, needs {amount}{denom}"
            balances[src] = available - amount
            dst = (recipient, denom)
            balances[dst] = balances.get(dst, self.bank.get_balance(recipient, denom)) + amount
            return None

        for message in pending.funds_in + pending.messages:
            if isinstance(message, (BankSend, FeeDeposit)):
                error = debit(message.sender, message.recipient, message.coin.denom, message.coin.amount)
                if error:
                    return False, error
            elif isinstance(message, NftTransfer):
                token = (message.asset.address, message.asset.token_id)
                current_owner = owners.get(token, self.nfts.owner_of(*token))
                if current_owner != message.sender:
                    return False, (
                        f"{message.sender} cannot transfer {token[0]}/{token[1]} "
                        f"owned by {current_owner}"
                    )
                owners[token] = message.recipient
            else:
                return False, f"unknown message: {message!r}"

        return True, ""

    # ========================================================================
    # CLONING
    # ========================================================================

    def clone(self) -> LoanBook:
        """
        Create an independent copy of this book.

        Records are immutable, so container copies are enough; collaborators
        are copied too.
        """
        cloned = LoanBook.__new__(LoanBook)
        cloned.name = self.name
        cloned.contract_info = self.contract_info
        cloned._contract_address = self._contract_address
        cloned._block_height = self._block_height
        cloned._block_time = self._block_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode

        cloned.bank = self.bank.copy()
        cloned.nfts = self.nfts.copy()
        cloned.fee_distributor = self.fee_distributor.copy()

        cloned.borrowers = dict(self.borrowers)
        cloned.collaterals = dict(self.collaterals)
        cloned.offers = self.offers.copy()

        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        return cloned
