"""
Core types and pure functions for the NFT loan contract.

This module provides the foundational data structures and protocols:
1. Protocols: LoanView for read-only access to contract state
2. Immutable records: Coin, LoanTerms, assets, CollateralInfo, OfferInfo,
   BorrowerInfo, OwnerStruct, ContractInfo
3. Outbound messages: BankSend, NftTransfer, FeeDeposit
4. Transactions: RecordChange, PendingTransaction (intent), Transaction (fact)
5. Exceptions: LoanError and the guard/payment/lookup/structural families

All functions in this module are pure and operate on read-only views.
No function can mutate contract state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from enum import Enum
import hashlib
from typing import (
    Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union,
    runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Fee arithmetic must be deterministic. The context is fixed at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
# Use decimal.localcontext() for anything that needs different settings.
#
_LOAN_DECIMAL_CONTEXT = getcontext()
_LOAN_DECIMAL_CONTEXT.prec = 50
_LOAN_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Address under which the contract holds escrowed funds and custodied assets.
CONTRACT_ADDRESS = "contract"

# Pagination for list queries.
DEFAULT_QUERY_LIMIT = 10
MAX_QUERY_LIMIT = 150

# Contract name bounds (inclusive, in characters).
MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 50

# Fee type tag attached to every deposit sent to the fee distributor.
FEE_TYPE_FUNDS = "funds"

# Record kinds used in RecordChange.kind
RECORD_CONFIG = "config"
RECORD_BORROWER = "borrower"
RECORD_COLLATERAL = "collateral"
RECORD_OFFER = "offer"

# Key of the single contract configuration record.
CONFIG_KEY = "contract_info"


# ============================================================================
# ENUMS
# ============================================================================

class LoanState(Enum):
    """
    Lifecycle state of a listed collateral.

    PUBLISHED -> STARTED -> ENDED | DEFAULTED
    PUBLISHED -> ASSET_WITHDRAWN
    """
    PUBLISHED = "published"
    STARTED = "started"
    DEFAULTED = "defaulted"
    ENDED = "ended"
    ASSET_WITHDRAWN = "asset_withdrawn"


class OfferState(Enum):
    """
    Stored state of a lender offer.

    PUBLISHED -> ACCEPTED | CANCELLED | REFUSED
    """
    PUBLISHED = "published"
    ACCEPTED = "accepted"
    REFUSED = "refused"
    CANCELLED = "cancelled"


class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the book.
    ALREADY_APPLIED: An identical intent was processed before (idempotent).
    REJECTED: Validation failed (stale records, insufficient funds, or an
              asset transfer from a non-owner).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Borrower or lender message
    ADMIN = "admin"                       # Owner-only configuration change
    SYSTEM = "system"                     # Setup (instantiate, funding)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LoanError(Exception):
    """Base exception for all loan contract errors."""
    pass


class TransactionRejected(LoanError):
    """Raised by the engine when the book rejects a pending transaction."""
    pass


# --- Authorization ----------------------------------------------------------

class Unauthorized(LoanError):
    """Raised when the sender is not the party allowed to perform the action."""
    pass


class SenderNotOwner(Unauthorized):
    """Raised when the ownership oracle does not report the borrower as an asset's owner."""

    def __init__(self, address: str, token_id: str, owner: Optional[str]):
        self.address = address
        self.token_id = token_id
        self.owner = owner
        super().__init__(f"Sender is not the owner of {address}/{token_id} (owner: {owner})")


# --- State guards -----------------------------------------------------------

class StateGuardViolation(LoanError):
    """
    Raised when a record's state does not permit the requested transition.

    Every instance carries the actual current state of the record that
    failed the guard.
    """

    def __init__(self, state: Any = None, message: Optional[str] = None):
        self.state = state
        if message is None:
            label = state.value if isinstance(state, Enum) else state
            message = f"{type(self).__name__} (current state: {label})"
        super().__init__(message)


class WrongLoanState(StateGuardViolation):
    """Raised when the collateral is not in the state the operation needs."""
    pass


class WrongOfferState(StateGuardViolation):
    """Raised when the stored offer state is not PUBLISHED at acceptance."""
    pass


class NotModifiable(StateGuardViolation):
    """Raised when the collateral can no longer be modified."""
    pass


class NotCounterable(StateGuardViolation):
    """Raised when the collateral no longer accepts offers."""
    pass


class NotAcceptable(StateGuardViolation):
    """Raised when the collateral can no longer accept an offer."""
    pass


class NotWithdrawable(StateGuardViolation):
    """Raised when the collateral or offer cannot be withdrawn in its current state."""
    pass


class NotRefusable(StateGuardViolation):
    """Raised when an offer cannot be refused."""
    pass


class LoanAlreadyDefaulted(StateGuardViolation):
    """Raised when the lender claims a default that was already claimed."""
    pass


class NoFundsToWithdraw(StateGuardViolation):
    """Raised when a refused offer's escrow has already been returned."""
    pass


class CantChangeOfferState(StateGuardViolation):
    """Raised when an offer cannot move from its current state to the target state."""

    def __init__(self, from_state: OfferState, to_state: OfferState):
        self.to_state = to_state
        super().__init__(
            from_state,
            f"Can't change offer state from {from_state.value} to {to_state.value}",
        )


# --- Malformed payments -----------------------------------------------------

class MalformedPayment(LoanError):
    """Base for errors about the funds attached to a message."""
    pass


class MultipleCoins(MalformedPayment):
    """Raised when a payable operation receives anything but exactly one coin."""
    pass


class FundsDontMatchTerms(MalformedPayment):
    """Raised when the attached coin does not match the loan terms."""
    pass


class InsufficientRepayment(MalformedPayment):
    """Raised when a repayment is below principal plus interest."""

    def __init__(self, expected: Coin, received: Coin):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Funds don't match terms and principal: expected {expected}, got {received}"
        )


# --- Missing records --------------------------------------------------------

class RecordNotFound(LoanError):
    """Base for lookups of records that do not exist."""
    pass


class LoanNotFound(RecordNotFound):
    pass


class OfferNotFound(RecordNotFound):
    pass


class BorrowerNotFound(RecordNotFound):
    pass


# --- Structural violations --------------------------------------------------

class StructuralViolation(LoanError):
    """Base for requests whose shape is invalid regardless of state."""
    pass


class NoAssets(StructuralViolation):
    """Raised when a collateral listing contains no assets."""
    pass


class AssetNotInLoan(StructuralViolation):
    """Raised when the loan preview is not one of the listed assets."""
    pass


class WrongAssetDeposited(StructuralViolation):
    """Raised at acceptance when a listed asset is not a transferable NFT."""
    pass


class UnrecognizedAsset(StructuralViolation):
    """Raised at settlement when a custodied asset cannot be transferred back."""
    pass


class NoTermsSpecified(StructuralViolation):
    """Raised when a loan is accepted directly but the borrower proposed no terms."""
    pass


# --- Configuration ----------------------------------------------------------

class InvalidConfig(LoanError):
    """Base for invalid contract configuration values."""
    pass


class InvalidFeeRate(InvalidConfig):
    pass


class InvalidName(InvalidConfig):
    pass


# ============================================================================
# VALUE TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Coin:
    """
    A quantity of a fungible native token in integer base units.

    Attributes:
        denom: Token denomination (e.g. "uluna")
        amount: Non-negative integer amount
    """
    denom: str
    amount: int

    def __post_init__(self):
        if not self.denom or not self.denom.strip():
            raise ValueError("Coin denom cannot be empty")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Coin amount must be int, got {type(self.amount)}")
        if self.amount < 0:
            raise ValueError(f"Coin amount must be non-negative, got {self.amount}")

    def __repr__(self) -> str:
        return f"{self.amount}{self.denom}"


@dataclass(frozen=True, slots=True)
class LoanTerms:
    """
    Terms of a loan: principal lent, interest owed on top, and duration.

    The interest is denominated in the principal's denom.
    """
    principal: Coin
    interest: int
    duration_in_blocks: int

    def __post_init__(self):
        if not isinstance(self.principal, Coin):
            raise ValueError(f"LoanTerms principal must be Coin, got {type(self.principal)}")
        if self.interest < 0:
            raise ValueError(f"LoanTerms interest must be non-negative, got {self.interest}")
        if self.duration_in_blocks < 0:
            raise ValueError(
                f"LoanTerms duration must be non-negative, got {self.duration_in_blocks}"
            )

    @property
    def total_due(self) -> Coin:
        """Principal plus interest, the minimum accepted repayment."""
        return Coin(self.principal.denom, self.principal.amount + self.interest)


@dataclass(frozen=True, slots=True)
class MessageInfo:
    """Sender of a message and the funds attached to it."""
    sender: str
    funds: Tuple[Coin, ...] = ()

    def __post_init__(self):
        if not self.sender or not self.sender.strip():
            raise ValueError("MessageInfo sender cannot be empty")
        object.__setattr__(self, 'funds', tuple(self.funds))


# ============================================================================
# ASSETS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Cw721Coin:
    """A CW721 non-fungible token."""
    address: str
    token_id: str


@dataclass(frozen=True, slots=True)
class Sg721Token:
    """A Stargaze SG721 non-fungible token."""
    address: str
    token_id: str


@dataclass(frozen=True, slots=True)
class Cw1155Coin:
    """A CW1155 semi-fungible token balance."""
    address: str
    token_id: str
    value: int


@dataclass(frozen=True, slots=True)
class Cw20Coin:
    """A CW20 fungible token balance."""
    address: str
    amount: int


@dataclass(frozen=True, slots=True)
class NativeCoin:
    """Native funds listed as an asset."""
    coin: Coin


AssetInfo = Union[Cw721Coin, Sg721Token, Cw1155Coin, Cw20Coin, NativeCoin]

# Asset kinds that can be taken into custody as collateral.
NFT_ASSET_TYPES = (Cw721Coin, Sg721Token)


def is_nft(asset: AssetInfo) -> bool:
    """Return True if the asset is a single transferable NFT."""
    return isinstance(asset, NFT_ASSET_TYPES)


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class OwnerStruct:
    """
    Contract owner with a pending two-phase ownership transfer.

    The current owner proposes new_owner; the proposed address must then
    claim ownership itself.
    """
    owner: str
    new_owner: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ContractInfo:
    """
    Global contract configuration.

    Attributes:
        name: Contract name, MIN_NAME_LENGTH..MAX_NAME_LENGTH characters
        owner: Current owner and pending owner proposal
        fee_distributor: Address receiving the protocol's interest cut
        fee_rate: Fraction of interest kept by the protocol, in [0, 1)
        global_offer_index: Last allocated global offer id (0 before any offer)
    """
    name: str
    owner: OwnerStruct
    fee_distributor: str
    fee_rate: Decimal
    global_offer_index: int = 0


@dataclass(frozen=True, slots=True)
class BorrowerInfo:
    """Per-borrower sequence; last_collateral_id is the id of the latest listing."""
    last_collateral_id: int


@dataclass(frozen=True, slots=True)
class CollateralInfo:
    """
    A borrower's listing of assets as collateral.

    Attributes:
        associated_assets: Listed assets (non-empty, never changes after creation)
        list_date: Block time of the listing or its last modification
        state: Current lifecycle state
        terms: Terms proposed by the borrower, if any
        offer_amount: Number of offers ever made on this collateral
        active_offer: Global id of the accepted offer once the loan started
        start_block: Block height at which the loan started
        comment: Free text from the borrower
        loan_preview: Asset displayed as the listing's preview
    """
    associated_assets: Tuple[AssetInfo, ...]
    list_date: datetime
    state: LoanState = LoanState.PUBLISHED
    terms: Optional[LoanTerms] = None
    offer_amount: int = 0
    active_offer: Optional[str] = None
    start_block: Optional[int] = None
    comment: Optional[str] = None
    loan_preview: Optional[AssetInfo] = None


@dataclass(frozen=True, slots=True)
class OfferInfo:
    """
    A lender's offer against one collateral.

    Attributes:
        lender: Address that made the offer and escrowed the principal
        borrower: Owner of the targeted collateral
        loan_id: Id of the targeted collateral within the borrower's listings
        offer_id: Position in the collateral's offer sequence (display only)
        terms: Proposed loan terms
        state: Stored state (see offers.effective_offer_state for the read view)
        list_date: Block time at which the offer was made
        deposited_funds: Escrowed principal still held by the contract
        comment: Free text from the lender
    """
    lender: str
    borrower: str
    loan_id: int
    offer_id: int
    terms: LoanTerms
    state: OfferState
    list_date: datetime
    deposited_funds: Optional[Coin] = None
    comment: Optional[str] = None


# ============================================================================
# OUTBOUND MESSAGES
# ============================================================================

@dataclass(frozen=True, slots=True)
class BankSend:
    """Transfer of native funds between two addresses."""
    sender: str
    recipient: str
    coin: Coin

    def __post_init__(self):
        if self.sender == self.recipient:
            raise ValueError("BankSend sender and recipient must be different")
        if self.coin.amount == 0:
            raise ValueError("BankSend of a zero amount")

    def __repr__(self) -> str:
        return f"BankSend({self.coin}: {self.sender}→{self.recipient})"


@dataclass(frozen=True, slots=True)
class NftTransfer:
    """Transfer of one NFT between two addresses."""
    asset: AssetInfo
    sender: str
    recipient: str

    def __post_init__(self):
        if not is_nft(self.asset):
            raise ValueError(f"NftTransfer of a non-NFT asset: {self.asset!r}")

    def __repr__(self) -> str:
        return f"NftTransfer({self.asset.address}/{self.asset.token_id}: {self.sender}→{self.recipient})"


@dataclass(frozen=True, slots=True)
class FeeDeposit:
    """Protocol fee sent to the fee distributor, tagged with the collateral's asset addresses."""
    sender: str
    recipient: str
    addresses: Tuple[str, ...]
    fee_type: str
    coin: Coin

    def __post_init__(self):
        if self.coin.amount == 0:
            raise ValueError("FeeDeposit of a zero amount")

    def __repr__(self) -> str:
        return f"FeeDeposit({self.coin}: {self.sender}→{self.recipient}, {list(self.addresses)})"


OutboundMessage = Union[BankSend, NftTransfer, FeeDeposit]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LoanView(Protocol):
    """
    Read-only interface to contract state.

    Compute functions receive a LoanView and can only query it. The LoanBook
    implements this protocol but also provides mutation methods. For testing,
    FakeView provides a truly immutable implementation.

    Offers returned by get_offer carry their effective state (soft refusal
    applied); get_stored_offer returns the record exactly as stored.
    """

    @property
    def block_height(self) -> int:
        ...

    @property
    def block_time(self) -> datetime:
        ...

    @property
    def contract_address(self) -> str:
        ...

    def get_contract_info(self) -> ContractInfo:
        ...

    def get_borrower_info(self, borrower: str) -> Optional[BorrowerInfo]:
        ...

    def get_collateral(self, borrower: str, loan_id: int) -> Optional[CollateralInfo]:
        ...

    def collateral_keys(self, borrower: Optional[str] = None) -> List[Tuple[str, int]]:
        """Return (borrower, loan_id) keys, optionally for one borrower."""
        ...

    def get_offer(self, global_offer_id: str) -> Optional[OfferInfo]:
        ...

    def get_stored_offer(self, global_offer_id: str) -> Optional[OfferInfo]:
        ...

    def offer_ids_for_collateral(self, borrower: str, loan_id: int) -> List[str]:
        ...

    def offer_ids_for_lender(self, lender: str) -> List[str]:
        ...

    def owner_of(self, address: str, token_id: str) -> Optional[str]:
        """Return the current owner of an NFT, or None if it is unknown."""
        ...

    def get_balance(self, address: str, denom: str) -> int:
        ...


# ============================================================================
# RECORD CHANGES
# ============================================================================

@dataclass(frozen=True, slots=True)
class RecordChange:
    """
    Write of one stored record, with the snapshot it was computed against.

    old is None for an insert. The book rejects the change if the stored
    record no longer equals old when the transaction is applied.

    Attributes:
        kind: One of RECORD_CONFIG, RECORD_BORROWER, RECORD_COLLATERAL, RECORD_OFFER
        key: Record key (CONFIG_KEY, borrower, (borrower, loan_id) or global offer id)
        old: Record before the change
        new: Record after the change
    """
    kind: str
    key: Any
    old: Any
    new: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old, new)} for the fields that differ."""
        if self.old is None:
            return {f.name: (None, getattr(self.new, f.name)) for f in fields(self.new)}
        changes = {}
        for f in fields(self.new):
            old_val = getattr(self.old, f.name)
            new_val = getattr(self.new, f.name)
            if old_val != new_val:
                changes[f.name] = (old_val, new_val)
        return changes


def merge_changes(changes: Sequence[RecordChange]) -> Tuple[RecordChange, ...]:
    """
    Collapse successive changes to the same record into one.

    Keeps the first old snapshot and the last new value, in first-touch order.
    """
    merged: Dict[Tuple[str, Any], RecordChange] = {}
    for change in changes:
        slot = (change.kind, change.key)
        if slot in merged:
            first = merged[slot]
            merged[slot] = RecordChange(change.kind, change.key, first.old, change.new)
        else:
            merged[slot] = change
    return tuple(merged.values())


# ============================================================================
# CANONICALIZATION
# ============================================================================

def _normalize_decimal(d: Decimal) -> str:
    """Canonical string for a Decimal: Decimal("0.050") and Decimal("0.05") agree."""
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Records and messages are dataclasses; they serialize as their type name
    followed by their fields in declaration order.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return f"E:{type(value).__name__}.{value.value}"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if is_dataclass(value):
        serialized = ",".join(
            f"{f.name}={_canonicalize(getattr(value, f.name))}" for f in fields(value)
        )
        return f"{type(value).__name__}({serialized})"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    changes: Tuple[RecordChange, ...],
    funds_in: Tuple[BankSend, ...],
    messages: Tuple[OutboundMessage, ...],
    origin: TransactionOrigin,
) -> str:
    """
    Deterministic content hash of a transaction's intent.

    Based only on what the transaction does, never on when it was built.
    Message order is significant and is kept as given.
    """
    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.action:
        content_parts.append(f"action:{origin.action}")
    for change in changes:
        content_parts.append(
            f"change:{change.kind}|{_canonicalize(change.key)}|"
            f"{_canonicalize(change.old)}|{_canonicalize(change.new)}"
        )
    for send in funds_in:
        content_parts.append(f"funds:{_canonicalize(send)}")
    for message in messages:
        content_parts.append(f"msg:{_canonicalize(message)}")
    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


# ============================================================================
# TRANSACTIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Who submitted a transaction and which contract action it performs.

    Attributes:
        origin_type: Classification of the origin
        source_id: Sender address
        action: Contract action name (e.g. "accept_offer")
    """
    origin_type: OriginType
    source_id: str
    action: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.action:
            parts.append(f"action={self.action}")
        return f"Origin({', '.join(parts)})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction before execution - represents INTENT.

    Created by the compute_* functions and submitted to LoanBook.execute().

    Attributes:
        changes: Record writes, each with the snapshot it was computed against
        funds_in: Funds attached by the sender, moved into the contract first
        messages: Outbound transfers, applied in order after funds_in
        origin: Sender and action
        timestamp: Block time the transaction was computed at
        attributes: (key, value) pairs describing the action for callers
        intent_id: Content hash (auto-computed)
    """
    changes: Tuple[RecordChange, ...]
    funds_in: Tuple[BankSend, ...]
    messages: Tuple[OutboundMessage, ...]
    origin: TransactionOrigin
    timestamp: datetime
    attributes: Tuple[Tuple[str, str], ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.changes, self.funds_in, self.messages, self.origin
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if the transaction writes nothing and moves nothing."""
        return not self.changes and not self.funds_in and not self.messages

    def attribute(self, key: str) -> Optional[str]:
        for k, v in self.attributes:
            if k == key:
                return v
        return None

    def __repr__(self) -> str:
        return (
            f"PendingTransaction({len(self.changes)} changes, "
            f"{len(self.messages)} messages, {self.origin})"
        )


def build_transaction(
    view: LoanView,
    sender: str,
    action: str,
    changes: Optional[Sequence[RecordChange]] = None,
    messages: Optional[Sequence[OutboundMessage]] = None,
    funds_in: Optional[Sequence[Coin]] = None,
    attributes: Optional[Sequence[Tuple[str, Any]]] = None,
    origin_type: OriginType = OriginType.USER_ACTION,
) -> PendingTransaction:
    """
    Build a PendingTransaction for one contract action.

    Successive changes to the same record are merged. Attribute values are
    stringified; None values are dropped.

    Args:
        view: Read-only contract view (provides block_time and contract_address)
        sender: Address that sent the message
        action: Contract action name
        changes: Record writes
        messages: Outbound transfers in execution order
        funds_in: Coins moved from sender into the contract before messages run
        attributes: Response attributes, "action" is always prepended

    Example:
        def compute_refuse(view, info, offer_id):
            offer = view.get_stored_offer(offer_id)
            refused = replace(offer, state=OfferState.REFUSED)
            change = RecordChange(RECORD_OFFER, offer_id, offer, refused)
            return build_transaction(view, info.sender, "refuse_offer", [change])
    """
    contract = view.contract_address
    incoming = tuple(
        BankSend(sender, contract, coin) for coin in (funds_in or ()) if coin.amount > 0
    )
    attrs = [("action", action)]
    for key, value in (attributes or ()):
        if value is not None:
            attrs.append((key, str(value)))
    return PendingTransaction(
        changes=merge_changes(changes or ()),
        funds_in=incoming,
        messages=tuple(messages or ()),
        origin=TransactionOrigin(origin_type, sender, action),
        timestamp=view.block_time,
        attributes=tuple(attrs),
    )


def empty_pending_transaction(view: LoanView) -> PendingTransaction:
    """Create a PendingTransaction that does nothing."""
    return PendingTransaction(
        changes=(),
        funds_in=(),
        messages=(),
        origin=TransactionOrigin(OriginType.SYSTEM, "noop"),
        timestamp=view.block_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of contract state changes - represents FACT.

    Created by the book when executing a PendingTransaction.

    Attributes:
        changes: Record writes that were applied
        funds_in: Funds moved from the sender into the contract
        messages: Outbound transfers that were applied, in order
        origin: Sender and action
        timestamp: Block time the PendingTransaction was computed at
        intent_id: Content hash (from PendingTransaction)
        exec_id: Unique execution identifier (book + sequence + height)
        book_name: Name of the book that executed this
        block_height: Block height at execution
        sequence_number: Monotonic sequence within the book
        attributes: Response attributes
    """
    changes: Tuple[RecordChange, ...]
    funds_in: Tuple[BankSend, ...]
    messages: Tuple[OutboundMessage, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    book_name: str
    block_height: int
    sequence_number: int
    attributes: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        if not self.changes and not self.funds_in and not self.messages:
            raise ValueError("Transaction must have changes, funds or messages")

    def attribute(self, key: str) -> Optional[str]:
        for k, v in self.attributes:
            if k == key:
                return v
        return None

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   book_name      : ' + self.book_name)}│",
            f"│{pad('   block_height   : ' + str(self.block_height))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        if self.attributes:
            attrs = ", ".join(f"{k}={v}" for k, v in self.attributes)
            lines.append(f"│{pad('   attributes     : ' + attrs)}│")
        transfers = self.funds_in + self.messages
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Transfers (' + str(len(transfers)) + '):')}│")
        for i, message in enumerate(transfers):
            lines.append(f"│{pad(f'   [{i}] {message!r}')}│")
        if self.changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Record Changes (' + str(len(self.changes)) + '):')}│")
            for change in self.changes:
                lines.append(f"│{pad(f'   [{change.kind} {change.key}]')}│")
                for field_name, (old_val, new_val) in change.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)
