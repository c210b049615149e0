"""
nftloans - Peer-to-peer NFT-collateralized lending

An in-memory model of a non-custodial NFT loan contract: borrowers list
NFTs as collateral without depositing them, lenders escrow principal in
competing offers, one offer is accepted, and the loan ends by repayment or
by lender-claimed default.

Usage:
    from decimal import Decimal
    from nftloans import (
        LoanBook, LoanEngine, MessageInfo, instantiate,
        Coin, Cw721Coin, LoanTerms,
    )

    config = instantiate(MessageInfo("owner"), "nft-loans", "treasury", Decimal("0.05"))
    book = LoanBook("main", config, test_mode=True)
    book.mint_nft(Cw721Coin("nft", "58"), "alice")
    book.set_balance("bob", "luna", 1000)

    engine = LoanEngine(book)
    terms = LoanTerms(Coin("luna", 456), interest=50, duration_in_blocks=100)
    loan_id = int(engine.deposit_collateral("alice", [Cw721Coin("nft", "58")]).attribute("loan_id"))
    offer_id = engine.make_offer("bob", "alice", loan_id, terms).attribute("global_offer_id")
    engine.accept_offer("alice", offer_id)
"""

# Core types
from .core import (
    LoanView,
    Coin,
    LoanTerms,
    MessageInfo,
    Cw721Coin,
    Sg721Token,
    Cw1155Coin,
    Cw20Coin,
    NativeCoin,
    AssetInfo,
    is_nft,
    OwnerStruct,
    ContractInfo,
    BorrowerInfo,
    CollateralInfo,
    OfferInfo,
    LoanState,
    OfferState,
    BankSend,
    NftTransfer,
    FeeDeposit,
    RecordChange,
    PendingTransaction,
    Transaction,
    TransactionOrigin,
    OriginType,
    ExecuteResult,
    build_transaction,
    empty_pending_transaction,
    CONTRACT_ADDRESS,
    DEFAULT_QUERY_LIMIT,
    MAX_QUERY_LIMIT,
    FEE_TYPE_FUNDS,
    # Exceptions
    LoanError,
    TransactionRejected,
    Unauthorized,
    SenderNotOwner,
    StateGuardViolation,
    WrongLoanState,
    WrongOfferState,
    NotModifiable,
    NotCounterable,
    NotAcceptable,
    NotWithdrawable,
    NotRefusable,
    LoanAlreadyDefaulted,
    NoFundsToWithdraw,
    CantChangeOfferState,
    MalformedPayment,
    MultipleCoins,
    FundsDontMatchTerms,
    InsufficientRepayment,
    RecordNotFound,
    LoanNotFound,
    OfferNotFound,
    BorrowerNotFound,
    StructuralViolation,
    NoAssets,
    AssetNotInLoan,
    WrongAssetDeposited,
    UnrecognizedAsset,
    NoTermsSpecified,
    InvalidConfig,
    InvalidFeeRate,
    InvalidName,
)

# Collaborators
from .collaborators import (
    AssetOwnershipOracle,
    AssetTransferSink,
    FeeDistributionSink,
    BankTransferSink,
    Bank,
    NftRegistry,
    FeeDistributor,
    InsufficientFunds,
    AssetTransferFailed,
)

# Store
from .book import LoanBook

# Guards and derived state
from .collateral import (
    is_loan_modifiable,
    is_loan_counterable,
    is_loan_acceptable,
    is_collateral_withdrawable,
    is_loan_defaulted,
    can_repay_loan,
)
from .offers import (
    OfferIndex,
    effective_offer_state,
    is_offer_refusable,
)
from .escrow import validate_offer_funds, release_escrow, escrow_totals

# Operations
from .lifecycle import (
    compute_deposit_collateral,
    compute_modify_collateral,
    compute_withdraw_collateral,
    compute_make_offer,
    compute_accept_loan,
    compute_accept_offer,
    compute_cancel_offer,
    compute_refuse_offer,
    compute_withdraw_refused_offer,
)
from .settlement import (
    calculate_lender_payback,
    calculate_treasury_cut,
    compute_repay_borrowed_funds,
    compute_withdraw_defaulted_loan,
)
from .admin import (
    instantiate,
    validate_fee_rate,
    compute_set_owner,
    compute_claim_ownership,
    compute_set_fee_distributor,
    compute_set_fee_rate,
)

# Queries
from .query import (
    query_contract_info,
    query_borrower_info,
    query_collateral_info,
    query_collaterals,
    query_all_collaterals,
    query_offer_info,
    query_offers,
    query_lender_offers,
    CollateralResponse,
    MultipleCollateralsResponse,
    MultipleCollateralsAllResponse,
    OfferResponse,
    MultipleOffersResponse,
)

# Engine
from .engine import LoanEngine, transact

__all__ = [
    'LoanView', 'Coin', 'LoanTerms', 'MessageInfo',
    'Cw721Coin', 'Sg721Token', 'Cw1155Coin', 'Cw20Coin', 'NativeCoin', 'AssetInfo', 'is_nft',
    'OwnerStruct', 'ContractInfo', 'BorrowerInfo', 'CollateralInfo', 'OfferInfo',
    'LoanState', 'OfferState',
    'BankSend', 'NftTransfer', 'FeeDeposit',
    'RecordChange', 'PendingTransaction', 'Transaction', 'TransactionOrigin', 'OriginType',
    'ExecuteResult', 'build_transaction', 'empty_pending_transaction',
    'CONTRACT_ADDRESS', 'DEFAULT_QUERY_LIMIT', 'MAX_QUERY_LIMIT', 'FEE_TYPE_FUNDS',
    'LoanError', 'TransactionRejected', 'Unauthorized', 'SenderNotOwner',
    'StateGuardViolation', 'WrongLoanState', 'WrongOfferState', 'NotModifiable',
    'NotCounterable', 'NotAcceptable', 'NotWithdrawable', 'NotRefusable',
    'LoanAlreadyDefaulted', 'NoFundsToWithdraw', 'CantChangeOfferState',
    'MalformedPayment', 'MultipleCoins', 'FundsDontMatchTerms', 'InsufficientRepayment',
    'RecordNotFound', 'LoanNotFound', 'OfferNotFound', 'BorrowerNotFound',
    'StructuralViolation', 'NoAssets', 'AssetNotInLoan', 'WrongAssetDeposited',
    'UnrecognizedAsset', 'NoTermsSpecified',
    'InvalidConfig', 'InvalidFeeRate', 'InvalidName',
    'AssetOwnershipOracle', 'AssetTransferSink', 'FeeDistributionSink', 'BankTransferSink',
    'Bank', 'NftRegistry', 'FeeDistributor', 'InsufficientFunds', 'AssetTransferFailed',
    'LoanBook',
    'is_loan_modifiable', 'is_loan_counterable', 'is_loan_acceptable',
    'is_collateral_withdrawable', 'is_loan_defaulted', 'can_repay_loan',
    'OfferIndex', 'effective_offer_state', 'is_offer_refusable',
    'validate_offer_funds', 'release_escrow', 'escrow_totals',
    'compute_deposit_collateral', 'compute_modify_collateral', 'compute_withdraw_collateral',
    'compute_make_offer', 'compute_accept_loan', 'compute_accept_offer',
    'compute_cancel_offer', 'compute_refuse_offer', 'compute_withdraw_refused_offer',
    'calculate_lender_payback', 'calculate_treasury_cut',
    'compute_repay_borrowed_funds', 'compute_withdraw_defaulted_loan',
    'instantiate', 'validate_fee_rate', 'compute_set_owner', 'compute_claim_ownership',
    'compute_set_fee_distributor', 'compute_set_fee_rate',
    'query_contract_info', 'query_borrower_info', 'query_collateral_info',
    'query_collaterals', 'query_all_collaterals', 'query_offer_info',
    'query_offers', 'query_lender_offers',
    'CollateralResponse', 'MultipleCollateralsResponse', 'MultipleCollateralsAllResponse',
    'OfferResponse', 'MultipleOffersResponse',
    'LoanEngine', 'transact',
]
