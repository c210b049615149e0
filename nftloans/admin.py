"""
admin.py - Contract configuration and owner-only operations

The configuration (ContractInfo) is created once by instantiate() and then
changed only by its owner. Ownership moves in two phases: the owner
proposes a new owner, and the proposed address claims it.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .core import (
    ContractInfo, LoanView, MessageInfo, OriginType, OwnerStruct,
    PendingTransaction, RecordChange, build_transaction,
    RECORD_CONFIG, CONFIG_KEY, MIN_NAME_LENGTH, MAX_NAME_LENGTH,
    InvalidFeeRate, InvalidName, Unauthorized,
)


def validate_name(name: str) -> str:
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        raise InvalidName(
            f"Name must be {MIN_NAME_LENGTH} to {MAX_NAME_LENGTH} characters, got {len(name)}"
        )
    return name


def validate_fee_rate(fee_rate: Union[Decimal, str, int]) -> Decimal:
    """Return fee_rate as a Decimal in [0, 1)."""
    try:
        rate = fee_rate if isinstance(fee_rate, Decimal) else Decimal(str(fee_rate))
    except InvalidOperation as err:
        raise InvalidFeeRate(f"Fee rate is not a number: {fee_rate!r}") from err
    if not rate.is_finite() or rate < 0 or rate >= 1:
        raise InvalidFeeRate(f"Fee rate must be in [0, 1), got {rate}")
    return rate


def instantiate(
    info: MessageInfo,
    name: str,
    fee_distributor: str,
    fee_rate: Union[Decimal, str, int],
    owner: Optional[str] = None,
) -> ContractInfo:
    """
    Build the initial configuration. The owner defaults to the sender.

    Example:
        config = instantiate(MessageInfo("creator"), "nft-loans", "treasury", "0.05")
    """
    return ContractInfo(
        name=validate_name(name),
        owner=OwnerStruct(owner=owner or info.sender),
        fee_distributor=fee_distributor,
        fee_rate=validate_fee_rate(fee_rate),
        global_offer_index=0,
    )


def is_owner(config: ContractInfo, sender: str) -> None:
    if sender != config.owner.owner:
        raise Unauthorized(f"{sender} is not the contract owner")


def _config_transaction(
    view: LoanView,
    info: MessageInfo,
    action: str,
    old: ContractInfo,
    new: ContractInfo,
    **attributes,
) -> PendingTransaction:
    change = RecordChange(RECORD_CONFIG, CONFIG_KEY, old, new)
    return build_transaction(
        view, info.sender, action, [change],
        attributes=list(attributes.items()),
        origin_type=OriginType.ADMIN,
    )


def compute_set_owner(view: LoanView, info: MessageInfo, new_owner: str) -> PendingTransaction:
    """Owner proposes a new owner. Nothing changes hands until it is claimed."""
    config = view.get_contract_info()
    is_owner(config, info.sender)
    proposed = replace(config, owner=replace(config.owner, new_owner=new_owner))
    return _config_transaction(view, info, "set_owner", config, proposed, proposed_owner=new_owner)


def compute_claim_ownership(view: LoanView, info: MessageInfo) -> PendingTransaction:
    """The proposed owner takes ownership."""
    config = view.get_contract_info()
    if config.owner.new_owner is None or info.sender != config.owner.new_owner:
        raise Unauthorized(f"{info.sender} is not the proposed owner")
    claimed = replace(config, owner=OwnerStruct(owner=info.sender))
    return _config_transaction(view, info, "claim_ownership", config, claimed, new_owner=info.sender)


def compute_set_fee_distributor(view: LoanView, info: MessageInfo, fee_distributor: str) -> PendingTransaction:
    config = view.get_contract_info()
    is_owner(config, info.sender)
    updated = replace(config, fee_distributor=fee_distributor)
    return _config_transaction(
        view, info, "set_fee_distributor", config, updated, fee_distributor=fee_distributor
    )


def compute_set_fee_rate(view: LoanView, info: MessageInfo, fee_rate: Union[Decimal, str, int]) -> PendingTransaction:
    config = view.get_contract_info()
    is_owner(config, info.sender)
    updated = replace(config, fee_rate=validate_fee_rate(fee_rate))
    return _config_transaction(view, info, "set_fee_rate", config, updated, fee_rate=updated.fee_rate)
