from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import TransferCheckedParams, get_associated_token_address, transfer_checked

from relayer.core.structures.structures import FeeBreakdown, GasEstimate, TransferIntent


@dataclass(frozen=True)
class SponsoredTransfer:
    """
    Trusted parameters of a sponsored stable-token transfer.

    Everything the message commits to comes from here; nothing is taken
    from a client-supplied transaction.
    """
    sender: Pubkey
    recipient: Pubkey
    mint: Pubkey
    decimals: int
    amount: int
    fee_payer: Pubkey
    sponsor_fee: int
    compute_unit_limit: int
    compute_unit_price: int
    treasury: Optional[Pubkey] = None
    treasury_fee: int = 0


def token_account(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return get_associated_token_address(owner, mint)


def _transfer(source_owner: Pubkey, dest_owner: Pubkey, transfer: SponsoredTransfer, amount: int) -> Instruction:
    return transfer_checked(
        TransferCheckedParams(
            program_id=TOKEN_PROGRAM_ID,
            source=token_account(source_owner, transfer.mint),
            mint=transfer.mint,
            dest=token_account(dest_owner, transfer.mint),
            owner=source_owner,
            amount=amount,
            decimals=transfer.decimals,
        )
    )


def build_instructions(transfer: SponsoredTransfer) -> List[Instruction]:
    """
    Compute budget, principal transfer, sponsor fee, then the optional treasury cut.

    Zero-value fee legs are omitted.
    """
    instructions: List[Instruction] = [
        set_compute_unit_limit(transfer.compute_unit_limit),
        set_compute_unit_price(transfer.compute_unit_price),
        _transfer(transfer.sender, transfer.recipient, transfer, transfer.amount),
    ]
    if transfer.sponsor_fee > 0:
        instructions.append(_transfer(transfer.sender, transfer.fee_payer, transfer, transfer.sponsor_fee))
    if transfer.treasury is not None and transfer.treasury_fee > 0:
        instructions.append(_transfer(transfer.sender, transfer.treasury, transfer, transfer.treasury_fee))
    return instructions


def build_message(transfer: SponsoredTransfer, blockhash: Hash) -> Message:
    """Canonical message: fee payer first, sender as the only other signer."""
    return Message.new_with_blockhash(build_instructions(transfer), transfer.fee_payer, blockhash)


def sponsored_transfer(
        intent: TransferIntent,
        fee: FeeBreakdown,
        gas: GasEstimate,
        fee_payer: Pubkey,
        decimals: int,
        treasury: Optional[Pubkey] = None,
) -> SponsoredTransfer:
    """Trusted transfer parameters for an intent priced by the server."""
    return SponsoredTransfer(
        sender=Pubkey.from_string(intent.sender),
        recipient=Pubkey.from_string(intent.recipient),
        mint=Pubkey.from_string(intent.coin),
        decimals=decimals,
        amount=intent.amount,
        fee_payer=fee_payer,
        sponsor_fee=fee.sponsor_fee,
        compute_unit_limit=gas.units,
        compute_unit_price=gas.unit_price,
        treasury=treasury if fee.treasury_fee > 0 else None,
        treasury_fee=fee.treasury_fee,
    )
