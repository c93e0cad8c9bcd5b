from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import base58
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from relayer.configuration.config import settings
from relayer.core.errors import SignatureInvalid, UpstreamUnavailable
from relayer.core.onchain.solana_chain import SolanaChain
from relayer.core.onchain.transfer_builder import build_message, sponsored_transfer
from relayer.core.signing import signature_verifier
from relayer.core.structures.structures import (
    FeeBreakdown,
    Quote,
    SenderAuthenticator,
    SponsorshipRequest,
    SubmissionResult,
    TransactionStatus,
)
from relayer.logging.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class SponsorshipAssemblerConfig:
    secret_key_base58: str
    decimals: int
    treasury_address: str
    confirmation_max_attempts: int
    confirmation_backoff_seconds: float


class FeePayerTransaction:
    """
    A rebuilt message with exactly two authorization slots: the sender's and the fee payer's.

    Only SponsorshipAssembler creates these.
    """

    __slots__ = ("message", "sender", "fee_payer")

    def __init__(self, message: Message, sender: SenderAuthenticator, fee_payer: SenderAuthenticator) -> None:
        self.message = message
        self.sender = sender
        self.fee_payer = fee_payer

    @property
    def hash(self) -> str:
        """Transaction id: the fee payer signs first, so its signature names the transaction."""
        return str(self.fee_payer.signature)

    def to_transaction(self) -> Transaction:
        """Place each signature in the slot of its key, in the message's signer order."""
        by_key: Dict[Pubkey, Signature] = {
            self.sender.public_key: self.sender.signature,
            self.fee_payer.public_key: self.fee_payer.signature,
        }
        signer_count = self.message.header.num_required_signatures
        signers = list(self.message.account_keys)[:signer_count]
        if set(signers) != set(by_key):
            raise SignatureInvalid("Message signers do not match the sender and fee payer")
        return Transaction.populate(self.message, [by_key[key] for key in signers])


class SponsorshipAssembler:
    """
    Rebuilds the quoted transfer from trusted parameters, attaches both
    authorizations and drives it to a terminal (or bounded pending) state.
    """

    def __init__(
            self,
            config: SponsorshipAssemblerConfig,
            chain: SolanaChain,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not config.secret_key_base58:
            raise ValueError("Sponsorship requires the sponsor's base58 secret key (SPONSOR_SECRET_KEY_BASE58).")

        self.config = config
        self.chain = chain
        self.sleep = sleep
        self.keypair = Keypair.from_bytes(base58.b58decode(config.secret_key_base58))
        self.treasury: Optional[Pubkey] = (
            Pubkey.from_string(config.treasury_address.strip()) if config.treasury_address.strip() else None
        )
        log.info("[SPONSOR][ASSEMBLER] Initialized. fee_payer=%s treasury=%s",
                 self.keypair.pubkey(), self.treasury or "none")

    @property
    def fee_payer(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    def canonical_message(self, request: SponsorshipRequest, quote: Quote, fee: FeeBreakdown) -> Message:
        transfer = sponsored_transfer(request.intent, fee, quote.gas, self.fee_payer, self.config.decimals, self.treasury)
        return build_message(transfer, Hash.from_string(quote.blockhash))

    def assemble(self, request: SponsorshipRequest, quote: Quote, fee: FeeBreakdown) -> FeePayerTransaction:
        """
        Raises:
            SignatureInvalid / AddressMismatch when the sender's signature does not
            cover the rebuilt message.
        """
        message = self.canonical_message(request, quote, fee)
        message_bytes = bytes(message)
        sender = signature_verifier.verify(
            request.signature.signature,
            request.signature.public_key,
            message_bytes,
            request.intent.sender,
        )
        fee_payer = SenderAuthenticator(public_key=self.fee_payer, signature=self.keypair.sign_message(message_bytes))
        log.debug("[SPONSOR][ASSEMBLE] %s fee=%d", request.intent, fee.final_fee)
        return FeePayerTransaction(message, sender, fee_payer)

    async def broadcast(self, transaction: FeePayerTransaction) -> str:
        return await self.chain.send_transaction(transaction.to_transaction())

    async def await_confirmation(self, tx_hash: str) -> SubmissionResult:
        """
        Poll with exponential backoff for a bounded number of attempts.
        Returns PENDING when the transaction has not landed by then.
        """
        delay = self.config.confirmation_backoff_seconds
        for attempt in range(1, self.config.confirmation_max_attempts + 1):
            try:
                state = await self.chain.get_transaction_state(tx_hash)
            except UpstreamUnavailable:
                log.debug("[SPONSOR][CONFIRM] attempt=%d status lookup unavailable", attempt)
            else:
                if state.status is not TransactionStatus.PENDING:
                    log.info("[SPONSOR][CONFIRM] hash=%s status=%s gas_used=%s attempt=%d",
                             tx_hash, state.status.value, state.gas_used, attempt)
                    return SubmissionResult(hash=tx_hash, status=state.status, gas_used=state.gas_used,
                                            error=state.error)
            if attempt < self.config.confirmation_max_attempts:
                await self.sleep(delay)
                delay *= 2

        log.warning("[SPONSOR][CONFIRM] hash=%s still pending after %d attempts",
                    tx_hash, self.config.confirmation_max_attempts)
        return SubmissionResult(hash=tx_hash, status=TransactionStatus.PENDING)


def build_default_sponsorship_assembler(chain: SolanaChain) -> SponsorshipAssembler:
    """Factory using Settings for convenience."""
    config = SponsorshipAssemblerConfig(
        secret_key_base58=settings.SPONSOR_SECRET_KEY_BASE58,
        decimals=settings.STABLE_TOKEN_DECIMALS,
        treasury_address=settings.TREASURY_ADDRESS,
        confirmation_max_attempts=settings.CONFIRMATION_MAX_ATTEMPTS,
        confirmation_backoff_seconds=settings.CONFIRMATION_BACKOFF_SECONDS,
    )
    return SponsorshipAssembler(config, chain)
