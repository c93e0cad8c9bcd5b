from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from relayer.configuration.config import settings
from relayer.core.errors import SubmissionFailed, UpstreamUnavailable
from relayer.core.structures.structures import TransactionStatus
from relayer.logging.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")

_LANDED = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)


@dataclass(frozen=True)
class SolanaChainConfig:
    rpc_url: str
    timeout_seconds: float


@dataclass(frozen=True)
class SimulationOutcome:
    units_consumed: Optional[int]
    error: Optional[str]


@dataclass(frozen=True)
class ChainTransactionState:
    """Chain view of one signature; PENDING means not yet confirmed (or unknown)."""
    status: TransactionStatus
    error: Optional[str] = None
    gas_used: Optional[int] = None


class SolanaChain:
    """
    Async JSON-RPC adapter used by every component that touches the chain.

    Each call is bounded by the configured timeout. Transport failures and RPC
    errors become UpstreamUnavailable, except a rejected broadcast which becomes
    SubmissionFailed carrying the node's message.
    """

    def __init__(self, config: SolanaChainConfig, client: Optional[AsyncClient] = None) -> None:
        self.config = config
        self.client = client or AsyncClient(config.rpc_url, commitment=Confirmed, timeout=config.timeout_seconds)
        log.info("[SOLANA][CHAIN] RPC client ready. url=%s", config.rpc_url)

    async def _call(self, label: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as exc:
            log.warning("[SOLANA][RPC][TIMEOUT] %s exceeded %.1fs", label, self.config.timeout_seconds)
            raise UpstreamUnavailable(f"Solana RPC timed out during {label}") from exc
        except Exception as exc:
            log.warning("[SOLANA][RPC][ERROR] %s failed: %s", label, exc)
            raise UpstreamUnavailable(f"Solana RPC unavailable during {label}") from exc

    async def get_native_balance(self, owner: Pubkey) -> int:
        """Lamports held by an account."""
        response = await self._call("get_balance", self.client.get_balance(owner))
        return int(response.value)

    async def account_exists(self, address: Pubkey) -> bool:
        response = await self._call("get_account_info", self.client.get_account_info(address))
        return response.value is not None

    async def get_token_balance(self, token_account: Pubkey) -> int:
        """Base units in an SPL token account; a missing account holds zero."""
        if not await self.account_exists(token_account):
            return 0
        response = await self._call("get_token_account_balance", self.client.get_token_account_balance(token_account))
        return int(response.value.amount)

    async def get_latest_blockhash(self) -> Hash:
        response = await self._call("get_latest_blockhash", self.client.get_latest_blockhash())
        return response.value.blockhash

    async def simulate(self, message: Message) -> SimulationOutcome:
        """Simulate an unsigned transaction (signature verification disabled)."""
        transaction = Transaction.new_unsigned(message)
        response = await self._call(
            "simulate_transaction",
            self.client.simulate_transaction(transaction, sig_verify=False),
        )
        value = response.value
        error = str(value.err) if value.err is not None else None
        return SimulationOutcome(units_consumed=value.units_consumed, error=error)

    async def send_transaction(self, transaction: Transaction) -> str:
        """Broadcast a fully signed transaction and return its base58 signature."""
        payload = bytes(transaction)
        try:
            response = await asyncio.wait_for(
                self.client.send_raw_transaction(
                    payload,
                    opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed, max_retries=5),
                ),
                timeout=self.config.timeout_seconds,
            )
        except RPCException as exc:
            chain_status = str(exc.args[0]) if exc.args else str(exc)
            log.warning("[SOLANA][SEND][REJECTED] %s", chain_status)
            raise SubmissionFailed("Transaction rejected by the network", chain_status=chain_status) from exc
        except asyncio.TimeoutError as exc:
            log.warning("[SOLANA][SEND][TIMEOUT] broadcast exceeded %.1fs", self.config.timeout_seconds)
            raise UpstreamUnavailable("Solana RPC timed out during send_transaction") from exc
        except Exception as exc:
            log.warning("[SOLANA][SEND][ERROR] %s", exc)
            raise UpstreamUnavailable("Solana RPC unavailable during send_transaction") from exc

        signature = str(response.value)
        log.info("[SOLANA][SEND] Broadcasted signature %s (bytes=%d)", signature, len(payload))
        return signature

    async def get_transaction_state(self, signature: str) -> ChainTransactionState:
        """Current chain status of a signature; gas used is read once the transaction landed."""
        sig = Signature.from_string(signature)
        response = await self._call(
            "get_signature_statuses",
            self.client.get_signature_statuses([sig], search_transaction_history=True),
        )
        entry: Any = response.value[0] if response.value else None
        if entry is None:
            return ChainTransactionState(status=TransactionStatus.PENDING)
        if entry.err is not None:
            return ChainTransactionState(
                status=TransactionStatus.FAILED,
                error=str(entry.err),
                gas_used=await self._compute_units_consumed(sig),
            )
        if entry.confirmation_status in _LANDED:
            return ChainTransactionState(
                status=TransactionStatus.SUCCESS,
                gas_used=await self._compute_units_consumed(sig),
            )
        return ChainTransactionState(status=TransactionStatus.PENDING)

    async def _compute_units_consumed(self, sig: Signature) -> Optional[int]:
        try:
            response = await self._call(
                "get_transaction",
                self.client.get_transaction(sig, max_supported_transaction_version=0),
            )
        except UpstreamUnavailable:
            return None
        if response.value is None or response.value.transaction.meta is None:
            return None
        return response.value.transaction.meta.compute_units_consumed

    async def close(self) -> None:
        await self.client.close()


def build_default_solana_chain() -> SolanaChain:
    """Factory using Settings for convenience."""
    config = SolanaChainConfig(
        rpc_url=settings.SOLANA_RPC_URL,
        timeout_seconds=settings.CHAIN_RPC_TIMEOUT_SECONDS,
    )
    return SolanaChain(config)
