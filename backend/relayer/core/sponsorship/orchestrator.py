from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from relayer.configuration.config import settings
from relayer.core.errors import (
    InsufficientBalance,
    RelayerError,
    SafetyLimitExceeded,
    SignatureInvalid,
    SponsorUndercapitalized,
    SubmissionFailed,
    UpstreamUnavailable,
    ValidationError,
)
from relayer.core.fees.fee_policy import build_default_fee_config, compute_fee
from relayer.core.fees.quote_book import QuoteBook
from relayer.core.fees.quote_calculator import QuoteCalculator, QuoteCalculatorConfig
from relayer.core.gas.gas_estimator import build_default_gas_estimator
from relayer.core.gates.safety_monitor import SafetyMonitor, build_default_safety_monitor
from relayer.core.onchain.solana_chain import ChainTransactionState, SolanaChain, build_default_solana_chain
from relayer.core.onchain.sponsorship_assembler import SponsorshipAssembler, build_default_sponsorship_assembler
from relayer.core.pricing.price_oracle import PriceOracle, build_default_price_oracle
from relayer.core.structures.structures import (
    FeeConfig,
    Quote,
    Reservation,
    SponsorshipOutcome,
    SponsorshipRequest,
    TransactionStatus,
    TransferIntent,
)
from relayer.core.utils.date_utils import utc_day, utc_now
from relayer.core.validation import validate_intent
from relayer.logging.logger import get_logger
from relayer.persistence.ledger import PendingTransaction, TransactionLedger, build_default_ledger

log = get_logger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
    fee: FeeConfig
    coin: str
    min_sponsor_reserve_lamports: int
    pending_hold_margin_seconds: int = 90


@dataclass(frozen=True)
class HeldSubmission:
    """Reservation of a broadcast transaction whose outcome was unknown when its request returned."""
    transaction_id: str
    reservation: Reservation
    expires_at: datetime


class SponsorshipOrchestrator:
    """
    Runs the quote → submit → status workflow for sponsored transfers.

    Per submission, strictly in this order:
      validate → claim server quote → recompute fee → sponsor reserve →
      rebuild + verify + co-sign → safety admission (reservation) →
      ledger pending with hash → broadcast → confirm → ledger terminal → record or release.

    Anything failing before admission hands the quote back to the book.
    """

    def __init__(
            self,
            config: OrchestratorConfig,
            chain: SolanaChain,
            oracle: PriceOracle,
            calculator: QuoteCalculator,
            assembler: SponsorshipAssembler,
            safety: SafetyMonitor,
            quote_book: Optional[QuoteBook] = None,
            ledger: Optional[TransactionLedger] = None,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.chain = chain
        self.oracle = oracle
        self.calculator = calculator
        self.assembler = assembler
        self.safety = safety
        self.quote_book = quote_book or QuoteBook()
        self.ledger = ledger
        self.clock = clock
        self._held: Dict[str, HeldSubmission] = {}

    @property
    def sponsor_address(self) -> str:
        return self.assembler.address

    def validate(self, sender: object, recipient: object, amount: object, coin: object) -> TransferIntent:
        return validate_intent(sender, recipient, amount, coin, self.config.coin, self.sponsor_address)

    # -------- Quote -------- #

    async def quote(self, intent: TransferIntent) -> Quote:
        quote = await self.calculator.quote(intent)
        if quote.decline_reason == "insufficient-balance":
            raise InsufficientBalance(
                "Sender balance does not cover amount plus fee",
                amount=intent.amount,
                fee=quote.fee.final_fee,
            )
        if quote.decline_reason == "sponsor-undercapitalized":
            raise SponsorUndercapitalized("Sponsor is temporarily unable to pay network fees")
        self.quote_book.put(quote)
        return quote

    # -------- Submit -------- #

    async def _ensure_sponsor_reserve(self) -> None:
        balance = await self.chain.get_native_balance(self.assembler.fee_payer)
        if balance < self.config.min_sponsor_reserve_lamports:
            log.warning("[SPONSOR][RESERVE] balance=%d below reserve=%d",
                        balance, self.config.min_sponsor_reserve_lamports)
            raise SponsorUndercapitalized("Sponsor is temporarily unable to pay network fees")

    async def _admit(self, intent: TransferIntent) -> Reservation:
        admission = self.safety.admit(intent.sender, intent.amount)
        if not admission.allowed and admission.limit != "single-transaction" and self._held:
            await self.reconcile_held()
            admission = self.safety.admit(intent.sender, intent.amount)
        if not admission.allowed:
            raise SafetyLimitExceeded(
                f"Safety limit {admission.limit} exceeded",
                limit=admission.limit,
                usage=admission.usage,
                cap=admission.cap,
            )
        return admission.reservation

    async def _fail(
            self,
            transaction_id: str,
            reservation: Reservation,
            error: str,
            gas_used: Optional[int] = None,
    ) -> None:
        self.safety.release(reservation)
        if self.ledger is not None:
            await self.ledger.mark_terminal(transaction_id, TransactionStatus.FAILED, error, gas_used)

    async def submit(self, request: SponsorshipRequest) -> SponsorshipOutcome:
        intent = request.intent
        if not request.signature.signature or not request.signature.public_key:
            raise SignatureInvalid("Both signature bytes and public key are required")

        quote = self.quote_book.claim(intent, request.quote_id)
        try:
            fee = compute_fee(quote.gas, quote.price.price, intent.amount, self.config.fee)
            if request.client_fee is not None and request.client_fee != fee.final_fee:
                log.warning("[SUBMIT][FEE] client fee %d ignored; server fee %d", request.client_fee, fee.final_fee)

            await self._ensure_sponsor_reserve()
            transaction = self.assembler.assemble(request, quote, fee)
            reservation = await self._admit(intent)
        except Exception:
            self.quote_book.restore(quote)
            raise

        transaction_id = str(uuid.uuid4())
        tx_hash = transaction.hash
        if self.ledger is not None:
            await self.ledger.create_pending(PendingTransaction(transaction_id, intent, quote.gas, fee))
            await self.ledger.mark_submitted(transaction_id, tx_hash)

        try:
            await self.assembler.broadcast(transaction)
        except UpstreamUnavailable as exc:
            # outcome unknown: the node may already hold the transaction
            log.warning("[SUBMIT][BROADCAST] %s hash=%s outcome unknown: %s", intent, tx_hash, exc.message)
        except RelayerError as exc:
            await self._fail(transaction_id, reservation, f"{exc.reason}: {exc.message}")
            raise
        except Exception as exc:
            await self._fail(transaction_id, reservation, f"internal-error: {exc}")
            raise

        result = await self.assembler.await_confirmation(tx_hash)

        if result.status is TransactionStatus.SUCCESS:
            if self.ledger is not None:
                await self.ledger.mark_terminal(transaction_id, TransactionStatus.SUCCESS, gas_used=result.gas_used)
            self.safety.record(reservation)
            log.info("[SUBMIT][SUCCESS] %s hash=%s fee=%d", intent, tx_hash, fee.final_fee)
        elif result.status is TransactionStatus.FAILED:
            await self._fail(transaction_id, reservation, result.error or "transaction failed", result.gas_used)
            raise SubmissionFailed(
                "Transaction failed on-chain",
                chain_status=result.error or "failed",
                hash=tx_hash,
                transactionId=transaction_id,
            )
        else:
            expires_at = quote.expires_at + timedelta(seconds=self.config.pending_hold_margin_seconds)
            self._held[tx_hash] = HeldSubmission(transaction_id, reservation, expires_at)
            log.info("[SUBMIT][PENDING] %s hash=%s held until %s", intent, tx_hash, expires_at.isoformat())

        return SponsorshipOutcome(
            transaction_id=transaction_id,
            hash=tx_hash,
            status=result.status,
            fee=fee.final_fee,
            gas_used=result.gas_used,
            error=result.error,
        )

    # -------- Pending reconciliation -------- #

    async def reconcile_held(self) -> None:
        """
        Settle reservations of submissions that were still pending when their request returned.

        A terminal chain state records or releases the reservation. Past the hold
        deadline the blockhash can no longer land, so the submission is failed. Entries
        from an earlier UTC day are dropped: that day's counters are already gone.
        """
        now = self.clock()
        today = utc_day(now)
        for tx_hash, held in list(self._held.items()):
            try:
                state: Optional[ChainTransactionState] = await self.chain.get_transaction_state(tx_hash)
            except UpstreamUnavailable:
                state = None

            if state is not None and state.status is not TransactionStatus.PENDING:
                await self._settle(tx_hash, held.transaction_id, state.status, state.error, state.gas_used)
            elif now >= held.expires_at:
                log.info("[SUBMIT][EXPIRED] hash=%s never confirmed before %s", tx_hash, held.expires_at.isoformat())
                await self._settle(tx_hash, held.transaction_id, TransactionStatus.FAILED,
                                   "blockhash expired before confirmation", None)
            elif held.reservation.day != today:
                self._held.pop(tx_hash, None)

    async def reconcile_forever(self, interval_seconds: float) -> None:
        log.info("[SUBMIT][RECONCILE] Pending reconciliation loop starting (interval=%ss)", interval_seconds)
        while True:
            await asyncio.sleep(interval_seconds)
            if not self._held:
                continue
            try:
                await self.reconcile_held()
            except Exception as exc:
                log.exception("[SUBMIT][RECONCILE] loop error: %s", exc)

    # -------- Status -------- #

    async def status(self, tx_hash: str) -> Dict[str, Any]:
        """
        Terminal ledger state is returned as stored; otherwise the chain decides,
        and a newly terminal state is persisted and settles any held reservation.
        """
        record = None
        if self.ledger is not None:
            found = await self.ledger.find_by_hash(tx_hash)
            record = found.value if found.ok else None
            if record is not None and record["status"] != TransactionStatus.PENDING.value:
                return {
                    "hash": tx_hash,
                    "status": record["status"],
                    "gasUsed": record["gasUsed"],
                    "errorMessage": record["errorMessage"],
                }

        try:
            state = await self.chain.get_transaction_state(tx_hash)
        except ValueError as exc:
            raise ValidationError("Not a valid transaction hash") from exc

        if state.status is not TransactionStatus.PENDING:
            await self._settle(tx_hash, record["id"] if record is not None else None, state.status,
                               state.error, state.gas_used)

        return {
            "hash": tx_hash,
            "status": state.status.value,
            "gasUsed": state.gas_used,
            "errorMessage": state.error,
        }

    async def _settle(
            self,
            tx_hash: str,
            transaction_id: Optional[str],
            status: TransactionStatus,
            error: Optional[str],
            gas_used: Optional[int],
    ) -> None:
        held = self._held.pop(tx_hash, None)
        transaction_id = transaction_id or (held.transaction_id if held is not None else None)
        if self.ledger is not None and transaction_id is not None:
            await self.ledger.mark_terminal(transaction_id, status, error, gas_used)
        if held is None:
            return
        if status is TransactionStatus.SUCCESS:
            self.safety.record(held.reservation)
        else:
            self.safety.release(held.reservation)

    # -------- Health / stats -------- #

    async def health(self) -> Dict[str, Any]:
        sample = await self.oracle.get_price()
        try:
            balance: Optional[int] = await self.chain.get_native_balance(self.assembler.fee_payer)
        except UpstreamUnavailable:
            balance = None
        if balance is None:
            status = "degraded"
        elif balance < self.config.min_sponsor_reserve_lamports:
            status = "undercapitalized"
        else:
            status = "ok"
        return {
            "status": status,
            "sponsorAddress": self.sponsor_address,
            "sponsorBalance": balance,
            "price": str(sample.price),
            "priceSource": sample.source.value,
        }

    def safety_stats(self) -> Dict[str, object]:
        return self.safety.stats()

    async def stats(self) -> Dict[str, Any]:
        if self.ledger is None:
            return {"ledger": "disabled"}
        result = await self.ledger.stats()
        if not result.ok:
            return {"ledger": "unavailable"}
        return {"ledger": "ok", **result.value}

    async def close(self) -> None:
        await self.oracle.close()
        await self.chain.close()


def build_default_orchestrator() -> SponsorshipOrchestrator:
    """Wire every component from Settings."""
    chain = build_default_solana_chain()
    assembler = build_default_sponsorship_assembler(chain)
    oracle = build_default_price_oracle()
    estimator = build_default_gas_estimator(chain, assembler.fee_payer, assembler.treasury)
    fee_config = build_default_fee_config()
    calculator = QuoteCalculator(
        QuoteCalculatorConfig(
            fee=fee_config,
            min_sponsor_reserve_lamports=settings.MIN_SPONSOR_RESERVE_LAMPORTS,
            quote_ttl_seconds=settings.QUOTE_TTL_SECONDS,
        ),
        oracle,
        estimator,
        chain,
        assembler.fee_payer,
        assembler.treasury,
    )
    config = OrchestratorConfig(
        fee=fee_config,
        coin=settings.STABLE_TOKEN_MINT,
        min_sponsor_reserve_lamports=settings.MIN_SPONSOR_RESERVE_LAMPORTS,
        pending_hold_margin_seconds=settings.PENDING_HOLD_MARGIN_SECONDS,
    )
    return SponsorshipOrchestrator(
        config,
        chain,
        oracle,
        calculator,
        assembler,
        build_default_safety_monitor(),
        QuoteBook(),
        build_default_ledger(),
    )
