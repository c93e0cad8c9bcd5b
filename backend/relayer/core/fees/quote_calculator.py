from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from solders.pubkey import Pubkey

from relayer.core.errors import ValidationError
from relayer.core.fees.fee_policy import compute_fee, percentage_fee
from relayer.core.gas.gas_estimator import GasEstimator
from relayer.core.onchain.solana_chain import SolanaChain
from relayer.core.onchain.transfer_builder import build_message, sponsored_transfer, token_account
from relayer.core.pricing.price_oracle import PriceOracle
from relayer.core.structures.structures import FeeConfig, Quote, TransferIntent
from relayer.core.utils.date_utils import utc_now
from relayer.core.utils.format_utils import _format_units
from relayer.logging.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class QuoteCalculatorConfig:
    fee: FeeConfig
    min_sponsor_reserve_lamports: int
    quote_ttl_seconds: int


class QuoteCalculator:
    """
    Prices a sponsored transfer and produces the exact message the sender must sign.

    Declined quotes (insufficient balance, undercapitalized sponsor) are returned
    with `decline_reason` set rather than raised, so callers can show the numbers.
    """

    def __init__(
            self,
            config: QuoteCalculatorConfig,
            oracle: PriceOracle,
            estimator: GasEstimator,
            chain: SolanaChain,
            fee_payer: Pubkey,
            treasury: Optional[Pubkey] = None,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.oracle = oracle
        self.estimator = estimator
        self.chain = chain
        self.fee_payer = fee_payer
        self.treasury = treasury
        self.clock = clock

    async def quote(self, intent: TransferIntent) -> Quote:
        mint = Pubkey.from_string(intent.coin)

        if not await self.chain.account_exists(token_account(Pubkey.from_string(intent.recipient), mint)):
            raise ValidationError(
                "Recipient has no token account for this coin; it must be created before a sponsored transfer",
                reason="recipient-account-missing",
            )

        price = await self.oracle.get_price(intent.amount)
        gas = await self.estimator.estimate(intent, percentage_fee(intent.amount, self.config.fee))
        fee = compute_fee(gas, price.price, intent.amount, self.config.fee)
        log.info("[QUOTE][FEE] %s oracle=%d percentage=%d winner=%s final=%d price=%s(%s) units=%d%s",
                 intent, fee.oracle_fee, fee.percentage_fee, fee.winner, fee.final_fee,
                 price.price, price.source.value, gas.units, " degraded" if gas.degraded else "")

        decline_reason: Optional[str] = None
        sender_balance = await self.chain.get_token_balance(token_account(Pubkey.from_string(intent.sender), mint))
        if sender_balance < intent.amount + fee.final_fee:
            decline_reason = "insufficient-balance"
            log.info("[QUOTE][DECLINE] insufficient-balance balance=%s needed=%s",
                     _format_units(sender_balance, self.config.fee.decimals),
                     _format_units(intent.amount + fee.final_fee, self.config.fee.decimals))
        else:
            sponsor_balance = await self.chain.get_native_balance(self.fee_payer)
            if sponsor_balance < self.config.min_sponsor_reserve_lamports:
                decline_reason = "sponsor-undercapitalized"
                log.warning("[QUOTE][DECLINE] sponsor-undercapitalized balance=%d reserve=%d",
                            sponsor_balance, self.config.min_sponsor_reserve_lamports)

        blockhash = await self.chain.get_latest_blockhash()
        transfer = sponsored_transfer(intent, fee, gas, self.fee_payer, self.config.fee.decimals, self.treasury)
        message = build_message(transfer, blockhash)

        issued_at = self.clock()
        return Quote(
            quote_id=str(uuid.uuid4()),
            intent=intent,
            gas=gas,
            fee=fee,
            price=price,
            blockhash=str(blockhash),
            message_bytes=bytes(message),
            fee_payer=str(self.fee_payer),
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=self.config.quote_ttl_seconds),
            decline_reason=decline_reason,
        )
