from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from solders.pubkey import Pubkey

from relayer.configuration.config import settings
from relayer.core.errors import UpstreamUnavailable
from relayer.core.onchain.solana_chain import SolanaChain
from relayer.core.onchain.transfer_builder import SponsoredTransfer, build_message
from relayer.core.structures.structures import GasEstimate, TransferIntent
from relayer.core.utils.amount_utils import _dec, ceil_int
from relayer.logging.logger import get_logger

log = get_logger(__name__)

SIGNATURES_PER_SPONSORED_TRANSFER = 2


@dataclass(frozen=True)
class GasEstimatorConfig:
    buffer_percent: Decimal
    unit_price_micro_lamports: int
    lamports_per_signature: int
    simulation_unit_limit: int
    fallback_units: int
    decimals: int


class GasEstimator:
    """Simulates the sponsored transfer and turns consumed compute units into a buffered budget."""

    def __init__(
            self,
            config: GasEstimatorConfig,
            chain: SolanaChain,
            fee_payer: Pubkey,
            treasury: Optional[Pubkey] = None,
    ) -> None:
        self.config = config
        self.chain = chain
        self.fee_payer = fee_payer
        self.treasury = treasury

    @property
    def signature_fee(self) -> int:
        return self.config.lamports_per_signature * SIGNATURES_PER_SPONSORED_TRANSFER

    def _buffered(self, units: int) -> int:
        return ceil_int(Decimal(units) * (Decimal(1) + self.config.buffer_percent / Decimal(100)))

    def fallback(self, reason: str) -> GasEstimate:
        log.warning("[GAS][FALLBACK] %s; using fallback units=%d", reason, self.config.fallback_units)
        return GasEstimate(
            units=self.config.fallback_units,
            unit_price=self.config.unit_price_micro_lamports,
            signature_fee=self.signature_fee,
            degraded=True,
        )

    async def estimate(self, intent: TransferIntent, provisional_fee: int) -> GasEstimate:
        """
        Simulate with the provisional fee (all of it on the sponsor leg, so the
        instruction count matches the final transaction) and buffer the result.
        """
        transfer = SponsoredTransfer(
            sender=Pubkey.from_string(intent.sender),
            recipient=Pubkey.from_string(intent.recipient),
            mint=Pubkey.from_string(intent.coin),
            decimals=self.config.decimals,
            amount=intent.amount,
            fee_payer=self.fee_payer,
            sponsor_fee=provisional_fee,
            compute_unit_limit=self.config.simulation_unit_limit,
            compute_unit_price=self.config.unit_price_micro_lamports,
            treasury=self.treasury,
            treasury_fee=1 if self.treasury is not None else 0,
        )
        try:
            blockhash = await self.chain.get_latest_blockhash()
            outcome = await self.chain.simulate(build_message(transfer, blockhash))
        except UpstreamUnavailable as exc:
            return self.fallback(f"simulation unavailable ({exc.message})")

        if outcome.error is not None:
            return self.fallback(f"simulation error {outcome.error}")
        if not outcome.units_consumed:
            return self.fallback("simulation reported no consumed units")

        units = self._buffered(outcome.units_consumed)
        log.debug("[GAS][ESTIMATE] simulated=%d buffered=%d price=%d µlamports/CU",
                  outcome.units_consumed, units, self.config.unit_price_micro_lamports)
        return GasEstimate(
            units=units,
            unit_price=self.config.unit_price_micro_lamports,
            signature_fee=self.signature_fee,
            simulated_units=outcome.units_consumed,
        )


def build_default_gas_estimator(chain: SolanaChain, fee_payer: Pubkey, treasury: Optional[Pubkey]) -> GasEstimator:
    """Factory using Settings for convenience."""
    config = GasEstimatorConfig(
        buffer_percent=_dec(settings.GAS_ESTIMATE_BUFFER_PERCENT),
        unit_price_micro_lamports=settings.COMPUTE_UNIT_PRICE_MICRO_LAMPORTS,
        lamports_per_signature=settings.LAMPORTS_PER_SIGNATURE,
        simulation_unit_limit=settings.SIMULATION_COMPUTE_UNIT_LIMIT,
        fallback_units=settings.FALLBACK_GAS_UNITS,
        decimals=settings.STABLE_TOKEN_DECIMALS,
    )
    return GasEstimator(config, chain, fee_payer, treasury)
