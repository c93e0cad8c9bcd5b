from __future__ import annotations

from decimal import Decimal

from relayer.configuration.config import settings
from relayer.core.structures.structures import FeeBreakdown, FeeConfig, GasEstimate
from relayer.core.utils.amount_utils import _dec, ceil_int, floor_int
from relayer.logging.logger import get_logger

log = get_logger(__name__)

LAMPORTS_PER_SOL = Decimal(10) ** 9
MICRO_LAMPORTS_PER_LAMPORT = Decimal(10) ** 6


def build_default_fee_config() -> FeeConfig:
    """Factory using Settings for convenience."""
    return FeeConfig(
        markup_percent=_dec(settings.FEE_MARKUP_PERCENT),
        fee_fraction=_dec(settings.FEE_FRACTION),
        min_absolute_fee=settings.MIN_ABSOLUTE_FEE,
        decimals=settings.STABLE_TOKEN_DECIMALS,
        treasury_share_percent=_dec(settings.TREASURY_SHARE_PERCENT),
        treasury_enabled=bool(settings.TREASURY_ADDRESS.strip()),
    )


def gas_cost_lamports(gas: GasEstimate) -> int:
    """Signature fee plus the priority fee for the whole compute-unit limit."""
    priority = ceil_int(Decimal(gas.units) * Decimal(gas.unit_price) / MICRO_LAMPORTS_PER_LAMPORT)
    return gas.signature_fee + priority


def percentage_fee(amount: int, config: FeeConfig) -> int:
    """Percentage-of-amount fee with an absolute floor."""
    return max(ceil_int(Decimal(amount) * config.fee_fraction), config.min_absolute_fee)


def compute_fee(gas: GasEstimate, price: Decimal, amount: int, config: FeeConfig) -> FeeBreakdown:
    """
    Hybrid fee rule, deterministic for identical inputs.

    1) gas cost in lamports → SOL → stable → stable base units
    2) oracle fee     = ceil(gas_stable * (1 + markup%))
    3) percentage fee = max(ceil(amount * fraction), min absolute fee)
    4) final fee      = max(oracle fee, percentage fee)
    5) treasury cut   = floor(final * share%) when a treasury is configured; sponsor keeps the rest
    """
    price = _dec(price)
    lamports = gas_cost_lamports(gas)
    gas_stable = Decimal(lamports) / LAMPORTS_PER_SOL * price * (Decimal(10) ** config.decimals)

    oracle_fee = ceil_int(gas_stable * (Decimal(1) + config.markup_percent / Decimal(100)))
    pct_fee = percentage_fee(amount, config)

    if oracle_fee >= pct_fee:
        final_fee, winner = oracle_fee, "oracle"
    else:
        final_fee, winner = pct_fee, "percentage"

    treasury_fee = 0
    if config.treasury_enabled:
        treasury_fee = floor_int(Decimal(final_fee) * config.treasury_share_percent / Decimal(100))
    sponsor_fee = final_fee - treasury_fee

    log.debug(
        "[FEE][POLICY] gas_lamports=%d gas_stable=%s oracle=%d percentage=%d winner=%s final=%d treasury=%d",
        lamports, gas_stable, oracle_fee, pct_fee, winner, final_fee, treasury_fee,
    )

    return FeeBreakdown(
        gas_cost_lamports=lamports,
        gas_cost_stable=gas_stable,
        oracle_fee=oracle_fee,
        percentage_fee=pct_fee,
        final_fee=final_fee,
        winner=winner,
        sponsor_fee=sponsor_fee,
        treasury_fee=treasury_fee,
        price=price,
    )
