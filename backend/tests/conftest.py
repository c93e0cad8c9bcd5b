"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import path for the `relayer` package, an
    in-memory Solana chain double, a scripted Pyth feed and builders that
    wire a complete orchestrator around them.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Set

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from relayer.core.errors import UpstreamUnavailable
from relayer.core.fees.quote_book import QuoteBook
from relayer.core.fees.quote_calculator import QuoteCalculator, QuoteCalculatorConfig
from relayer.core.gas.gas_estimator import GasEstimator, GasEstimatorConfig
from relayer.core.gates.safety_monitor import SafetyLimits, SafetyMonitor
from relayer.core.onchain.solana_chain import ChainTransactionState, SimulationOutcome
from relayer.core.onchain.sponsorship_assembler import SponsorshipAssembler, SponsorshipAssemblerConfig
from relayer.core.onchain.transfer_builder import token_account
from relayer.core.pricing.price_oracle import PriceOracle, PriceOracleConfig
from relayer.core.sponsorship.orchestrator import OrchestratorConfig, SponsorshipOrchestrator
from relayer.core.structures.structures import FeeConfig, TransactionStatus
from relayer.integrations.pyth.pyth_structures import PythPrice
from relayer.persistence.db import configure_database, init_db
from relayer.persistence.ledger import TransactionLedger

MINT = Pubkey.from_string("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")
DECIMALS = 6
ONE_UNIT = 10 ** DECIMALS
SOL = 10 ** 9


class FakeChain:
    """In-memory stand-in for SolanaChain with scripted balances and statuses."""

    def __init__(self) -> None:
        self.native: Dict[Pubkey, int] = {}
        self.tokens: Dict[Pubkey, int] = {}
        self.accounts: Set[Pubkey] = set()
        self.blockhash = Hash.new_unique()
        self.simulated_units: Optional[int] = 10_000
        self.simulation_error: Optional[str] = None
        self.unavailable = False
        self.simulated: List[Message] = []
        self.sent: List[Transaction] = []
        self.send_error: Optional[Exception] = None
        self.send_lands = True
        self.states: Dict[str, List[ChainTransactionState]] = {}
        self.default_state = ChainTransactionState(status=TransactionStatus.SUCCESS, gas_used=9_000)
        self.closed = False

    def fund(self, owner: Pubkey, amount: int, mint: Pubkey = MINT) -> Pubkey:
        ata = token_account(owner, mint)
        self.accounts.add(ata)
        self.tokens[ata] = amount
        return ata

    def _check(self) -> None:
        if self.unavailable:
            raise UpstreamUnavailable("Solana RPC unavailable during test")

    async def get_native_balance(self, owner: Pubkey) -> int:
        self._check()
        return self.native.get(owner, 0)

    async def account_exists(self, address: Pubkey) -> bool:
        self._check()
        return address in self.accounts

    async def get_token_balance(self, ata: Pubkey) -> int:
        self._check()
        return self.tokens.get(ata, 0)

    async def get_latest_blockhash(self) -> Hash:
        self._check()
        return self.blockhash

    async def simulate(self, message: Message) -> SimulationOutcome:
        self._check()
        self.simulated.append(message)
        return SimulationOutcome(units_consumed=self.simulated_units, error=self.simulation_error)

    async def send_transaction(self, transaction: Transaction) -> str:
        self._check()
        if self.send_error is None or self.send_lands:
            self.sent.append(transaction)
        if self.send_error is not None:
            raise self.send_error
        return str(transaction.signatures[0])

    async def get_transaction_state(self, signature: str) -> ChainTransactionState:
        Signature.from_string(signature)
        self._check()
        scripted = self.states.get(signature)
        if scripted:
            return scripted.pop(0) if len(scripted) > 1 else scripted[0]
        if any(str(tx.signatures[0]) == signature for tx in self.sent):
            return self.default_state
        return ChainTransactionState(status=TransactionStatus.PENDING)

    async def close(self) -> None:
        self.closed = True


class FakePyth:
    """Scripted Hermes feed; counts calls so tests can assert fetch/no-fetch."""

    def __init__(self, price: str = "150", error: Optional[Exception] = None,
                 publish_time: Optional[datetime] = None) -> None:
        self.price = Decimal(price)
        self.error = error
        self.publish_time = publish_time
        self.calls = 0
        self.closed = False

    async def fetch_latest_price(self, feed_id: str) -> PythPrice:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return PythPrice(
            price=int(self.price * 10 ** 8),
            conf=0,
            expo=-8,
            publish_time=self.publish_time or datetime.now(timezone.utc),
        )

    async def aclose(self) -> None:
        self.closed = True


async def _no_sleep(_: float) -> None:
    return None


def fee_config(treasury_enabled: bool = False) -> FeeConfig:
    return FeeConfig(
        markup_percent=Decimal("20"),
        fee_fraction=Decimal("0.001"),
        min_absolute_fee=1000,
        decimals=DECIMALS,
        treasury_share_percent=Decimal("10"),
        treasury_enabled=treasury_enabled,
    )


def oracle_config(**overrides) -> PriceOracleConfig:
    values = dict(
        feed_id="0xef0d8b6fda2ceba41da15d4095d1da392a0d2f8ed0c6c7bc0f4cfac8c280b56d",
        high_value_threshold=100 * ONE_UNIT,
        fallback_price=Decimal("250"),
        cache_ttl_seconds=30,
        max_staleness_seconds=60,
        timeout_seconds=1.0,
    )
    values.update(overrides)
    return PriceOracleConfig(**values)


def gas_config(**overrides) -> GasEstimatorConfig:
    values = dict(
        buffer_percent=Decimal("20"),
        unit_price_micro_lamports=1000,
        lamports_per_signature=5000,
        simulation_unit_limit=200_000,
        fallback_units=80_000,
        decimals=DECIMALS,
    )
    values.update(overrides)
    return GasEstimatorConfig(**values)


def make_assembler(chain: FakeChain, sponsor: Keypair, treasury: Optional[Pubkey] = None,
                   attempts: int = 3) -> SponsorshipAssembler:
    config = SponsorshipAssemblerConfig(
        secret_key_base58=base58.b58encode(bytes(sponsor)).decode("ascii"),
        decimals=DECIMALS,
        treasury_address=str(treasury) if treasury is not None else "",
        confirmation_max_attempts=attempts,
        confirmation_backoff_seconds=0.01,
    )
    return SponsorshipAssembler(config, chain, sleep=_no_sleep)


def make_orchestrator(
        chain: FakeChain,
        sponsor: Keypair,
        ledger: Optional[TransactionLedger] = None,
        limits: Optional[SafetyLimits] = None,
        treasury: Optional[Pubkey] = None,
        feed: Optional[FakePyth] = None,
) -> SponsorshipOrchestrator:
    assembler = make_assembler(chain, sponsor, treasury)
    oracle = PriceOracle(oracle_config(), feed or FakePyth())
    fees = fee_config(treasury_enabled=treasury is not None)
    estimator = GasEstimator(gas_config(), chain, sponsor.pubkey(), treasury)
    calculator = QuoteCalculator(
        QuoteCalculatorConfig(fee=fees, min_sponsor_reserve_lamports=SOL, quote_ttl_seconds=60),
        oracle,
        estimator,
        chain,
        sponsor.pubkey(),
        treasury,
    )
    safety = SafetyMonitor(limits or SafetyLimits(
        max_single_transaction=10 * ONE_UNIT,
        max_address_daily=100 * ONE_UNIT,
        max_global_daily=1000 * ONE_UNIT,
    ))
    return SponsorshipOrchestrator(
        OrchestratorConfig(fee=fees, coin=str(MINT), min_sponsor_reserve_lamports=SOL),
        chain,
        oracle,
        calculator,
        assembler,
        safety,
        QuoteBook(),
        ledger,
    )


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def sponsor(chain: FakeChain) -> Keypair:
    keypair = Keypair()
    chain.native[keypair.pubkey()] = 5 * SOL
    chain.fund(keypair.pubkey(), 0)
    return keypair


@pytest.fixture
def sender(chain: FakeChain) -> Keypair:
    keypair = Keypair()
    chain.fund(keypair.pubkey(), 10 * ONE_UNIT)
    return keypair


@pytest.fixture
def recipient(chain: FakeChain) -> Pubkey:
    pubkey = Keypair().pubkey()
    chain.fund(pubkey, 0)
    return pubkey


@pytest.fixture
def ledger() -> TransactionLedger:
    configure_database("sqlite://")
    init_db()
    return TransactionLedger()
