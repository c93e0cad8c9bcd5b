"""
backend/tests/test_quote_calculator.py

Purpose:
    Quote assembly: fee from gas + price, balance and reserve declines,
    recipient token account requirement and the signable template.
"""

import pytest
from solders.message import Message
from solders.pubkey import Pubkey

from conftest import MINT, ONE_UNIT, SOL, FakePyth, fee_config, gas_config, oracle_config
from relayer.core.errors import ValidationError
from relayer.core.fees.quote_calculator import QuoteCalculator, QuoteCalculatorConfig
from relayer.core.gas.gas_estimator import GasEstimator
from relayer.core.pricing.price_oracle import PriceOracle
from relayer.core.structures.structures import PriceSource, TransferIntent


def _calculator(chain, sponsor, feed=None) -> QuoteCalculator:
    oracle = PriceOracle(oracle_config(), feed or FakePyth())
    estimator = GasEstimator(gas_config(), chain, sponsor.pubkey())
    config = QuoteCalculatorConfig(fee=fee_config(), min_sponsor_reserve_lamports=SOL, quote_ttl_seconds=60)
    return QuoteCalculator(config, oracle, estimator, chain, sponsor.pubkey())


def _intent(sender, recipient, amount=5 * ONE_UNIT) -> TransferIntent:
    return TransferIntent(sender=str(sender.pubkey()), recipient=str(recipient), amount=amount, coin=str(MINT))


@pytest.mark.asyncio
async def test_quote_prices_transfer_and_builds_template(chain, sponsor, sender, recipient):
    feed = FakePyth()
    calculator = _calculator(chain, sponsor, feed)

    quote = await calculator.quote(_intent(sender, recipient))

    assert quote.decline_reason is None
    assert feed.calls == 0
    assert quote.price.source is PriceSource.FIXED
    assert quote.gas.units == 12_000
    assert quote.fee.final_fee == 5000
    assert quote.blockhash == str(chain.blockhash)
    assert quote.fee_payer == str(sponsor.pubkey())
    assert (quote.expires_at - quote.issued_at).total_seconds() == 60

    message = Message.from_bytes(quote.message_bytes)
    assert message.account_keys[0] == sponsor.pubkey()
    assert message.account_keys[1] == sender.pubkey()
    assert message.header.num_required_signatures == 2


@pytest.mark.asyncio
async def test_high_value_quote_queries_the_feed(chain, sponsor, sender, recipient):
    chain.fund(sender.pubkey(), 1000 * ONE_UNIT)
    feed = FakePyth(price="150")
    calculator = _calculator(chain, sponsor, feed)

    quote = await calculator.quote(_intent(sender, recipient, amount=200 * ONE_UNIT))

    assert feed.calls == 1
    assert quote.price.source is PriceSource.ORACLE


@pytest.mark.asyncio
async def test_insufficient_balance_declines(chain, sponsor, sender, recipient):
    chain.fund(sender.pubkey(), 5 * ONE_UNIT + 4999)

    quote = await _calculator(chain, sponsor).quote(_intent(sender, recipient))

    assert quote.decline_reason == "insufficient-balance"
    assert quote.declined


@pytest.mark.asyncio
async def test_undercapitalized_sponsor_declines(chain, sponsor, sender, recipient):
    chain.native[sponsor.pubkey()] = SOL - 1

    quote = await _calculator(chain, sponsor).quote(_intent(sender, recipient))

    assert quote.decline_reason == "sponsor-undercapitalized"


@pytest.mark.asyncio
async def test_missing_recipient_token_account_is_rejected(chain, sponsor, sender):
    stranger = Pubkey.new_unique()

    with pytest.raises(ValidationError) as excinfo:
        await _calculator(chain, sponsor).quote(_intent(sender, stranger))

    assert excinfo.value.reason == "recipient-account-missing"
