from decimal import Decimal

import pytest

from conftest import ALPHA, BETA, GAMMA
from ethtrade.config import Settings
from ethtrade.errors import InsufficientLiquidity, InvalidAmount, InvalidSlippage
from ethtrade.models import Amount, PoolReserves, Route, SimulationOutcome, SwapResult
from ethtrade.services.swap_quoter import SwapQuoter, get_amount_out, validate_slippage


def pool(token_a, token_b, reserve_a, reserve_b, address="0x" + "0a" * 20):
    return PoolReserves(
        pool_address=address,
        token_a=token_a,
        token_b=token_b,
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        block_timestamp_last=1700000000
    )


def one_hop(reserve_in, reserve_out):
    return Route(tokens=(ALPHA, BETA), hops=(pool(ALPHA, BETA, reserve_in, reserve_out),))


@pytest.fixture
def quoter(settings):
    return SwapQuoter(settings)


def test_get_amount_out_reference_vector():
    assert get_amount_out(1000, 10000, 10000, 30) == 906


def test_get_amount_out_eth_to_usdc():
    out = get_amount_out(10 ** 18, 100 * 10 ** 18, 200_000 * 10 ** 6, 30)
    assert 1974 * 10 ** 6 < out < 1975 * 10 ** 6


def test_single_hop_quote(quoter):
    quote = quoter.quote(one_hop(1_000_000, 2_000_000), Amount(value=1000, token=ALPHA), 50)
    assert quote.amount_out.value == 1992
    assert quote.price_impact == Decimal("0.004")
    assert quote.minimum_out.value == 1982  # floor(1992 * 9950 / 10000)
    assert [amount.value for amount in quote.hop_amounts] == [1000, 1992]


def test_tiny_price_impact_stays_in_plain_notation():
    quoter = SwapQuoter(Settings(_env_file=None, FEE_BPS=0))
    quote = quoter.quote(one_hop(10 ** 24, 10 ** 24), Amount(value=10 ** 15, token=ALPHA), 50)
    assert quote.price_impact == Decimal("0.000000001")
    assert quote.model_dump(mode="json")["price_impact"] == "0.000000001"

    outcome = SimulationOutcome(success=True, sender=BETA.address, quote=quote)
    assert SwapResult.from_outcome(outcome).price_impact == "0.000000001"


def test_two_hop_quote_chains_outputs(quoter):
    route = Route(
        tokens=(ALPHA, BETA, GAMMA),
        hops=(pool(ALPHA, BETA, 10000, 5000), pool(BETA, GAMMA, 5000, 20000, address="0x" + "0b" * 20))
    )
    quote = quoter.quote(route, Amount(value=1000, token=ALPHA), 0)
    assert [amount.value for amount in quote.hop_amounts] == [1000, 453, 1656]
    assert quote.amount_out.value == quote.minimum_out.value == 1656
    assert quote.amount_out.token == GAMMA


def test_larger_input_gives_more_output_at_a_worse_rate(quoter):
    route = one_hop(10 ** 24, 2 * 10 ** 24)
    previous_out, previous_rate = 0, None
    for amount in (10 ** 18, 10 ** 20, 10 ** 22, 10 ** 23):
        out = quoter.quote(route, Amount(value=amount, token=ALPHA), 50).amount_out.value
        rate = out / amount
        assert out > previous_out
        if previous_rate is not None:
            assert rate < previous_rate
        previous_out, previous_rate = out, rate


def test_quotes_are_deterministic(quoter):
    route = one_hop(1_000_000, 2_000_000)
    first = quoter.quote(route, Amount(value=1000, token=ALPHA), 50)
    second = quoter.quote(route, Amount(value=1000, token=ALPHA), 50)
    assert first == second
    assert first.model_dump_json() == second.model_dump_json()


@pytest.mark.parametrize("slippage", [-1, 10000, 12000, 0.5, True, "50"])
def test_invalid_slippage(quoter, slippage):
    with pytest.raises(InvalidSlippage):
        quoter.quote(one_hop(10000, 10000), Amount(value=10, token=ALPHA), slippage)


def test_validate_slippage_bounds():
    assert validate_slippage(0) == 0
    assert validate_slippage(9999) == 9999


def test_zero_input(quoter):
    with pytest.raises(InvalidAmount):
        quoter.quote(one_hop(10000, 10000), Amount(value=0, token=ALPHA), 50)


def test_amount_in_wrong_token(quoter):
    with pytest.raises(InvalidAmount):
        quoter.quote(one_hop(10000, 10000), Amount(value=10, token=BETA), 50)


def test_empty_reserves(quoter):
    with pytest.raises(InsufficientLiquidity):
        quoter.quote(one_hop(0, 10000), Amount(value=10, token=ALPHA), 50)


def test_input_too_large_for_pool(quoter):
    with pytest.raises(InsufficientLiquidity):
        quoter.quote(one_hop(10000, 10000), Amount(value=6000, token=ALPHA), 50)


def test_force_allows_oversized_input(quoter):
    quote = quoter.quote(one_hop(10000, 10000), Amount(value=6000, token=ALPHA), 50, force=True)
    assert quote.forced
    assert 0 < quote.amount_out.value < 10000


def test_output_rounding_to_zero(quoter):
    with pytest.raises(InsufficientLiquidity):
        quoter.quote(one_hop(10 ** 18, 10), Amount(value=1000, token=ALPHA), 50)
