"""Tests for the in-memory exchange used by monitoring wiring and the engine tests."""

from decimal import Decimal

import pytest

from mmbot.core.errors import GatewayError, OrderNotFound, PriceUnavailable
from mmbot.core.types import Side
from mmbot.gateway.base import ExchangeGateway, OrderGateway, PriceProvider
from mmbot.gateway.paper import MIN_SIZE_CODE, PaperExchange

PAIR = "ILMTUSDT"


def test_satisfies_gateway_protocols(paper):
    assert isinstance(paper, PriceProvider)
    assert isinstance(paper, OrderGateway)
    assert isinstance(paper, ExchangeGateway)


class TestPrices:
    @pytest.mark.asyncio
    async def test_mid(self):
        exchange = PaperExchange(prices={PAIR: ("0.010000", "0.010002")})
        snap = await exchange.get_mid_price(PAIR)
        assert snap.mid == Decimal("0.010001")

    @pytest.mark.asyncio
    async def test_missing_price(self, paper):
        with pytest.raises(PriceUnavailable):
            await paper.get_mid_price("BTCUSDT")

    @pytest.mark.asyncio
    async def test_crossed_book(self, paper):
        paper.set_price(PAIR, "0.02", "0.01")
        with pytest.raises(PriceUnavailable):
            await paper.get_mid_price(PAIR)


class TestOrders:
    @pytest.mark.asyncio
    async def test_limit_rests_until_filled(self, paper):
        order = await paper.place_order(PAIR, Side.BUY, "0.0099", "200")
        assert [o.id for o in await paper.get_open_orders(PAIR)] == [order.id]

        paper.fill_order(PAIR, order.id)

        assert await paper.get_open_orders(PAIR) == []
        assert paper.fills[0][1].id == order.id

    @pytest.mark.asyncio
    async def test_market_fills_at_touch(self):
        exchange = PaperExchange(prices={PAIR: ("0.010000", "0.010004")})
        buy = await exchange.place_order(PAIR, Side.BUY, None, "150")
        sell = await exchange.place_order(PAIR, Side.SELL, None, "150")
        assert buy.price == Decimal("0.010004")
        assert sell.price == Decimal("0.010000")
        assert exchange.books[PAIR] == {}

    @pytest.mark.asyncio
    async def test_cancel_unknown_raises_not_found(self, paper):
        with pytest.raises(OrderNotFound) as exc_info:
            await paper.cancel_order(PAIR, "nope")
        assert exc_info.value.code == -2011

    @pytest.mark.asyncio
    async def test_rejects_bad_quantity(self, paper):
        with pytest.raises(GatewayError):
            await paper.place_order(PAIR, Side.BUY, "0.01", "0")


class TestMinimums:
    @pytest.mark.asyncio
    async def test_quantity_below_minimum_rejected(self, paper):
        with pytest.raises(GatewayError) as exc_info:
            await paper.place_order(PAIR, Side.BUY, None, "149.99")
        assert exc_info.value.code == MIN_SIZE_CODE
        assert exc_info.value.retryable is False
        assert paper.trades == []

    @pytest.mark.asyncio
    async def test_notional_below_minimum_rejected(self, paper):
        with pytest.raises(GatewayError) as exc_info:
            await paper.place_order(PAIR, Side.BUY, "0.005", "150")
        assert exc_info.value.code == MIN_SIZE_CODE
        assert exc_info.value.retryable is False
        assert paper.books[PAIR] == {}

    @pytest.mark.asyncio
    async def test_market_notional_uses_fill_price(self):
        exchange = PaperExchange(prices={PAIR: ("0.0060", "0.0070")})
        buy = await exchange.place_order(PAIR, Side.BUY, None, "150")
        assert buy.filled_quantity == Decimal("150")
        with pytest.raises(GatewayError):
            await exchange.place_order(PAIR, Side.SELL, None, "150")

    @pytest.mark.asyncio
    async def test_unknown_symbol_has_no_minimum(self):
        exchange = PaperExchange(prices={"BTCUSDT": ("60000", "60001")})
        order = await exchange.place_order("BTCUSDT", Side.BUY, None, "0.0001")
        assert order.fully_filled


class TestFaults:
    @pytest.mark.asyncio
    async def test_fault_fires_requested_times(self, paper):
        paper.inject_fault("open_orders", times=2)
        for _ in range(2):
            with pytest.raises(GatewayError):
                await paper.get_open_orders(PAIR)
        assert await paper.get_open_orders(PAIR) == []
        assert paper.call_count("open_orders") == 3

    @pytest.mark.asyncio
    async def test_custom_exception(self, paper):
        paper.inject_fault("price", PriceUnavailable(PAIR, "feed down"))
        with pytest.raises(PriceUnavailable):
            await paper.get_mid_price(PAIR)

    def test_unknown_operation(self, paper):
        with pytest.raises(ValueError):
            paper.inject_fault("withdraw")

    @pytest.mark.asyncio
    async def test_clear_faults(self, paper):
        paper.inject_fault("place")
        paper.clear_faults()
        await paper.place_order(PAIR, Side.BUY, "0.0099", "200")


@pytest.mark.asyncio
async def test_close(paper):
    await paper.close()
    assert paper.closed
