import asyncio
from decimal import Decimal

import pytest

from conftest import FakeGateway, make_position
from duncan.core.errors import ExchangeCallError, MinTradeSizeError, NoPriceError, PositionNotFoundError
from duncan.execution.position_manager import PositionManager
from duncan.execution.slippage_controller import SlippageController


def test_rebalance_under_levered_runs_margin_then_sell():
    gw = FakeGateway(position=make_position(notional=10000, margin=1000, leverage=12))
    report = asyncio.run(PositionManager(gw).rebalance("ETH"))

    assert gw.calls == [
        ("fetch_position", "ETH"),
        ("fetch_mark_price", "ETH"),
        ("remove_margin", "ETH", Decimal("166")),
        ("market_sell", "ETH", Decimal("0.996")),
    ]
    assert report.margin.side == "remove"
    assert report.margin.change == Decimal("166")
    assert report.notional.side == "sell"
    assert report.notional.change == Decimal("1992")
    assert report.notional.order.order_id == 43


def test_rebalance_over_levered_runs_buy_then_bounded_margin():
    gw = FakeGateway(position=make_position(notional=10000, margin=1000, leverage=8), balance=Decimal("5000"))
    report = asyncio.run(PositionManager(gw).rebalance("ETH"))

    assert gw.calls == [
        ("fetch_position", "ETH"),
        ("fetch_mark_price", "ETH"),
        ("market_buy", "ETH", Decimal("1"), True),
        ("fetch_balance",),
        ("add_margin", "ETH", Decimal("800")),
    ]
    assert report.notional.target == Decimal("8000")
    assert report.margin.change == Decimal("800")
    assert report.margin.target == Decimal("1800")


def test_added_margin_is_capped_by_free_balance():
    gw = FakeGateway(position=make_position(notional=10000, margin=1000, leverage=8), balance=Decimal("123.9"))
    report = asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert gw.calls[-1] == ("add_margin", "ETH", Decimal("123"))
    assert report.margin.change == Decimal("123")


def test_no_free_balance_skips_margin_transfer():
    gw = FakeGateway(position=make_position(notional=10000, margin=1000, leverage=8), balance=Decimal("0.4"))
    report = asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert [c[0] for c in gw.trading_calls()] == ["market_buy"]
    assert report.margin.change == Decimal("0")


def test_rebalance_without_position_fails_before_trading():
    gw = FakeGateway(position=None)
    with pytest.raises(PositionNotFoundError):
        asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert gw.calls == [("fetch_position", "ETH")]


def test_rebalance_without_price_fails_before_trading():
    gw = FakeGateway(position=make_position(leverage=12), price=None)
    with pytest.raises(NoPriceError):
        asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert gw.trading_calls() == []


def test_rebalance_below_min_trade_has_no_side_effects():
    gw = FakeGateway(position=make_position(notional=1005, margin=100, leverage=10))
    with pytest.raises(MinTradeSizeError):
        asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert gw.trading_calls() == []


def test_failure_mid_plan_keeps_completed_steps():
    gw = FakeGateway(position=make_position(notional=10000, margin=1000, leverage=12), fail_on={"market_sell"})
    with pytest.raises(ExchangeCallError) as exc:
        asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert exc.value.fn == "market_sell"
    assert ("remove_margin", "ETH", Decimal("166")) in gw.calls


def test_report_dict_shape():
    gw = FakeGateway(position=make_position(notional=10000, margin=1000, leverage=12))
    out = asyncio.run(PositionManager(gw).rebalance("ETH")).to_dict()
    assert set(out) == {"symbol", "direction", "leverage", "margin", "notional"}
    assert out["leverage"] == {"current": Decimal("10"), "target": Decimal("12")}
    assert out["notional"]["order"] == {"size": Decimal("0.996"), "fillPrice": Decimal("2000"), "orderId": 43}


def test_manual_orders_floor_asset_amounts(gateway):
    pm = PositionManager(gateway)
    asyncio.run(pm.decrease("ETH", Decimal("3.7")))
    asyncio.run(pm.increase("ETH", Decimal("2.2")))
    assert gateway.trading_calls() == [
        ("market_buy", "ETH", Decimal("3"), True),
        ("market_sell", "ETH", Decimal("2")),
    ]


def test_manual_commands_require_short_position():
    gw = FakeGateway(position=None)
    pm = PositionManager(gw)
    with pytest.raises(PositionNotFoundError):
        asyncio.run(pm.add_margin("ETH", Decimal("10")))
    with pytest.raises(PositionNotFoundError):
        asyncio.run(pm.info("ETH"))
    assert gw.trading_calls() == []


def test_price_command_requires_listed_asset():
    gw = FakeGateway(price=None)
    with pytest.raises(NoPriceError):
        asyncio.run(PositionManager(gw).price("NOPE"))


def test_slippage_controller_limit_prices():
    sc = SlippageController(max_fraction=Decimal("0.05"))
    assert sc.limit_price(Decimal("2000"), is_buy=True, size_decimals=4) == Decimal("2100")
    assert sc.limit_price(Decimal("2000"), is_buy=False, size_decimals=4) == Decimal("1900")
    # five significant figures
    assert sc.limit_price(Decimal("123456"), is_buy=True, size_decimals=0) == Decimal("129630")
    # at most 6 - szDecimals decimals
    assert sc.limit_price(Decimal("0.123456"), is_buy=False, size_decimals=2) == Decimal("0.1173")


def test_rebalance_rejects_sub_lot_order_before_moving_margin():
    gw = FakeGateway(
        position=make_position(notional=10000, margin=1000, leverage=12),
        price=Decimal("60000"),
        size_decimals=1,
    )
    with pytest.raises(MinTradeSizeError):
        asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert gw.trading_calls() == []


def test_rebalance_proceeds_when_order_fits_lot_size():
    gw = FakeGateway(
        position=make_position(notional=10000, margin=1000, leverage=12),
        price=Decimal("60000"),
        size_decimals=2,
    )
    asyncio.run(PositionManager(gw).rebalance("ETH"))
    assert [c[0] for c in gw.trading_calls()] == ["remove_margin", "market_sell"]
