from decimal import Decimal
from typing import Optional

import pytest

from duncan.core.errors import ExchangeCallError
from duncan.core.types import Balance, OrderFill, Position
from duncan.exchanges.base_gateway import ExchangeGateway
from duncan.exchanges.hyperliquid.hl_common import quantize_size


def make_position(notional="10000", margin="1000", leverage="12", symbol="ETH") -> Position:
    notional = Decimal(str(notional))
    return Position(
        symbol=symbol,
        notional=notional,
        size=-(notional / Decimal("2000")),
        margin=Decimal(str(margin)),
        pnl=Decimal("0"),
        start_leverage=Decimal(str(leverage)),
    )


class FakeGateway(ExchangeGateway):
    def __init__(self, position: Optional[Position] = None, price=Decimal("2000"), balance=Decimal("5000"), fail_on=(), size_decimals=None):
        self.position = position
        self.size_decimals = size_decimals
        self.price = price
        self.balance = balance
        self.fail_on = set(fail_on)
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise ExchangeCallError(name, args, f"{name} rejected")

    def trading_calls(self):
        return [c for c in self.calls if not c[0].startswith("fetch_")]

    async def fetch_mark_price(self, symbol):
        self._record("fetch_mark_price", symbol)
        return self.price

    async def fetch_balance(self):
        self._record("fetch_balance")
        return Balance(amount=self.balance)

    async def fetch_position(self, symbol):
        self._record("fetch_position", symbol)
        if self.position is not None and self.position.symbol == symbol:
            return self.position
        return None

    async def order_size(self, symbol, amount):
        if self.size_decimals is None:
            return amount
        return quantize_size(amount, self.size_decimals)

    async def market_buy(self, symbol, amount, reduce_only=True, slippage=None):
        self._record("market_buy", symbol, amount, reduce_only)
        return OrderFill(size=amount, fill_price=self.price, order_id=42)

    async def market_sell(self, symbol, amount):
        self._record("market_sell", symbol, amount)
        return OrderFill(size=amount, fill_price=self.price, order_id=43)

    async def add_margin(self, symbol, amount):
        self._record("add_margin", symbol, amount)
        return self.position

    async def remove_margin(self, symbol, amount):
        self._record("remove_margin", symbol, amount)
        return self.position


VAULT = "0x" + "ab" * 20


class FakeVault:
    def __init__(self, address=VAULT, symbol="s2xETH", decimals=6):
        self.address = address
        self._symbol = symbol
        self._decimals = decimals
        self.writes = []

    async def symbol(self):
        return self._symbol

    async def decimals(self):
        return self._decimals

    async def set_assets_in_use(self, assets):
        self.writes.append(assets)
        return "0xdeadbeef"


@pytest.fixture()
def gateway():
    return FakeGateway(position=make_position())
