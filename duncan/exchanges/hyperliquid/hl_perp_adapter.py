from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Dict, Optional

from hyperliquid.exchange import Exchange
from hyperliquid.info import Info

from duncan.core.errors import ExchangeCallError, MinTradeSizeError, NoPriceError
from duncan.core.logging import JsonLogger
from duncan.core.types import Balance, OrderFill, Position
from duncan.exchanges.base_gateway import ExchangeGateway
from duncan.exchanges.hyperliquid.hl_common import parse_fill, quantize_size, response_error
from duncan.execution.slippage_controller import SlippageController

QUOTE_SYMBOL = "USDC"


def _dec(value: Any, default: str = "0") -> Decimal:
    return Decimal(str(value if value is not None else default))


class HyperliquidPerpAdapter(ExchangeGateway):
    def __init__(
        self,
        address: str,
        info: Info,
        exchange: Exchange,
        *,
        slippage: Decimal = Decimal("0.05"),
        testnet: bool = False,
    ) -> None:
        self.address = address
        self.info = info
        self.exchange = exchange
        self.slippage = slippage
        self.testnet = testnet
        self.log = JsonLogger(name="duncan.exchange")

    async def _api_call(self, fn: str, *args: Any, client: Any = None, **kwargs: Any) -> Any:
        """Run one blocking SDK call off the event loop and log its outcome."""
        target = self.exchange if client is None else client
        record: Dict[str, Any] = {"exchange": "hyperliquid", "testnet": self.testnet, "fn": fn, "args": list(args)}
        if kwargs:
            record["kwargs"] = kwargs
        try:
            response = await asyncio.to_thread(getattr(target, fn), *args, **kwargs)
        except Exception as e:
            message = str(e) or type(e).__name__
            self.log.error("api_call", **record, error=message)
            raise ExchangeCallError(fn, args, message) from e
        error = response_error(response)
        if error is not None:
            self.log.error("api_call", **record, error=error)
            raise ExchangeCallError(fn, args, error)
        if client is None:
            self.log.info("api_call", **record, response=response)
        else:
            self.log.debug("api_call", **record)
        return response

    async def _info_call(self, fn: str, *args: Any) -> Any:
        return await self._api_call(fn, *args, client=self.info)

    def _size_decimals(self, symbol: str) -> int:
        asset = self.info.name_to_asset(symbol)
        return int(self.info.asset_to_sz_decimals[asset])

    async def fetch_mark_price(self, symbol: str) -> Optional[Decimal]:
        ctx = await self._info_call("meta_and_asset_ctxs")
        # meta_and_asset_ctxs returns [meta, assetCtxs]
        meta = ctx[0] if isinstance(ctx, list) and ctx else {}
        asset_ctxs = ctx[1] if isinstance(ctx, list) and len(ctx) > 1 else []
        for m, a in zip(meta.get("universe", []), asset_ctxs):
            if m.get("name") == symbol:
                mark = a.get("markPx") if isinstance(a, dict) else None
                return _dec(mark) if mark is not None else None
        return None

    async def fetch_balance(self) -> Balance:
        state = await self._info_call("user_state", self.address)
        return Balance(amount=_dec(state.get("withdrawable")), symbol=QUOTE_SYMBOL)

    async def fetch_position(self, symbol: str) -> Optional[Position]:
        state = await self._info_call("user_state", self.address)
        for item in state.get("assetPositions") or []:
            pos = (item or {}).get("position") or {}
            if pos.get("coin") != symbol:
                continue
            szi = _dec(pos.get("szi"))
            if szi >= 0:
                continue
            return Position(
                symbol=symbol,
                notional=_dec(pos.get("positionValue")),
                size=szi,
                margin=_dec(pos.get("marginUsed")),
                pnl=_dec(pos.get("unrealizedPnl")),
                start_leverage=_dec((pos.get("leverage") or {}).get("value")),
            )
        return None

    async def order_size(self, symbol: str, amount: Decimal) -> Decimal:
        return quantize_size(Decimal(str(amount)), self._size_decimals(symbol))

    async def _market_order(self, symbol: str, is_buy: bool, amount: Decimal, reduce_only: bool, slippage: Decimal) -> OrderFill:
        mark = await self.fetch_mark_price(symbol)
        if mark is None:
            raise NoPriceError(f"No price for asset {symbol}.")
        size_decimals = self._size_decimals(symbol)
        size = quantize_size(Decimal(str(amount)), size_decimals)
        if size <= 0:
            raise MinTradeSizeError(f"Order size {amount} rounds to zero for {symbol}.")
        px = SlippageController(slippage).limit_price(mark, is_buy, size_decimals)
        order_type = {"limit": {"tif": "Ioc"}}
        resp = await self._api_call("order", symbol, is_buy, float(size), float(px), order_type, reduce_only=reduce_only)
        fill = parse_fill(resp)
        if fill is None:
            raise ExchangeCallError("order", (symbol, is_buy, size, px), f"Order for {symbol} was not filled.")
        return fill

    async def market_buy(
        self,
        symbol: str,
        amount: Decimal,
        reduce_only: bool = True,
        slippage: Optional[Decimal] = None,
    ) -> OrderFill:
        return await self._market_order(symbol, True, amount, reduce_only, self.slippage if slippage is None else slippage)

    async def market_sell(self, symbol: str, amount: Decimal) -> OrderFill:
        # Selling only grows a short, so it is never reduce-only.
        return await self._market_order(symbol, False, amount, False, self.slippage)

    async def add_margin(self, symbol: str, amount: Decimal) -> Optional[Position]:
        await self._api_call("update_isolated_margin", float(amount), symbol)
        return await self.fetch_position(symbol)

    async def remove_margin(self, symbol: str, amount: Decimal) -> Optional[Position]:
        await self._api_call("update_isolated_margin", -float(amount), symbol)
        return await self.fetch_position(symbol)
