from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from duncan.core.errors import MinTradeSizeError, NoPriceError, PositionNotFoundError
from duncan.core.logging import JsonLogger
from duncan.core.types import Balance, OrderFill, Position
from duncan.exchanges.base_gateway import ExchangeGateway
from duncan.strategy.rebalancer import (
    MIN_TRADE_NOTIONAL,
    MarginStep,
    NotionalStep,
    RebalancePlan,
    floor_units,
    plan_rebalance,
)


@dataclass
class MarginReport:
    current: Decimal
    target: Decimal
    change: Decimal
    side: str

    def to_dict(self) -> Dict[str, Any]:
        return {"current": self.current, "target": self.target, "change": self.change, "side": self.side}


@dataclass
class NotionalReport:
    current: Decimal
    target: Decimal
    change: Decimal
    side: str
    order: OrderFill

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current,
            "target": self.target,
            "change": self.change,
            "side": self.side,
            "order": self.order.to_dict(),
        }


@dataclass
class RebalanceReport:
    symbol: str
    direction: str
    leverage_current: Decimal
    leverage_target: Decimal
    margin: Optional[MarginReport] = None
    notional: Optional[NotionalReport] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "symbol": self.symbol,
            "direction": self.direction,
            "leverage": {"current": self.leverage_current, "target": self.leverage_target},
        }
        if self.margin is not None:
            out["margin"] = self.margin.to_dict()
        if self.notional is not None:
            out["notional"] = self.notional.to_dict()
        return out


class PositionManager:
    """Runs position commands for one venue through an ExchangeGateway.

    Nothing here serializes calls per symbol: two overlapping rebalances of
    the same symbol can both act on the same snapshot.
    """

    def __init__(self, gateway: ExchangeGateway, min_trade_notional: Decimal = MIN_TRADE_NOTIONAL) -> None:
        self.gw = gateway
        self.min_trade_notional = min_trade_notional
        self.log = JsonLogger(name="duncan.position")

    async def require_position(self, symbol: str) -> Position:
        position = await self.gw.fetch_position(symbol)
        if position is None:
            raise PositionNotFoundError(f"No short positions for {symbol}.")
        return position

    async def balance(self) -> Balance:
        return await self.gw.fetch_balance()

    async def price(self, symbol: str) -> Decimal:
        price = await self.gw.fetch_mark_price(symbol)
        if price is None:
            raise NoPriceError(f"Asset not found: {symbol}")
        return price

    async def info(self, symbol: str) -> Position:
        position = await self.gw.fetch_position(symbol)
        if position is None:
            raise PositionNotFoundError(f"Unable to find a matching short position for {symbol}.")
        return position

    async def increase(self, symbol: str, assets: Decimal) -> OrderFill:
        await self.require_position(symbol)
        return await self.gw.market_sell(symbol, floor_units(assets))

    async def decrease(self, symbol: str, assets: Decimal) -> OrderFill:
        await self.require_position(symbol)
        return await self.gw.market_buy(symbol, floor_units(assets), reduce_only=True)

    async def add_margin(self, symbol: str, amount: Decimal) -> Optional[Position]:
        await self.require_position(symbol)
        return await self.gw.add_margin(symbol, amount)

    async def remove_margin(self, symbol: str, amount: Decimal) -> Optional[Position]:
        await self.require_position(symbol)
        return await self.gw.remove_margin(symbol, amount)

    async def plan(self, symbol: str) -> RebalancePlan:
        position = await self.require_position(symbol)
        price = await self.gw.fetch_mark_price(symbol)
        if price is None:
            raise NoPriceError(f"No price for asset {symbol}.")
        return plan_rebalance(position, price, self.min_trade_notional)

    async def rebalance(self, symbol: str) -> RebalanceReport:
        """Bring the short on ``symbol`` back to its start leverage.

        Steps run one after another in plan order and are not rolled back: if
        a later step fails, the earlier ones stay applied and the error
        propagates without a report.
        """
        plan = await self.plan(symbol)
        self.log.info(
            "rebalance_plan",
            symbol=symbol,
            direction=plan.direction,
            current=plan.leverage_current,
            target=plan.leverage_target,
            mark_price=plan.mark_price,
        )
        # A margin step may run first; reject an untradeable order size before it does.
        order_step = plan.notional_step
        if await self.gw.order_size(symbol, order_step.size) <= 0:
            raise MinTradeSizeError(f"Order size {order_step.size} rounds to zero for {symbol}.")
        report = RebalanceReport(
            symbol=symbol,
            direction=plan.direction,
            leverage_current=plan.leverage_current,
            leverage_target=plan.leverage_target,
        )
        for step in plan.steps:
            if isinstance(step, MarginStep):
                report.margin = await self._apply_margin(symbol, step)
            elif isinstance(step, NotionalStep):
                report.notional = await self._apply_notional(symbol, step)
        self.log.info("rebalance_done", report=report)
        return report

    async def _apply_margin(self, symbol: str, step: MarginStep) -> MarginReport:
        amount = step.amount
        target = step.target
        if step.bounded_by_balance:
            free = await self.gw.fetch_balance()
            amount = min(step.amount, floor_units(free.amount))
            target = step.current + amount
        if amount > 0:
            if step.side == "add":
                await self.gw.add_margin(symbol, amount)
            else:
                await self.gw.remove_margin(symbol, amount)
        else:
            self.log.warn("margin_step_skipped", symbol=symbol, side=step.side, amount=amount)
        self.log.info("margin_step", symbol=symbol, side=step.side, amount=amount)
        return MarginReport(current=step.current, target=target, change=amount, side=step.side)

    async def _apply_notional(self, symbol: str, step: NotionalStep) -> NotionalReport:
        if step.side == "buy":
            order = await self.gw.market_buy(symbol, step.size, reduce_only=step.reduce_only)
        else:
            order = await self.gw.market_sell(symbol, step.size)
        self.log.info("notional_step", symbol=symbol, side=step.side, size=step.size, order=order)
        return NotionalReport(
            current=step.current,
            target=step.target,
            change=step.notional,
            side=step.side,
            order=order,
        )
