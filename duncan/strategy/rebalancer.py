from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Tuple, Union

from duncan.core.errors import AlreadyBalancedError, MinTradeSizeError, NoPriceError, PositionNotFoundError
from duncan.core.types import Position

MIN_TRADE_NOTIONAL = Decimal("10")

INCREASE_LEVERAGE = "increase-leverage"
DECREASE_LEVERAGE = "decrease-leverage"


@dataclass(frozen=True)
class MarginStep:
    side: str  # "add" | "remove"
    amount: Decimal
    current: Decimal
    target: Decimal
    # When set, the amount is only an upper bound; free balance caps it at execution time.
    bounded_by_balance: bool = False


@dataclass(frozen=True)
class NotionalStep:
    side: str  # "buy" | "sell"
    notional: Decimal
    size: Decimal
    current: Decimal
    target: Decimal
    reduce_only: bool = False


Step = Union[MarginStep, NotionalStep]


@dataclass(frozen=True)
class RebalancePlan:
    symbol: str
    direction: str
    leverage_current: Decimal
    leverage_target: Decimal
    mark_price: Decimal
    steps: Tuple[Step, ...]

    @property
    def margin_step(self) -> MarginStep:
        return next(s for s in self.steps if isinstance(s, MarginStep))

    @property
    def notional_step(self) -> NotionalStep:
        return next(s for s in self.steps if isinstance(s, NotionalStep))


def floor_units(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def _guard_min_trade(delta_notional: Decimal, min_trade_notional: Decimal) -> None:
    if delta_notional < min_trade_notional:
        raise MinTradeSizeError("Change in notional under minimum trade size.")


def plan_rebalance(
    position: Position,
    mark_price: Optional[Decimal],
    min_trade_notional: Decimal = MIN_TRADE_NOTIONAL,
) -> RebalancePlan:
    """Plan the margin transfer and market order that restore the start leverage.

    Under-levered shorts release margin first and then sell to grow the
    position. Over-levered shorts buy back (reduce-only) first and then add
    margin, bounded later by free balance. Deltas are floored to whole quote
    units. Equal leverage raises AlreadyBalancedError; any other delta below
    ``min_trade_notional`` raises MinTradeSizeError.
    """
    if mark_price is None or mark_price <= 0:
        raise NoPriceError(f"No price for asset {position.symbol}.")
    if position.margin <= 0:
        raise PositionNotFoundError(f"Position for {position.symbol} has no margin.")

    target = position.start_leverage
    current = position.current_leverage

    if target > current:
        target_margin = position.notional / target
        delta_margin = floor_units(position.margin - target_margin)
        delta_notional = delta_margin * target
        _guard_min_trade(delta_notional, min_trade_notional)
        steps: Tuple[Step, ...] = (
            MarginStep(
                side="remove",
                amount=delta_margin,
                current=position.margin,
                target=target_margin,
            ),
            NotionalStep(
                side="sell",
                notional=delta_notional,
                size=delta_notional / mark_price,
                current=position.notional,
                target=position.notional + delta_notional,
            ),
        )
        direction = INCREASE_LEVERAGE
    else:
        if target == current:
            raise AlreadyBalancedError(f"Position for {position.symbol} is already at target leverage {target}.")
        target_notional = position.margin * target
        delta_notional = floor_units(position.notional - target_notional)
        _guard_min_trade(delta_notional, min_trade_notional)
        # TODO: confirm with product whether the cap should be (notional / target) - margin.
        margin_cap = floor_units(target_notional / current)
        steps = (
            NotionalStep(
                side="buy",
                notional=delta_notional,
                size=delta_notional / mark_price,
                current=position.notional,
                target=target_notional,
                reduce_only=True,
            ),
            MarginStep(
                side="add",
                amount=margin_cap,
                current=position.margin,
                target=position.margin + margin_cap,
                bounded_by_balance=True,
            ),
        )
        direction = DECREASE_LEVERAGE

    return RebalancePlan(
        symbol=position.symbol,
        direction=direction,
        leverage_current=current,
        leverage_target=target,
        mark_price=mark_price,
        steps=steps,
    )
