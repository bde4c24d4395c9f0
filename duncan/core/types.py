from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Balance:
    amount: Decimal
    symbol: str = "USDC"

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "symbol": self.symbol}


@dataclass(frozen=True)
class Position:
    symbol: str
    notional: Decimal
    size: Decimal
    margin: Decimal
    pnl: Decimal
    start_leverage: Decimal

    @property
    def current_leverage(self) -> Decimal:
        # Always derived from the snapshot; margin and notional move after every order.
        return self.notional / self.margin

    def to_dict(self) -> Dict[str, Any]:
        current: Optional[Decimal] = None
        if self.margin > 0:
            current = self.current_leverage.quantize(Decimal("0.01"))
        return {
            "symbol": self.symbol,
            "notional": self.notional,
            "size": self.size,
            "margin": self.margin,
            "pnl": self.pnl,
            "leverage": {"start": self.start_leverage, "current": current},
        }


@dataclass(frozen=True)
class OrderFill:
    size: Decimal
    fill_price: Decimal
    order_id: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {"size": self.size, "fillPrice": self.fill_price, "orderId": self.order_id}
