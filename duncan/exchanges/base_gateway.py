from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from duncan.core.types import Balance, OrderFill, Position


class ExchangeGateway(ABC):
    """Async facade over a perpetual-futures venue.

    Implementations map venue payloads to the typed values in
    ``duncan.core.types`` and raise ``ExchangeCallError`` carrying the venue's
    message on any failed call.
    """

    @abstractmethod
    async def fetch_mark_price(self, symbol: str) -> Optional[Decimal]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_balance(self) -> Balance:
        raise NotImplementedError

    @abstractmethod
    async def fetch_position(self, symbol: str) -> Optional[Position]:
        """Return the short position on ``symbol`` or None."""
        raise NotImplementedError

    @abstractmethod
    async def market_buy(
        self,
        symbol: str,
        amount: Decimal,
        reduce_only: bool = True,
        slippage: Optional[Decimal] = None,
    ) -> OrderFill:
        raise NotImplementedError

    async def order_size(self, symbol: str, amount: Decimal) -> Decimal:
        """Size the venue would actually trade for ``amount`` of ``symbol``.

        Venues with lot-size rules round down; the default trades as given.
        """
        return amount

    @abstractmethod
    async def market_sell(self, symbol: str, amount: Decimal) -> OrderFill:
        raise NotImplementedError

    @abstractmethod
    async def add_margin(self, symbol: str, amount: Decimal) -> Optional[Position]:
        raise NotImplementedError

    @abstractmethod
    async def remove_margin(self, symbol: str, amount: Decimal) -> Optional[Position]:
        raise NotImplementedError
