from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Optional, Tuple


class DuncanError(Exception):
    kind: str = "error"


class ConfigurationError(DuncanError):
    kind = "configuration"


class PositionNotFoundError(DuncanError):
    kind = "position_not_found"


class NoPriceError(DuncanError):
    kind = "no_price"


class MinTradeSizeError(DuncanError):
    kind = "min_trade_size"


class AlreadyBalancedError(MinTradeSizeError):
    kind = "already_balanced"


class ExchangeCallError(DuncanError):
    kind = "exchange_call"

    def __init__(self, fn: str, args: Tuple[Any, ...], message: str) -> None:
        super().__init__(message)
        self.fn = fn
        self.args_ = args

    def details(self) -> dict:
        return {"fn": self.fn, "args": [str(a) for a in self.args_], "error": str(self)}


class VaultCallError(DuncanError):
    kind = "vault_call"


class UnauthorizedError(DuncanError):
    kind = "unauthorized"


class InvalidAddressError(DuncanError):
    kind = "invalid_address"


@dataclass
class Outcome:
    ok: bool
    value: Any = None
    error: Optional[str] = None
    kind: Optional[str] = None

    def to_dict(self) -> dict:
        if self.ok:
            return {"ok": True, "value": self.value}
        return {"ok": False, "kind": self.kind, "error": self.error}


async def capture(awaitable: Awaitable[Any]) -> Outcome:
    # Only domain failures become tagged outcomes; anything else propagates.
    try:
        value = await awaitable
    except DuncanError as e:
        return Outcome(ok=False, error=str(e), kind=e.kind)
    return Outcome(ok=True, value=value)
