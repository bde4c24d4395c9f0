from __future__ import annotations

import re
from decimal import ROUND_FLOOR, Decimal
from typing import Union

# Margin keeps four fractional digits before scaling to the token's decimals.
MARGIN_SCALE = 10000

_SHARE_PREFIX = re.compile(r"^s\dx")


def assets_in_use(margin_usd: Union[Decimal, float, int, str], decimals: int) -> int:
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    margin = Decimal(str(margin_usd))
    scaled = int((margin * MARGIN_SCALE).to_integral_value(rounding=ROUND_FLOOR))
    return scaled * 10 ** decimals // MARGIN_SCALE


def underlying_symbol(share_symbol: str) -> str:
    """Map a vault share symbol such as ``s2xETH`` to the traded asset ``ETH``."""
    return _SHARE_PREFIX.sub("", share_symbol, count=1)
