from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal

# Hyperliquid perp prices: at most 5 significant figures and 6 - szDecimals decimals.
PRICE_SIG_FIGS = 5
PERP_MAX_DECIMALS = 6


def _round_sig(px: Decimal, figures: int) -> Decimal:
    if px == 0:
        return px
    exp = px.adjusted() - figures + 1
    return px.quantize(Decimal(1).scaleb(exp), rounding=ROUND_HALF_EVEN)


@dataclass
class SlippageController:
    max_fraction: Decimal

    def limit_price(self, reference_px: Decimal, is_buy: bool, size_decimals: int) -> Decimal:
        """Worst acceptable price for an immediate-or-cancel market order."""
        if is_buy:
            px = reference_px * (Decimal(1) + self.max_fraction)
        else:
            px = reference_px * (Decimal(1) - self.max_fraction)
        px = _round_sig(px, PRICE_SIG_FIGS)
        decimals = max(0, PERP_MAX_DECIMALS - size_decimals)
        return px.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_EVEN)
