from __future__ import annotations

from typing import Any, Dict, Protocol

from duncan.core.errors import PositionNotFoundError
from duncan.core.logging import JsonLogger
from duncan.exchanges.base_gateway import ExchangeGateway
from duncan.vault.calculator import assets_in_use, underlying_symbol

log = JsonLogger(name="duncan.vault")


class VaultLike(Protocol):
    address: str

    async def symbol(self) -> str: ...

    async def decimals(self) -> int: ...

    async def set_assets_in_use(self, assets: int) -> str: ...


async def sync_vault(contract: VaultLike, gateway: ExchangeGateway, simulate: bool = False) -> Dict[str, Any]:
    """Report the margin backing a vault's hedge as its assets in use.

    With ``simulate`` the computed call is returned without being sent.
    """
    symbol = underlying_symbol(await contract.symbol())
    decimals = await contract.decimals()
    position = await gateway.fetch_position(symbol)
    if position is None:
        raise PositionNotFoundError(f"No short positions for {symbol}.")
    assets = assets_in_use(position.margin, decimals)
    log.info("vault_sync", vault=contract.address, symbol=symbol, margin=position.margin, assets=assets, simulate=simulate)
    if not simulate:
        await contract.set_assets_in_use(assets)
    return {"vault": contract.address, "fn": "setAssetsInUse", "args": [str(assets)]}
