from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import eth_account
from hyperliquid.exchange import Exchange
from hyperliquid.info import Info
from hyperliquid.utils import constants

from duncan.core.config import Credentials
from duncan.core.errors import ConfigurationError
from duncan.core.types import OrderFill


@dataclass
class HLClients:
    address: str
    info: Info
    exchange: Exchange


def base_url_for(testnet: bool) -> str:
    return constants.TESTNET_API_URL if testnet else constants.MAINNET_API_URL


def build_hl_clients(credentials: Credentials, testnet: bool) -> HLClients:
    # Signing uses the secret key's wallet; queries use the configured account
    # (an API wallet may sign for a different main account).
    try:
        wallet = eth_account.Account.from_key(credentials.secret_key)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"HL_SECRET_KEY is not a valid private key: {e}") from e
    address = credentials.account_address or str(wallet.address)
    base_url = base_url_for(testnet)
    info = Info(base_url, skip_ws=True)
    exchange = Exchange(wallet, base_url, account_address=address)
    return HLClients(address=address, info=info, exchange=exchange)


def quantize_size(qty: Decimal, size_decimals: int) -> Decimal:
    quantum = Decimal(1).scaleb(-size_decimals)
    return (qty // quantum) * quantum


def response_error(resp: Any) -> Optional[str]:
    """Return the venue's error message from an exchange response, if any."""
    if not isinstance(resp, dict) or "status" not in resp:
        return None
    if resp.get("status") != "ok":
        return str(resp.get("response") or resp)
    payload = resp.get("response")
    data = payload.get("data") if isinstance(payload, dict) else None
    statuses = data.get("statuses", []) if isinstance(data, dict) else []
    for s in statuses:
        if isinstance(s, dict) and "error" in s:
            return str(s["error"])
    return None


def parse_fill(resp: Any) -> Optional[OrderFill]:
    statuses = ((resp or {}).get("response") or {}).get("data", {}).get("statuses", [])
    for s in statuses:
        if isinstance(s, dict) and "filled" in s:
            f = s["filled"]
            oid = f.get("oid")
            return OrderFill(
                size=Decimal(str(f.get("totalSz", "0"))),
                fill_price=Decimal(str(f.get("avgPx", "0"))),
                order_id=int(oid) if oid is not None else None,
            )
    return None
