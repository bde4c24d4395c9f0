from __future__ import annotations

from typing import Callable, Dict

from duncan.core.config import AppConfig
from duncan.exchanges.base_gateway import ExchangeGateway
from duncan.exchanges.hyperliquid.hl_common import build_hl_clients
from duncan.exchanges.hyperliquid.hl_perp_adapter import HyperliquidPerpAdapter

GatewayFactory = Callable[[bool], ExchangeGateway]


def build_exchange(cfg: AppConfig, testnet: bool) -> ExchangeGateway:
    clients = build_hl_clients(cfg.require_credentials(), testnet)
    return HyperliquidPerpAdapter(
        clients.address,
        clients.info,
        clients.exchange,
        slippage=cfg.execution.slippage,
        testnet=testnet,
    )


class GatewayRegistry:
    """One gateway per network, built on first use and reused afterwards.

    Construction is not locked; create the registry once at process start and
    pass it to whatever needs a gateway.
    """

    def __init__(self, factory: GatewayFactory) -> None:
        self._factory = factory
        self._gateways: Dict[bool, ExchangeGateway] = {}

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "GatewayRegistry":
        return cls(lambda testnet: build_exchange(cfg, testnet))

    def get(self, testnet: bool = False) -> ExchangeGateway:
        if testnet not in self._gateways:
            self._gateways[testnet] = self._factory(testnet)
        return self._gateways[testnet]
