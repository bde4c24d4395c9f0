"""
HTTP API: position lookup and vault collateral sync.

  GET  /position/{symbol}/info?testnet=   short position JSON, 404 if none
  POST /vault/{address}/update?simulate=  push margin in use to the vault
                                          (header duncan-api-key required)
"""
from __future__ import annotations

import hmac
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from duncan.core.config import AppConfig, load_config
from duncan.core.errors import InvalidAddressError, PositionNotFoundError, UnauthorizedError
from duncan.core.logging import JsonLogger, setup_app_logger
from duncan.exchanges.registry import GatewayRegistry
from duncan.vault.contract import VaultContract
from duncan.vault.sync import VaultLike, sync_vault

VaultFactory = Callable[[str], VaultLike]

log = JsonLogger(name="duncan.server")


def create_app(
    cfg: AppConfig,
    registry: Optional[GatewayRegistry] = None,
    vault_factory: Optional[VaultFactory] = None,
) -> FastAPI:
    gateways = registry or GatewayRegistry.from_config(cfg)
    make_vault: VaultFactory = vault_factory or (lambda address: VaultContract.from_config(cfg, address))

    app = FastAPI(title="duncan")

    @app.exception_handler(UnauthorizedError)
    async def _unauthorized(request: Request, exc: UnauthorizedError) -> JSONResponse:
        log.warn("unauthorized", path=request.url.path)
        return JSONResponse(status_code=401, content={"status": 401, "error": str(exc)})

    @app.exception_handler(InvalidAddressError)
    async def _invalid_address(request: Request, exc: InvalidAddressError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"status": 400, "error": str(exc)})

    @app.exception_handler(PositionNotFoundError)
    async def _not_found(request: Request, exc: PositionNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"status": 404, "error": str(exc)})

    @app.get("/position/{symbol}/info")
    async def position_info(symbol: str, testnet: Optional[str] = None):
        position = await gateways.get(bool(testnet)).fetch_position(symbol)
        if position is None:
            raise PositionNotFoundError(f"No short positions for {symbol}.")
        return jsonable_encoder(position.to_dict())

    @app.post("/vault/{address}/update")
    async def vault_update(
        address: str,
        simulate: Optional[str] = None,
        api_key: Optional[str] = Header(default=None, alias="duncan-api-key"),
    ):
        cfg.require_vault()
        if api_key is None or not hmac.compare_digest(api_key, cfg.server.api_key):
            raise UnauthorizedError("not authorized")
        contract = make_vault(address)
        # Vault positions live on mainnet only.
        return await sync_vault(contract, gateways.get(False), simulate=bool(simulate))

    return app


def main() -> None:
    cfg = load_config()
    setup_app_logger(
        "duncan",
        log_level=cfg.telemetry.log_level,
        log_file=cfg.telemetry.log_file,
        log_max_bytes=cfg.telemetry.log_max_bytes,
        log_backup_count=cfg.telemetry.log_backup_count,
        disable_console_logging=cfg.telemetry.disable_console_logging,
    )
    uvicorn.run(create_app(cfg), host=cfg.server.host, port=cfg.server.port)


if __name__ == "__main__":
    main()
