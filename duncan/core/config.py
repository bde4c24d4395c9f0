from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from duncan.core.errors import ConfigurationError

ARBITRUM_CHAIN_ID = 42161


@dataclass
class Credentials:
    # Account queried for positions; derived from the secret key when empty.
    account_address: str = ""
    secret_key: str = ""


@dataclass
class ExecutionParams:
    min_trade_notional: Decimal = Decimal("10")
    # Fraction of mark price an IOC market order may cross, e.g. 0.05 = 5%
    slippage: Decimal = Decimal("0.05")


@dataclass
class VaultParams:
    rpc_url: str = ""
    chain_id: int = ARBITRUM_CHAIN_ID
    receipt_timeout_s: int = 120


@dataclass
class ServerParams:
    api_key: str = ""
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class TelemetryParams:
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_max_bytes: Optional[int] = None
    log_backup_count: Optional[int] = None
    disable_console_logging: Optional[bool] = None


@dataclass
class AppConfig:
    credentials: Credentials = field(default_factory=Credentials)
    execution: ExecutionParams = field(default_factory=ExecutionParams)
    vault: VaultParams = field(default_factory=VaultParams)
    server: ServerParams = field(default_factory=ServerParams)
    telemetry: TelemetryParams = field(default_factory=TelemetryParams)

    def require_credentials(self) -> Credentials:
        if not self.credentials.secret_key:
            raise ConfigurationError("missing env variable HL_SECRET_KEY")
        return self.credentials

    def require_vault(self) -> VaultParams:
        if not self.server.api_key:
            raise ConfigurationError("missing env variable DUNCAN_API_KEY")
        if not self.vault.rpc_url:
            raise ConfigurationError("missing env variable ARBITRUM_RPC_URL")
        self.require_credentials()
        return self.vault


def _to_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigurationError(f"{name} must be numeric, got {value!r}") from e


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def load_env(env: Optional[str] = None) -> Optional[str]:
    """Load the dotenv file for the active environment, if present.

    Existing process variables are never overridden.
    """
    env = env or os.environ.get("DUNCAN_ENV", "development")
    path = ".env.production" if env == "production" else ".env.development"
    if os.path.exists(path):
        load_dotenv(path, override=False)
        return path
    return None


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> AppConfig:
    if environ is None:
        load_env()
        environ = dict(os.environ)
    raw: Dict[str, Any] = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"cannot read config file {path}: {e}") from e

    creds = raw.get("credentials", {})
    exe = raw.get("execution", {})
    vault = raw.get("vault", {})
    server = raw.get("server", {})
    tel = raw.get("telemetry", {})

    cfg = AppConfig(
        credentials=Credentials(
            account_address=str(environ.get("HL_ACCOUNT_ADDRESS", creds.get("account_address", ""))),
            secret_key=str(environ.get("HL_SECRET_KEY", creds.get("secret_key", ""))),
        ),
        execution=ExecutionParams(
            min_trade_notional=_to_decimal(
                environ.get("DUNCAN_MIN_TRADE_NOTIONAL", exe.get("min_trade_notional", "10")), "min_trade_notional"
            ),
            slippage=_to_decimal(environ.get("DUNCAN_SLIPPAGE", exe.get("slippage", "0.05")), "slippage"),
        ),
        vault=VaultParams(
            rpc_url=str(environ.get("ARBITRUM_RPC_URL", vault.get("rpc_url", ""))),
            chain_id=_to_int(environ.get("ARBITRUM_CHAIN_ID", vault.get("chain_id", ARBITRUM_CHAIN_ID)), "chain_id"),
            receipt_timeout_s=_to_int(vault.get("receipt_timeout_s", 120), "receipt_timeout_s"),
        ),
        server=ServerParams(
            api_key=str(environ.get("DUNCAN_API_KEY", server.get("api_key", ""))),
            host=str(environ.get("DUNCAN_HOST", server.get("host", "127.0.0.1"))),
            port=_to_int(environ.get("DUNCAN_PORT", server.get("port", 8000)), "port"),
        ),
        telemetry=TelemetryParams(
            log_level=str(tel.get("log_level", "INFO")),
            log_file=str(tel["log_file"]) if tel.get("log_file") is not None else None,
            log_max_bytes=_to_int(tel["log_max_bytes"], "log_max_bytes") if tel.get("log_max_bytes") is not None else None,
            log_backup_count=_to_int(tel["log_backup_count"], "log_backup_count") if tel.get("log_backup_count") is not None else None,
            disable_console_logging=bool(tel["disable_console_logging"]) if tel.get("disable_console_logging") is not None else None,
        ),
    )
    _validate(cfg)
    return cfg


def _validate(cfg: AppConfig) -> None:
    if cfg.execution.min_trade_notional < 0:
        raise ConfigurationError("min_trade_notional must be non-negative")
    if not (Decimal("0") < cfg.execution.slippage < Decimal("1")):
        raise ConfigurationError("slippage must be a fraction between 0 and 1")
    if cfg.vault.rpc_url and not cfg.vault.rpc_url.startswith("http"):
        raise ConfigurationError("rpc_url must be http(s)")
    if cfg.credentials.account_address and not cfg.credentials.account_address.startswith("0x"):
        raise ConfigurationError("account_address must be a 0x-prefixed address")
