import asyncio
import json
import logging
from decimal import Decimal

import pytest

from duncan.core.config import load_config
from duncan.core.errors import ConfigurationError, ExchangeCallError, NoPriceError, capture
from duncan.core.logging import JsonLogger, dumps, setup_app_logger
from duncan.core.types import Balance, OrderFill, Position


def test_config_loads_from_file_with_env_override(tmp_path):
    example = {
        "credentials": {"account_address": "0x1", "secret_key": "0x2"},
        "execution": {"min_trade_notional": 25, "slippage": 0.02},
        "vault": {"rpc_url": "https://arb1.example", "chain_id": 421614},
        "server": {"api_key": "from-file", "port": 9000},
        "telemetry": {"log_level": "DEBUG"},
    }
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps(example))
    cfg = load_config(str(path), environ={"DUNCAN_API_KEY": "from-env"})
    assert cfg.execution.min_trade_notional == Decimal("25")
    assert cfg.execution.slippage == Decimal("0.02")
    assert cfg.vault.chain_id == 421614
    assert cfg.server.api_key == "from-env"
    assert cfg.server.port == 9000
    assert cfg.telemetry.log_level == "DEBUG"


def test_config_defaults_and_requirements():
    cfg = load_config(environ={})
    assert cfg.execution.min_trade_notional == Decimal("10")
    assert cfg.vault.chain_id == 42161
    with pytest.raises(ConfigurationError, match="HL_SECRET_KEY"):
        cfg.require_credentials()
    with pytest.raises(ConfigurationError, match="DUNCAN_API_KEY"):
        cfg.require_vault()


def test_config_rejects_bad_values():
    with pytest.raises(ConfigurationError):
        load_config(environ={"DUNCAN_SLIPPAGE": "1.5"})
    with pytest.raises(ConfigurationError):
        load_config(environ={"DUNCAN_MIN_TRADE_NOTIONAL": "ten"})
    with pytest.raises(ConfigurationError):
        load_config(environ={"ARBITRUM_RPC_URL": "ws://node"})


def test_capture_tags_domain_errors():
    async def fails():
        raise NoPriceError("No price for asset ETH.")

    async def works():
        return 7

    bad = asyncio.run(capture(fails()))
    assert (bad.ok, bad.kind, bad.error) == (False, "no_price", "No price for asset ETH.")
    good = asyncio.run(capture(works()))
    assert good.ok and good.value == 7


def test_capture_leaves_other_errors_alone():
    async def crashes():
        raise KeyError("x")

    with pytest.raises(KeyError):
        asyncio.run(capture(crashes()))


def test_exchange_call_error_details():
    err = ExchangeCallError("order", ("ETH", True, Decimal("1")), "rejected")
    assert err.details() == {"fn": "order", "args": ["ETH", "True", "1"], "error": "rejected"}


def test_types_render_json():
    p = Position(symbol="ETH", notional=Decimal("10000"), size=Decimal("-5"), margin=Decimal("0"),
                 pnl=Decimal("0"), start_leverage=Decimal("10"))
    assert p.to_dict()["leverage"]["current"] is None
    out = json.loads(dumps({"balance": Balance(amount=Decimal("1.5")), "fill": OrderFill(Decimal("1"), Decimal("2"), 3)}))
    assert out == {"balance": {"amount": "1.5", "symbol": "USDC"}, "fill": {"size": "1", "fillPrice": "2", "orderId": 3}}


def test_json_logger_fields(caplog):
    log = JsonLogger(name="duncan_test")
    log.logger.propagate = True
    with caplog.at_level(logging.INFO, logger="duncan_test"):
        log.info("api_call", fn="order", args=["ETH", Decimal("1.5")])
    assert 'api_call fn=order args=["ETH","1.5"]' in caplog.text


def test_setup_app_logger_file(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_FILE", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    log_file = tmp_path / "logs" / "duncan.log"
    meta = setup_app_logger("duncan_file_test", log_level="DEBUG", log_file=str(log_file))
    assert meta["file"] == str(log_file)
    assert meta["level"] == "DEBUG"
    logging.getLogger("duncan_file_test").debug("hello")
    for h in logging.getLogger("duncan_file_test").handlers:
        h.flush()
    assert "hello" in log_file.read_text()
