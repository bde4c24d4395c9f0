from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional

from duncan.core.config import AppConfig, load_config
from duncan.core.errors import ConfigurationError, Outcome, capture
from duncan.core.logging import JsonLogger, NumericJSONEncoder, dumps, setup_app_logger
from duncan.exchanges.registry import GatewayRegistry
from duncan.execution.position_manager import PositionManager

VERSION = "0.1.0"

log = JsonLogger(name="duncan.cli")

Command = Callable[[PositionManager, argparse.Namespace], Awaitable[Any]]


def _amount(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise argparse.ArgumentTypeError(f"invalid amount: {raw!r}") from e


async def _balance(pm: PositionManager, args: argparse.Namespace) -> Any:
    return await pm.balance()


async def _price(pm: PositionManager, args: argparse.Namespace) -> Any:
    return {"price": await pm.price(args.symbol)}


async def _info(pm: PositionManager, args: argparse.Namespace) -> Any:
    return await pm.info(args.symbol)


async def _decrease(pm: PositionManager, args: argparse.Namespace) -> Any:
    return await pm.decrease(args.symbol, args.amount)


async def _increase(pm: PositionManager, args: argparse.Namespace) -> Any:
    return await pm.increase(args.symbol, args.amount)


async def _margin_add(pm: PositionManager, args: argparse.Namespace) -> Any:
    return await pm.add_margin(args.symbol, args.amount)


async def _margin_remove(pm: PositionManager, args: argparse.Namespace) -> Any:
    return await pm.remove_margin(args.symbol, args.amount)


async def _rebalance(pm: PositionManager, args: argparse.Namespace) -> Any:
    return await pm.rebalance(args.symbol)


COMMANDS: Dict[str, Command] = {
    "balance": _balance,
    "price": _price,
    "info": _info,
    "decrease": _decrease,
    "increase": _increase,
    "margin-add": _margin_add,
    "margin-remove": _margin_remove,
    "rebalance": _rebalance,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="duncan", description="Manager for perp hedge positions.")
    p.add_argument("-t", "--testnet", action="store_true", help="Use the Hyperliquid testnet.")
    p.add_argument("--config", default=None, help="Optional JSON config file")
    p.add_argument("--version", action="version", version=VERSION)
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("balance", help="Shows the current exchange balance which is available to trade.")
    sp = sub.add_parser("price", help="Retrieves the current mark price for the vault asset.")
    sp.add_argument("symbol", metavar="SYMBOL")
    sp = sub.add_parser("info", help="Shows the position for the vault.")
    sp.add_argument("symbol", metavar="SYMBOL")
    sp = sub.add_parser("decrease", help="Decreases the position size by an amount of assets.")
    sp.add_argument("symbol", metavar="SYMBOL")
    sp.add_argument("amount", metavar="AMOUNT", type=_amount)
    sp = sub.add_parser("increase", help="Increases the position size by an amount of assets.")
    sp.add_argument("symbol", metavar="SYMBOL")
    sp.add_argument("amount", metavar="AMOUNT", type=_amount)
    sp = sub.add_parser("margin-add", help="Increases the margin for a short position by an amount of funds.")
    sp.add_argument("symbol", metavar="SYMBOL")
    sp.add_argument("amount", metavar="AMOUNT", type=_amount)
    sp = sub.add_parser("margin-remove", help="Decreases the margin for a short position by an amount of funds.")
    sp.add_argument("symbol", metavar="SYMBOL")
    sp.add_argument("amount", metavar="AMOUNT", type=_amount)
    sp = sub.add_parser("rebalance", help="Rebalances the position back to the original leverage.")
    sp.add_argument("symbol", metavar="SYMBOL")
    return p


async def _run(cfg: AppConfig, registry: GatewayRegistry, args: argparse.Namespace) -> Any:
    pm = PositionManager(registry.get(args.testnet), min_trade_notional=cfg.execution.min_trade_notional)
    return await COMMANDS[args.command](pm, args)


def _print_outcome(outcome: Outcome) -> None:
    if outcome.ok:
        print(dumps(outcome.value, indent=2, cls=NumericJSONEncoder))
    else:
        print(dumps({"error": outcome.error}, indent=2, cls=NumericJSONEncoder))


def main(argv: Optional[List[str]] = None, registry: Optional[GatewayRegistry] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = load_config(args.config)
    except ConfigurationError as e:
        _print_outcome(Outcome(ok=False, error=str(e), kind=e.kind))
        return 0
    setup_app_logger(
        "duncan",
        log_level=cfg.telemetry.log_level,
        log_file=cfg.telemetry.log_file,
        log_max_bytes=cfg.telemetry.log_max_bytes,
        log_backup_count=cfg.telemetry.log_backup_count,
        disable_console_logging=cfg.telemetry.disable_console_logging,
    )
    if registry is None:
        registry = GatewayRegistry.from_config(cfg)
    try:
        outcome = asyncio.run(capture(_run(cfg, registry, args)))
    except Exception as e:
        # Any failure is reported as {"error": ...}; the exit status stays 0.
        message = str(e) or type(e).__name__
        log.error("command_failed", command=args.command, error=message, exc_type=type(e).__name__)
        outcome = Outcome(ok=False, error=message, kind="unexpected")
    _print_outcome(outcome)
    return 0


if __name__ == "__main__":
    sys.exit(main())
