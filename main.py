#!/usr/bin/env python3
"""
Futures agent CLI: paper | live
Usage:
  python main.py paper [--config config.yaml]
  python main.py live [--config config.yaml]
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from futures_agent.core.config import Config, load_config
from futures_agent.core.errors import ConfigError
from futures_agent.core.logger import setup_logging
from futures_agent.execution.binance_futures import BinanceFuturesClient
from futures_agent.execution.paper import PaperExecutionClient
from futures_agent.lifecycle.manager import PositionManager
from futures_agent.runtime.runner import TradingRunner
from futures_agent.runtime.status_server import StatusServer
from futures_agent.strategies.factory import build_evaluator
from futures_agent.utils.telegram import TelegramNotifier


def build_runner(config: Config) -> TradingRunner:
    """Wire gateway, policy, risk manager, lifecycle manager and notifier from config."""
    exchange = BinanceFuturesClient(
        config.binance_api_key,
        config.binance_api_secret,
        testnet=config.use_testnet,
    )
    execution = exchange if config.live else PaperExecutionClient(exchange, leverage=config.leverage)
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
    evaluator = build_evaluator(config)
    manager = PositionManager(
        symbol=config.symbol,
        evaluator=evaluator,
        notifier=notifier,
        execution=execution,
        initial_balance=config.initial_balance,
        fee_rate=config.fee_rate,
        leverage=config.leverage,
        cooldown_bars=config.cooldown_bars,
        max_hold_bars=config.max_hold_bars,
        trailing_trigger_atr=config.trailing_trigger_atr,
        trailing_offset_atr=config.trailing_offset_atr,
        sl_atr_mult=config.sl_atr_mult,
        maintenance_margin_rate=config.maintenance_margin_rate,
        utc_offset_hours=config.report_utc_offset_hours,
        fills_limit=config.fills_limit,
    )
    return TradingRunner(
        manager=manager,
        execution=execution,
        notifier=notifier,
        base_interval=config.base_interval,
        aggregation_factor=config.aggregation_factor,
        kline_limit=config.kline_limit,
        live=config.live,
        testnet=config.use_testnet,
        leverage=config.leverage,
        digest_minutes=config.digest_minutes,
        utc_offset_hours=config.report_utc_offset_hours,
    )


def run(mode: str, config_path: Optional[Path]) -> int:
    """Run the agent until interrupted."""
    try:
        config = load_config(config_path, ROOT, mode=mode)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    setup_logging(
        config.log_level,
        config.log_dir,
        config.log_file,
        secrets=(config.binance_api_key, config.binance_api_secret, config.telegram_bot_token),
    )
    logger = logging.getLogger("futures_agent")
    if config.live and (not config.binance_api_key or not config.binance_api_secret):
        logger.error("Missing BINANCE_API_KEY or BINANCE_API_SECRET in .env")
        return 1
    runner = build_runner(config)
    server = StatusServer(runner.manager.status, config.status_host, config.status_port)
    server.start()
    try:
        runner.run_forever(config.poll_seconds, config.reconcile_seconds)
    finally:
        server.stop()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Futures agent CLI")
    parser.add_argument("mode", choices=["paper", "live"], help="Simulated orders or real orders")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    args = parser.parse_args()
    return run(args.mode, args.config)


if __name__ == "__main__":
    exit(main())
