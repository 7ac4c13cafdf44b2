"""
Load configuration from config.yaml and .env. API keys only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from futures_agent.core.errors import ConfigError

POLICIES = ("ema_pullback", "ema_crossover", "band_breakout")
SIZING_MODES = ("", "risk", "margin")
MODES = ("paper", "live")


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(
    config_path: Optional[Path] = None,
    project_root: Optional[Path] = None,
    mode: Optional[str] = None,
) -> "Config":
    """Load config.yaml and overlay with env. `mode` (from the CLI) overrides both."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    # Env overrides (for secrets and overrides)
    def env(key: str, default: str = "") -> str:
        return os.getenv(key, str(default)).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    api = data.get("api", {})
    strategy = data.get("strategy", {})
    risk = data.get("risk", {})
    execution = data.get("execution", {})
    telegram = data.get("telegram", {})
    runtime = data.get("runtime", {})
    logging_cfg = data.get("logging", {})

    use_testnet = env_bool("USE_TESTNET", api.get("use_testnet", True))
    # Dedicated testnet/mainnet keys so both can live in .env and USE_TESTNET switches
    if use_testnet:
        binance_api_key = env("BINANCE_TESTNET_API_KEY") or env("BINANCE_API_KEY")
        binance_api_secret = env("BINANCE_TESTNET_API_SECRET") or env("BINANCE_API_SECRET")
    else:
        binance_api_key = env("BINANCE_MAINNET_API_KEY") or env("BINANCE_API_KEY")
        binance_api_secret = env("BINANCE_MAINNET_API_SECRET") or env("BINANCE_API_SECRET")

    return Config(
        binance_api_key=binance_api_key,
        binance_api_secret=binance_api_secret,
        use_testnet=use_testnet,
        symbol=env("SYMBOL", strategy.get("symbol", "SOLUSDT")).upper(),
        base_interval=env("BASE_INTERVAL", strategy.get("base_interval", "5m")),
        aggregation_factor=env_int("AGGREGATION_FACTOR", strategy.get("aggregation_factor", 3)),
        policy=env("POLICY", strategy.get("policy", "ema_pullback")).lower(),
        kline_limit=env_int("KLINE_LIMIT", strategy.get("kline_limit", 1000)),
        min_history_bars=env_int("MIN_HISTORY_BARS", strategy.get("min_history_bars", 250)),
        # Strategy
        ema_fast=env_int("EMA_FAST", strategy.get("ema_fast", 50)),
        ema_slow=env_int("EMA_SLOW", strategy.get("ema_slow", 200)),
        ema_trend=env_int("EMA_TREND", strategy.get("ema_trend", 200)),
        ema_exit=env_int("EMA_EXIT", strategy.get("ema_exit", 20)),
        ema_seed=env("EMA_SEED", strategy.get("ema_seed", "sma")).lower(),
        atr_len=env_int("ATR_LEN", strategy.get("atr_len", 14)),
        adx_len=env_int("ADX_LEN", strategy.get("adx_len", 14)),
        adx_min=env_float("ADX_MIN", strategy.get("adx_min", 20.0)),
        rsi_len=env_int("RSI_LEN", strategy.get("rsi_len", 14)),
        rsi_min=env_float("RSI_MIN", strategy.get("rsi_min", 55.0)),
        bb_len=env_int("BB_LEN", strategy.get("bb_len", 20)),
        bb_mult=env_float("BB_MULT", strategy.get("bb_mult", 2.0)),
        vol_ma_len=env_int("VOL_MA_LEN", strategy.get("vol_ma_len", 20)),
        vol_mult=env_float("VOL_MULT", strategy.get("vol_mult", 2.0)),
        breakout_atr_mult=env_float("BREAKOUT_ATR_MULT", strategy.get("breakout_atr_mult", 0.5)),
        macd_fast=env_int("MACD_FAST", strategy.get("macd_fast", 12)),
        macd_slow=env_int("MACD_SLOW", strategy.get("macd_slow", 26)),
        macd_signal=env_int("MACD_SIGNAL", strategy.get("macd_signal", 9)),
        sl_atr_mult=env_float("SL_ATR_MULT", strategy.get("sl_atr_mult", 1.6)),
        rr_mult=env_float("RR_MULT", strategy.get("rr_mult", 2.2)),
        trailing_trigger_atr=env_float("TRAILING_TRIGGER_ATR", strategy.get("trailing_trigger_atr", 1.0)),
        trailing_offset_atr=env_float("TRAILING_OFFSET_ATR", strategy.get("trailing_offset_atr", 1.5)),
        max_hold_bars=env_int("MAX_HOLD_BARS", strategy.get("max_hold_bars", 0)),  # 0 = off
        # Risk
        initial_balance=env_float("INITIAL_BALANCE", risk.get("initial_balance", 100.0)),
        risk_per_trade=env_float("RISK_PER_TRADE", risk.get("risk_per_trade", 0.006)),
        sizing=env("SIZING", risk.get("sizing", "")).lower(),  # "" = policy default
        margin_fraction=env_float("MARGIN_FRACTION", risk.get("margin_fraction", 0.1)),
        max_risk_fraction=env_float("MAX_RISK_FRACTION", risk.get("max_risk_fraction", 0.1)),
        cooldown_bars=env_int("COOLDOWN_BARS", risk.get("cooldown_bars", 30)),
        daily_loss_limit=env_float("DAILY_LOSS_LIMIT", risk.get("daily_loss_limit", 0.03)),
        report_utc_offset_hours=env_float("REPORT_UTC_OFFSET_HOURS", risk.get("report_utc_offset_hours", 0.0)),
        # Execution
        mode=(mode or env("MODE", execution.get("mode", "paper"))).lower(),
        leverage=env_int("LEVERAGE", execution.get("leverage", 10)),
        fee_rate=env_float("FEE_RATE", execution.get("fee_rate", 0.0004)),
        maintenance_margin_rate=env_float("MAINTENANCE_MARGIN_RATE", execution.get("maintenance_margin_rate", 0.005)),
        fills_limit=env_int("FILLS_LIMIT", execution.get("fills_limit", 50)),
        # Telegram
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        # Runtime
        poll_seconds=env_float("POLL_SECONDS", runtime.get("poll_seconds", 30.0)),
        reconcile_seconds=env_float("RECONCILE_SECONDS", runtime.get("reconcile_seconds", 30.0)),
        digest_minutes=env_int("DIGEST_MINUTES", runtime.get("digest_minutes", 60)),
        status_host=env("STATUS_HOST", runtime.get("status_host", "0.0.0.0")),
        status_port=env_int("PORT", runtime.get("status_port", 3002)),
        # Logging
        log_level=logging_cfg.get("level", "INFO"),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "futures_agent.log"),
    )


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "binance_api_key", "binance_api_secret", "use_testnet",
        "symbol", "base_interval", "aggregation_factor", "policy", "kline_limit", "min_history_bars",
        "ema_fast", "ema_slow", "ema_trend", "ema_exit", "ema_seed", "atr_len", "adx_len", "adx_min",
        "rsi_len", "rsi_min", "bb_len", "bb_mult", "vol_ma_len", "vol_mult", "breakout_atr_mult",
        "macd_fast", "macd_slow", "macd_signal", "sl_atr_mult", "rr_mult",
        "trailing_trigger_atr", "trailing_offset_atr", "max_hold_bars",
        "initial_balance", "risk_per_trade", "sizing", "margin_fraction", "max_risk_fraction",
        "cooldown_bars", "daily_loss_limit", "report_utc_offset_hours",
        "mode", "leverage", "fee_rate", "maintenance_margin_rate", "fills_limit",
        "telegram_bot_token", "telegram_chat_id",
        "poll_seconds", "reconcile_seconds", "digest_minutes", "status_host", "status_port",
        "log_level", "log_dir", "log_file",
    )

    def __init__(
        self,
        binance_api_key: str = "",
        binance_api_secret: str = "",
        use_testnet: bool = True,
        symbol: str = "SOLUSDT",
        base_interval: str = "5m",
        aggregation_factor: int = 3,
        policy: str = "ema_pullback",
        kline_limit: int = 1000,
        min_history_bars: int = 250,
        ema_fast: int = 50,
        ema_slow: int = 200,
        ema_trend: int = 200,
        ema_exit: int = 20,
        ema_seed: str = "sma",
        atr_len: int = 14,
        adx_len: int = 14,
        adx_min: float = 20.0,
        rsi_len: int = 14,
        rsi_min: float = 55.0,
        bb_len: int = 20,
        bb_mult: float = 2.0,
        vol_ma_len: int = 20,
        vol_mult: float = 2.0,
        breakout_atr_mult: float = 0.5,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        sl_atr_mult: float = 1.6,
        rr_mult: float = 2.2,
        trailing_trigger_atr: float = 1.0,
        trailing_offset_atr: float = 1.5,
        max_hold_bars: int = 0,
        initial_balance: float = 100.0,
        risk_per_trade: float = 0.006,
        sizing: str = "",
        margin_fraction: float = 0.1,
        max_risk_fraction: float = 0.1,
        cooldown_bars: int = 30,
        daily_loss_limit: float = 0.03,
        report_utc_offset_hours: float = 0.0,
        mode: str = "paper",
        leverage: int = 10,
        fee_rate: float = 0.0004,
        maintenance_margin_rate: float = 0.005,
        fills_limit: int = 50,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        poll_seconds: float = 30.0,
        reconcile_seconds: float = 30.0,
        digest_minutes: int = 60,
        status_host: str = "0.0.0.0",
        status_port: int = 3002,
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "futures_agent.log",
    ):
        if policy not in POLICIES:
            raise ConfigError(f"Unknown policy {policy!r}; expected one of {POLICIES}")
        if sizing not in SIZING_MODES:
            raise ConfigError(f"Unknown sizing {sizing!r}; expected 'risk' or 'margin'")
        if mode not in MODES:
            raise ConfigError(f"Unknown mode {mode!r}; expected one of {MODES}")
        if aggregation_factor < 1:
            raise ConfigError("aggregation_factor must be >= 1")
        self.binance_api_key = binance_api_key
        self.binance_api_secret = binance_api_secret
        self.use_testnet = use_testnet
        self.symbol = symbol
        self.base_interval = base_interval
        self.aggregation_factor = aggregation_factor
        self.policy = policy
        self.kline_limit = kline_limit
        self.min_history_bars = min_history_bars
        self.ema_fast = ema_fast
        self.ema_slow = ema_slow
        self.ema_trend = ema_trend
        self.ema_exit = ema_exit
        self.ema_seed = ema_seed
        self.atr_len = atr_len
        self.adx_len = adx_len
        self.adx_min = adx_min
        self.rsi_len = rsi_len
        self.rsi_min = rsi_min
        self.bb_len = bb_len
        self.bb_mult = bb_mult
        self.vol_ma_len = vol_ma_len
        self.vol_mult = vol_mult
        self.breakout_atr_mult = breakout_atr_mult
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.sl_atr_mult = sl_atr_mult
        self.rr_mult = rr_mult
        self.trailing_trigger_atr = trailing_trigger_atr
        self.trailing_offset_atr = trailing_offset_atr
        self.max_hold_bars = max_hold_bars
        self.initial_balance = initial_balance
        self.risk_per_trade = risk_per_trade
        self.sizing = sizing
        self.margin_fraction = margin_fraction
        self.max_risk_fraction = max_risk_fraction
        self.cooldown_bars = cooldown_bars
        self.daily_loss_limit = daily_loss_limit
        self.report_utc_offset_hours = report_utc_offset_hours
        self.mode = mode
        self.leverage = leverage
        self.fee_rate = fee_rate
        self.maintenance_margin_rate = maintenance_margin_rate
        self.fills_limit = fills_limit
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.poll_seconds = poll_seconds
        self.reconcile_seconds = reconcile_seconds
        self.digest_minutes = digest_minutes
        self.status_host = status_host
        self.status_port = status_port
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file

    @property
    def live(self) -> bool:
        return self.mode == "live"
