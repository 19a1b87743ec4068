"""TOML config loading, profiles, the AggregatorConfig struct and structlog setup."""

from __future__ import annotations

import atexit
import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

# Handle behind the structlog file logger, if any
_log_handle: Any = None


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir() -> Path:
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = config_dir or _find_config_dir()
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


@dataclass(frozen=True)
class AggregatorConfig:
    """Everything the core reads. No environment variables are consulted."""

    testnet: bool = False
    retry_attempts: int = 3
    timeout_ms: int = 5000
    order_timeout_ms: int = 30000
    min_notional_usd: str = "10"
    reconnect_base_delay_sec: float = 1.0
    reconnect_max_delay_sec: float = 30.0
    summary_max_age_sec: float = 5.0

    @property
    def timeout_sec(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def order_timeout_sec(self) -> float:
        return self.order_timeout_ms / 1000.0


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        aggregator: dict[str, Any] | None = None,
        supervisor: dict[str, Any] | None = None,
        dydx: dict[str, Any] | None = None,
        hyperliquid: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.aggregator = aggregator or {}
        self.supervisor = supervisor or {}
        self.dydx = dydx or {}
        self.hyperliquid = hyperliquid or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            aggregator=raw.get("aggregator"),
            supervisor=raw.get("supervisor"),
            dydx=raw.get("dydx"),
            hyperliquid=raw.get("hyperliquid"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def testnet(self) -> bool:
        return bool(self.aggregator.get("testnet", False))

    @property
    def default_symbol(self) -> str:
        return str(self.aggregator.get("default_symbol", "BTC")).upper()

    @property
    def retry_attempts(self) -> int:
        return int(self.aggregator.get("retry_attempts", 3))

    @property
    def timeout_ms(self) -> int:
        return int(self.aggregator.get("timeout_ms", 5000))

    @property
    def order_timeout_ms(self) -> int:
        return int(self.aggregator.get("order_timeout_ms", 30000))

    @property
    def min_notional_usd(self) -> str:
        return str(self.aggregator.get("min_notional_usd", "10"))

    @property
    def summary_max_age_sec(self) -> float:
        return float(self.aggregator.get("summary_max_age_sec", 5.0))

    @property
    def reconnect_base_delay_sec(self) -> float:
        return float(self.supervisor.get("reconnect_base_delay_sec", 1.0))

    @property
    def reconnect_max_delay_sec(self) -> float:
        return float(self.supervisor.get("reconnect_max_delay_sec", 30.0))

    def _network(self, section: dict[str, Any], key: str, mainnet: str, testnet: str) -> str:
        net = section.get("testnet" if self.testnet else "mainnet") or {}
        return str(net.get(key) or (testnet if self.testnet else mainnet))

    @property
    def dydx_indexer_url(self) -> str:
        return self._network(
            self.dydx,
            "indexer_url",
            "https://indexer.dydx.trade/v4",
            "https://indexer.v4testnet.dydx.exchange/v4",
        )

    @property
    def dydx_ws_url(self) -> str:
        return self._network(
            self.dydx,
            "ws_url",
            "wss://indexer.dydx.trade/v4/ws",
            "wss://indexer.v4testnet.dydx.exchange/v4/ws",
        )

    @property
    def hyperliquid_api_url(self) -> str:
        return self._network(
            self.hyperliquid,
            "api_url",
            "https://api.hyperliquid.xyz",
            "https://api.hyperliquid-testnet.xyz",
        )

    @property
    def hyperliquid_ws_url(self) -> str:
        return self._network(
            self.hyperliquid,
            "ws_url",
            "wss://api.hyperliquid.xyz/ws",
            "wss://api.hyperliquid-testnet.xyz/ws",
        )

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)

    def aggregator_config(self) -> AggregatorConfig:
        return AggregatorConfig(
            testnet=self.testnet,
            retry_attempts=self.retry_attempts,
            timeout_ms=self.timeout_ms,
            order_timeout_ms=self.order_timeout_ms,
            min_notional_usd=self.min_notional_usd,
            reconnect_base_delay_sec=self.reconnect_base_delay_sec,
            reconnect_max_delay_sec=self.reconnect_max_delay_sec,
            summary_max_age_sec=self.summary_max_age_sec,
        )


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    global _log_handle
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    close_log_file()
    logger_factory = structlog.PrintLoggerFactory()
    log_file = settings.logging.get("file")
    if log_file:
        # Log to a file while the TUI owns the terminal.
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        _log_handle = open(log_file, "a", encoding="utf-8")
        logger_factory = structlog.WriteLoggerFactory(file=_log_handle)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )


def close_log_file() -> None:
    """Close the handle opened by configure_logging for a log file."""
    global _log_handle
    if _log_handle is not None:
        _log_handle.close()
        _log_handle = None


atexit.register(close_log_file)
