"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from eth_utils import is_address

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    name: str = "Celo Alfajores"
    chain_id: int = 44787
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    explorer_url: str = "https://alfajores.celoscan.io/"


@dataclass(frozen=True)
class ContractsConfig:
    registry: str = ""
    loan_manager: str = ""


@dataclass(frozen=True)
class WalletConfig:
    """Signing key, or a bare address for read-only use."""

    private_key: str = ""
    address: str = ""
    label: str = ""


@dataclass(frozen=True)
class TokenConfig:
    name: str = ""
    symbol: str = ""
    token_address: str = ""
    price_feed_address: str = ZERO_ADDRESS


@dataclass(frozen=True)
class PollingConfig:
    event_attempts: int = 5
    event_interval: float = 2.0
    deposit_timeout: float = 10.0
    deposit_interval: float = 1.0
    receipt_timeout: float = 120.0
    receipt_interval: float = 2.0
    refetch_delay: float = 2.0


@dataclass(frozen=True)
class MessagesConfig:
    ttl_seconds: float = 5.0


@dataclass(frozen=True)
class WatchConfig:
    interval_seconds: int = 30
    lookback_blocks: int = 1000


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    tokens: tuple[TokenConfig, ...] = ()
    polling: PollingConfig = field(default_factory=PollingConfig)
    messages: MessagesConfig = field(default_factory=MessagesConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        name=raw.get("name", ChainConfig.name),
        chain_id=int(raw.get("chain_id", ChainConfig.chain_id)),
        rpc_endpoints=tuple(e for e in raw.get("rpc_endpoints", []) if e),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        explorer_url=raw.get("explorer_url", ChainConfig.explorer_url),
    )


def _build_contracts(raw: dict[str, Any]) -> ContractsConfig:
    return ContractsConfig(
        registry=raw.get("registry", ""),
        loan_manager=raw.get("loan_manager", ""),
    )


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    return WalletConfig(
        private_key=raw.get("private_key", ""),
        address=raw.get("address", ""),
        label=raw.get("label", ""),
    )


def _build_tokens(
    raw: dict[str, Any] | list[dict[str, Any]], chain_id: int
) -> tuple[TokenConfig, ...]:
    """Tokens may be a flat list or a mapping of chain id → list."""
    if isinstance(raw, dict):
        raw = raw.get(str(chain_id), raw.get(chain_id, []))
    tokens: list[TokenConfig] = []
    for t in raw:
        tokens.append(
            TokenConfig(
                name=t.get("name", ""),
                symbol=t.get("symbol", ""),
                token_address=t.get("token_address", ""),
                price_feed_address=t.get("price_feed_address", ZERO_ADDRESS),
            )
        )
    return tuple(tokens)


def _build_polling(raw: dict[str, Any]) -> PollingConfig:
    return PollingConfig(
        event_attempts=int(raw.get("event_attempts", 5)),
        event_interval=float(raw.get("event_interval", 2.0)),
        deposit_timeout=float(raw.get("deposit_timeout", 10.0)),
        deposit_interval=float(raw.get("deposit_interval", 1.0)),
        receipt_timeout=float(raw.get("receipt_timeout", 120.0)),
        receipt_interval=float(raw.get("receipt_interval", 2.0)),
        refetch_delay=float(raw.get("refetch_delay", 2.0)),
    )


def _build_watch(raw: dict[str, Any]) -> WatchConfig:
    return WatchConfig(
        interval_seconds=int(raw.get("interval_seconds", 30)),
        lookback_blocks=int(raw.get("lookback_blocks", 1000)),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    chain = _build_chain(raw.get("chain", {}))
    cfg = AppConfig(
        chain=chain,
        contracts=_build_contracts(raw.get("contracts", {})),
        wallet=_build_wallet(raw.get("wallet", {})),
        tokens=_build_tokens(raw.get("tokens", []), chain.chain_id),
        polling=_build_polling(raw.get("polling", {})),
        messages=MessagesConfig(
            ttl_seconds=float(raw.get("messages", {}).get("ttl_seconds", 5.0))
        ),
        watch=_build_watch(raw.get("watch", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    for name in ("registry", "loan_manager"):
        address = getattr(cfg.contracts, name)
        if not address:
            raise ValueError(f"Contract '{name}' has no address")
        if not is_address(address):
            raise ValueError(f"Contract '{name}' has invalid address '{address}'")

    if cfg.wallet.address and not is_address(cfg.wallet.address):
        raise ValueError(f"Wallet has invalid address '{cfg.wallet.address}'")

    for token in cfg.tokens:
        if not is_address(token.token_address):
            raise ValueError(
                f"Token '{token.symbol}' has invalid address '{token.token_address}'"
            )

    polling = cfg.polling
    if polling.event_attempts < 1:
        raise ValueError("polling.event_attempts must be at least 1")
    for name in (
        "event_interval",
        "deposit_timeout",
        "deposit_interval",
        "receipt_timeout",
        "receipt_interval",
    ):
        if getattr(polling, name) <= 0:
            raise ValueError(f"polling.{name} must be positive")
    if polling.refetch_delay < 0:
        raise ValueError("polling.refetch_delay must not be negative")

    if cfg.messages.ttl_seconds <= 0:
        raise ValueError("messages.ttl_seconds must be positive")

    if cfg.watch.interval_seconds <= 0:
        raise ValueError("watch.interval_seconds must be positive")
    if cfg.watch.lookback_blocks < 0:
        raise ValueError("watch.lookback_blocks must not be negative")
