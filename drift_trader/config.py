"""Configuration loader for the trading bot.

Supports YAML format with environment variable interpolation. Every section is
a frozen dataclass: the configuration is built once at startup and passed
explicitly to the components that need it.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Tuple

import yaml

NETWORKS = ("devnet", "mainnet-beta")


def _to_decimal(name: str, value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}")


def _require_positive(name: str, value: Decimal) -> None:
    if not value.is_finite() or value <= 0:
        raise ValueError(f"{name} must be a positive finite amount, got {value}")


@dataclass(frozen=True)
class TradingConfig:
    """What to trade and where.

    ``market_index`` is the spot market holding the collateral (1 = SOL),
    ``base_asset_symbol`` names the perp market the order goes to.
    """
    network: str = "devnet"
    market_index: int = 1
    base_asset_symbol: str = "SOL"
    order_size: Decimal = Decimal("0.1")
    price: Decimal = Decimal("165.35")  # TODO: read from an oracle once price discovery is added
    deposit_amount: Decimal = Decimal("0.5")
    use_delegate: bool = False
    delegate_sub_account_id: int = 0
    sub_account_index: int = 0

    def __post_init__(self):
        if self.network not in NETWORKS:
            raise ValueError(f"network must be one of {NETWORKS}, got {self.network!r}")
        for name in ("order_size", "price", "deposit_amount"):
            value = _to_decimal(name, getattr(self, name))
            _require_positive(name, value)
            object.__setattr__(self, name, value)
        for name in ("market_index", "delegate_sub_account_id", "sub_account_index"):
            if int(getattr(self, name)) < 0:
                raise ValueError(f"{name} must be non-negative")
        # the delegate trades the provisioned sub-account, so both must match
        if self.use_delegate and self.delegate_sub_account_id != self.sub_account_index:
            raise ValueError(
                "delegate_sub_account_id must equal sub_account_index when use_delegate is on"
            )


@dataclass(frozen=True)
class PolicyConfig:
    """Safety policy knobs. Defaults mirror the values the bot has always used."""
    collateral_multiplier: Decimal = Decimal("2")
    settlement_delay_seconds: float = 5.0
    account_poll_delays: Tuple[float, ...] = (5.0, 3.0)
    min_wallet_balance: Decimal = Decimal("0.1")  # SOL

    def __post_init__(self):
        multiplier = _to_decimal("collateral_multiplier", self.collateral_multiplier)
        _require_positive("collateral_multiplier", multiplier)
        object.__setattr__(self, "collateral_multiplier", multiplier)
        object.__setattr__(
            self, "min_wallet_balance", _to_decimal("min_wallet_balance", self.min_wallet_balance)
        )
        delays = tuple(float(d) for d in self.account_poll_delays)
        if not delays or any(d < 0 for d in delays):
            raise ValueError("account_poll_delays must be a non-empty list of non-negative seconds")
        object.__setattr__(self, "account_poll_delays", delays)
        if self.settlement_delay_seconds < 0:
            raise ValueError("settlement_delay_seconds must be non-negative")


@dataclass(frozen=True)
class RpcConfig:
    """Solana RPC settings."""
    url: Optional[str] = None
    commitment: str = "confirmed"
    poll_interval_ms: int = 1000
    timeout: int = 30
    max_retries: int = 5
    max_backoff_seconds: float = 30.0

    def endpoint(self, network: str) -> str:
        return self.url or f"https://api.{network}.solana.com"


@dataclass(frozen=True)
class LoggingConfig:
    log_file: str = "drift_trader.log"
    log_level: str = "INFO"
    enable_console: bool = True


@dataclass(frozen=True)
class BotConfig:
    """Complete bot configuration."""
    trading: TradingConfig = field(default_factory=TradingConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    rpc: RpcConfig = field(default_factory=RpcConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "BotConfig":
        return cls()

    @classmethod
    def from_yaml(cls, config_path: str) -> "BotConfig":
        """Load configuration from YAML file with env var interpolation.

        Args:
            config_path: Path to YAML config file

        Returns:
            BotConfig instance

        Example YAML:
            trading:
              network: devnet
              order_size: 0.1
              deposit_amount: 0.5
              use_delegate: false
            policy:
              collateral_multiplier: 2
            rpc:
              url: "${SOLANA_RPC_URL}"
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with config_file.open("r") as f:
            raw = f.read()

        # Interpolate environment variables: ${VAR_NAME}
        for key, value in os.environ.items():
            raw = raw.replace(f"${{{key}}}", value)

        data = yaml.safe_load(raw) or {}

        policy_data = dict(data.get("policy") or {})
        if "account_poll_delays" in policy_data:
            policy_data["account_poll_delays"] = tuple(policy_data["account_poll_delays"])
        rpc_data = dict(data.get("rpc") or {})
        # an unset ${SOLANA_RPC_URL} falls back to the public endpoint
        url = rpc_data.get("url")
        if url and url.startswith("${"):
            rpc_data["url"] = None

        return cls(
            trading=TradingConfig(**(data.get("trading") or {})),
            policy=PolicyConfig(**policy_data),
            rpc=RpcConfig(**rpc_data),
            logging=LoggingConfig(**(data.get("logging") or {})),
        )

    def to_yaml(self, output_path: str) -> None:
        """Save configuration to YAML file."""
        data = {
            "trading": {
                "network": self.trading.network,
                "market_index": self.trading.market_index,
                "base_asset_symbol": self.trading.base_asset_symbol,
                "order_size": str(self.trading.order_size),
                "price": str(self.trading.price),
                "deposit_amount": str(self.trading.deposit_amount),
                "use_delegate": self.trading.use_delegate,
                "delegate_sub_account_id": self.trading.delegate_sub_account_id,
                "sub_account_index": self.trading.sub_account_index,
            },
            "policy": {
                "collateral_multiplier": str(self.policy.collateral_multiplier),
                "settlement_delay_seconds": self.policy.settlement_delay_seconds,
                "account_poll_delays": list(self.policy.account_poll_delays),
                "min_wallet_balance": str(self.policy.min_wallet_balance),
            },
            "rpc": {
                "url": self.rpc.url,
                "commitment": self.rpc.commitment,
                "poll_interval_ms": self.rpc.poll_interval_ms,
                "timeout": self.rpc.timeout,
                "max_retries": self.rpc.max_retries,
                "max_backoff_seconds": self.rpc.max_backoff_seconds,
            },
            "logging": {
                "log_file": self.logging.log_file,
                "log_level": self.logging.log_level,
                "enable_console": self.logging.enable_console,
            },
        }

        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with output_file.open("w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
