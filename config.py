"""
Configuration loaded from environment variables. Fail-fast on invalid values.
"""

from typing import Literal

from pydantic_settings import BaseSettings
from pydantic import Field


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Credentials (required for live trading, optional for dry-run)
    private_key: str = Field(default="", description="Polygon wallet private key (hex)")
    polymarket_profile_address: str = Field(default="", description="Polymarket proxy / funder address")
    signature_type: int = Field(default=0, ge=0, le=2)
    # Pre-provisioned L2 API credentials. Derived from the private key when empty.
    poly_api_key: str = ""
    poly_api_secret: str = ""
    poly_passphrase: str = ""

    # API endpoints
    clob_host: str = "https://clob.polymarket.com"
    gamma_host: str = "https://gamma-api.polymarket.com"
    myriad_host: str = "https://myriad.markets"
    chain_id: int = 137  # Polygon mainnet

    # Strategy
    # spread: buy at bid / sell at ask on liquid order-book markets
    # parity: buy (or sell) every outcome when outcome prices stray from summing to 1.0
    strategy: Literal["spread", "parity"] = "spread"
    source: Literal["gamma", "myriad"] = "gamma"

    # Detection thresholds
    min_deviation_pct: float = Field(default=1.0, gt=0, lt=100)
    min_spread_pct: float = Field(default=3.0, ge=0)
    min_volume_24h: float = Field(default=10000.0, ge=0)
    # Skip near-certain outcomes where adverse selection dominates
    min_price_floor: float = Field(default=0.05, ge=0.0, le=0.5)
    max_price_ceiling: float = Field(default=0.95, ge=0.5, le=1.0)
    # Log an alert when spread (or parity deviation) reaches this %. 0 disables.
    alert_spread_pct: float = Field(default=5.0, ge=0)
    # Quiet period per market between repeat alerts
    alert_cooldown_sec: float = Field(default=300.0, ge=0)

    # Risk limits
    max_order_size_usd: float = Field(default=5.0, gt=0)
    max_open_orders: int = Field(default=2, ge=1)
    max_daily_loss_usd: float = Field(default=50.0, gt=0)
    # Venue minimums
    min_order_value_usd: float = Field(default=1.0, ge=0)
    min_lot_size: int = Field(default=1, ge=1)
    # Price grid for orders and computed exit prices
    tick_size: Literal["0.1", "0.01", "0.001", "0.0001"] = "0.01"

    # Timing
    order_ttl_ms: int = Field(default=300_000, gt=0)  # 5 minutes
    poll_interval_ms: int = Field(default=60_000, gt=0)
    market_cache_ttl_sec: float = Field(default=10.0, ge=0)
    balance_cache_sec: float = Field(default=5.0, ge=0)
    # Ticks to wait for a lagging venue balance before dropping a position
    balance_sync_retries: int = Field(default=2, ge=0)

    # Modes
    dry_run: bool = True
    cancel_on_shutdown: bool = True
    paper_balance_usd: float = Field(default=100.0, ge=0)
    log_level: str = "INFO"
    json_log_file: str = ""
    pnl_ledger_path: str = "pnl_ledger.jsonl"

    @property
    def order_ttl_sec(self) -> float:
        return self.order_ttl_ms / 1000.0

    @property
    def poll_interval_sec(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.private_key)


def missing_live_credentials(cfg: Config) -> list[str]:
    """Names of settings live trading cannot run without."""
    missing: list[str] = []
    if not cfg.private_key:
        missing.append("PRIVATE_KEY")
    if cfg.source != "gamma":
        missing.append("SOURCE=gamma (only Polymarket markets are tradeable)")
    return missing


def load_config(**overrides) -> Config:
    """Load and validate config from environment. Raises on invalid fields."""
    return Config(**overrides)
