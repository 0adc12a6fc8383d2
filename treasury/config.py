"""Application configuration via environment variables."""

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from treasury.schemas.support_level import SupportLevel

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing."""


DEFAULT_SUPPORT_LEVELS = [
    SupportLevel(drop_percent=10, buy_amount_sol=0.10),
    SupportLevel(drop_percent=20, buy_amount_sol=0.20),
    SupportLevel(drop_percent=30, buy_amount_sol=0.30),
    SupportLevel(drop_percent=40, buy_amount_sol=0.40),
    SupportLevel(drop_percent=50, buy_amount_sol=0.50),
]


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'data' / 'treasury.db'}"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Mode
    enabled: bool = True
    dry_run: bool = False

    # Polling
    tick_interval_seconds: int = Field(default=60, gt=0)
    price_history_length: int = Field(default=60, ge=2)
    volume_history_length: int = Field(default=24, ge=1)

    # Support levels (JSON list in env: [{"drop_percent": 10, "buy_amount_sol": 0.1}, ...])
    support_levels: list[SupportLevel] = Field(default_factory=lambda: list(DEFAULT_SUPPORT_LEVELS))

    # Volume confirmation
    volume_threshold: float = Field(default=0.5, ge=0)
    min_volume_24h: float = Field(default=100.0, ge=0)

    # Momentum / RSI
    rsi_period: int = Field(default=14, ge=1)
    momentum_period: int = Field(default=15, ge=2)
    rsi_oversold: float = Field(default=35.0, ge=0, le=100)
    rsi_overbought: float = Field(default=70.0, ge=0, le=100)

    # Liquidity
    max_price_impact_percent: float = Field(default=5.0, gt=0)
    sol_price_usd: float = Field(default=100.0, gt=0)

    # Treasury runway
    normal_runway_days: float = 30.0
    critical_runway_days: float = 14.0
    emergency_runway_days: float = 7.0
    estimated_daily_burn_sol: float = Field(default=0.1, ge=0)

    # Burn scheduling
    min_tokens_to_burn: int = Field(default=1_000_000, gt=0)

    # Safety
    min_reserve_sol: float = Field(default=0.1, ge=0)
    min_available_sol: float = Field(default=0.01, ge=0)
    min_minutes_between_buys: float = Field(default=60.0, ge=0)

    # Activity log
    activity_log_limit: int = Field(default=200, gt=0)

    # Network
    http_timeout_seconds: float = Field(default=10.0, gt=0)
    confirm_timeout_seconds: float = Field(default=90.0, gt=0)
    slippage_bps: int = Field(default=2000, ge=0)
    priority_fee_lamports: int = 500_000
    token_decimals: int = 6
    dexscreener_base_url: str = "https://api.dexscreener.com/latest/dex/tokens"
    jupiter_base_url: str = "https://quote-api.jup.ag/v6"

    # Wallet (shared with the other scripts, so the unprefixed names work too)
    token_mint_address: str = Field(
        default="",
        validation_alias=AliasChoices("SUSTAINABILITY_TOKEN_MINT_ADDRESS", "TOKEN_MINT_ADDRESS"),
    )
    rpc_url: str = Field(
        default="",
        validation_alias=AliasChoices("SUSTAINABILITY_RPC_URL", "HELIUS_RPC_URL", "SOLANA_RPC_URL"),
    )
    wallet_private_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "SUSTAINABILITY_WALLET_PRIVATE_KEY", "WALLET_PRIVATE_KEY", "SOLANA_PRIVATE_KEY"
        ),
    )

    model_config = {
        "env_prefix": "SUSTAINABILITY_",
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @field_validator("support_levels")
    @classmethod
    def _sort_support_levels(cls, value: list[SupportLevel]) -> list[SupportLevel]:
        levels = sorted(value, key=lambda lvl: lvl.drop_percent)
        seen = set()
        for level in levels:
            if level.level_id in seen:
                raise ValueError(f"duplicate support level: {level.drop_percent}%")
            seen.add(level.level_id)
        return levels

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    def require_credentials(self):
        """Fail fast when wallet or token configuration is missing."""
        missing = []
        if not self.token_mint_address:
            missing.append("TOKEN_MINT_ADDRESS")
        if not self.rpc_url:
            missing.append("HELIUS_RPC_URL")
        if not self.wallet_private_key:
            missing.append("WALLET_PRIVATE_KEY")
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
        if self.emergency_runway_days > self.critical_runway_days:
            raise ConfigurationError("emergency_runway_days must be <= critical_runway_days")


settings = Settings()
