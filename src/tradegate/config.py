# src/tradegate/config.py
from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment / storage
    ENV: str = Field(default="dev")
    DATABASE_URL: str = Field(default="sqlite:///./tradegate.db")
    STORE_BACKEND: str = Field(default="sql")  # "sql" or "redis"
    REDIS_URL: str | None = None

    # Operating mode: "paper" never contacts a venue
    MODE: str = Field(default="paper")

    # Risk
    ACCOUNT_EQUITY: Decimal = Decimal("100000")
    DEFAULT_RISK_PCT: Decimal = Decimal("3.0")
    DAILY_DRAWDOWN_LIMIT: Decimal = Decimal("0.05")

    # Confirmation
    DECISION_TIMEOUT_SEC: float = 900.0
    EXPIRY_SWEEP_INTERVAL_SEC: float = 60.0
    # CONFIRMED alerts untouched for this long with no placed trade are moved to ERROR
    CONFIRM_STALL_SEC: float = 600.0

    # Routing
    ROUTER_MAX_ATTEMPTS: int = 5
    ROUTER_BASE_DELAY_MS: int = 500
    ROUTER_BACKOFF_MULTIPLIER: float = 2.0
    ROUTER_MAX_DELAY_MS: int = 5000
    ROUTER_TIMEOUT_SEC: float = 10.0

    # Telegram
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_CHAT_ID: str | None = None
    TELEGRAM_ADMIN_CHAT_ID: str | None = None
    TELEGRAM_WEBHOOK_URL: str | None = None

    # API / Security
    API_KEY: str | None = None
    TV_WEBHOOK_SECRET: str | None = None

    # Venues
    BINANCE_API_KEY: str | None = None
    BINANCE_API_SECRET: str | None = None
    BINANCE_FUTURES: bool = True
    OANDA_API_KEY: str | None = None
    OANDA_ACCOUNT_ID: str | None = None
    OANDA_BASE_URL: str = "https://api-fxpractice.oanda.com"
    ALPACA_API_KEY: str | None = None
    ALPACA_SECRET_KEY: str | None = None
    ALPACA_BASE_URL: str = "https://paper-api.alpaca.markets"

    # Observability
    METRICS_ENABLED: bool = True

    @property
    def is_paper(self) -> bool:
        return self.MODE.strip().lower() != "live"


settings = Settings()
