from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

SUPPORTED_INTERVALS = ("1m", "5m", "1h", "1d")
RECONNECT_STRATEGIES = ("fixed", "exponential")


class Settings(BaseSettings):
    # BitMEX API Configuration
    BITMEX_API_KEY: str = Field("")
    BITMEX_API_SECRET: str = Field("")
    TEST: bool = Field(True)  # sandbox endpoints for REST and websocket
    EXCHANGE_TIMEOUT_MS: int = Field(10000, gt=0)

    # Trading Configuration
    SYMBOL: str = Field("XBTUSD")
    QTY: float = Field(10, gt=0)
    LEVERAGE: int = Field(100, gt=0)
    SET_LEVERAGE_ON_START: bool = Field(False)
    PROFIT_TARGET: float = Field(9, gt=0)  # absolute price offset
    STOP_LOSS: float = Field(3, gt=0)      # absolute price offset
    PRICE_TICK: float = Field(1.0, gt=0)

    # Risk limits
    MAX_POSITIONS: int = Field(1, gt=0)
    MAX_DAILY_LOSS: float = Field(0.01, ge=0)  # in SETTLE_CURRENCY (BTC), not USD
    RISK_PER_TRADE: float = Field(10, ge=0)
    SETTLE_CURRENCY: str = Field("BTC")

    # EMA configuration
    FAST_PERIOD: int = Field(20, gt=0)
    SLOW_PERIOD: int = Field(120, gt=0)
    INTERVAL: str = Field("5m")
    FACTOR: int = Field(5, gt=0)  # EMA warm-up multiplier

    # Order status polling
    SETTLE_DELAY_SEC: float = Field(5.0, ge=0)

    # Market data feed
    RECONNECT_STRATEGY: str = Field("fixed")
    RECONNECT_DELAY_SEC: float = Field(5.0, ge=0)
    RECONNECT_MAX_DELAY_SEC: float = Field(60.0, ge=0)
    RECONNECT_WARN_AFTER: int = Field(12, gt=0)

    # Notifications
    NOTIFIER_WEBHOOK: str = Field("")

    # Application
    LOG_LEVEL: str = Field("INFO")
    APP_PORT: int = Field(8000)
    AUTO_START: bool = Field(False)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("INTERVAL")
    @classmethod
    def _check_interval(cls, value: str) -> str:
        if value not in SUPPORTED_INTERVALS:
            raise ValueError(f"INTERVAL must be one of {SUPPORTED_INTERVALS}, got {value!r}")
        return value

    @field_validator("RECONNECT_STRATEGY")
    @classmethod
    def _check_reconnect_strategy(cls, value: str) -> str:
        value = value.lower()
        if value not in RECONNECT_STRATEGIES:
            raise ValueError(f"RECONNECT_STRATEGY must be one of {RECONNECT_STRATEGIES}, got {value!r}")
        return value

    def warmup_bars(self) -> int:
        """Candles needed for the current and previous-bar EMA of the slower period."""
        return max(self.FAST_PERIOD, self.SLOW_PERIOD) * self.FACTOR + 1


settings = Settings()
