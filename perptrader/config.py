from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = Field("", env="DATABASE_URL")  # empty -> in-memory position store
    LOG_LEVEL: str = Field("INFO", env="LOG_LEVEL")

    # Exchange API Configuration (never hardcode credentials)
    EXCHANGE_BASE_URL: str = Field("https://api.india.delta.exchange", env="EXCHANGE_BASE_URL")
    EXCHANGE_API_KEY: str = Field("", env="EXCHANGE_API_KEY")
    EXCHANGE_API_SECRET: str = Field("", env="EXCHANGE_API_SECRET")
    EXCHANGE_USER_AGENT: str = Field("perptrader-rest-client", env="EXCHANGE_USER_AGENT")

    # Bounded timeouts for every external call (seconds)
    HTTP_TIMEOUT_SEC: float = Field(10.0, env="HTTP_TIMEOUT_SEC")
    CANDLE_FETCH_TIMEOUT_SEC: float = Field(15.0, env="CANDLE_FETCH_TIMEOUT_SEC")
    PRICE_FETCH_TIMEOUT_SEC: float = Field(5.0, env="PRICE_FETCH_TIMEOUT_SEC")
    RECONCILE_TIMEOUT_SEC: float = Field(5.0, env="RECONCILE_TIMEOUT_SEC")
    ORDER_TIMEOUT_SEC: float = Field(10.0, env="ORDER_TIMEOUT_SEC")

    # Universe
    SYMBOLS: str = Field("BTCUSD,ETHUSD", env="SYMBOLS")  # comma separated, processed in this order
    STRATEGIES: str = Field("trend_breakout,ema_crossover", env="STRATEGIES")
    CANDLE_WINDOW: int = Field(500, env="CANDLE_WINDOW")

    # Strategy 1: MA200 + trendline breakout
    TREND_RESOLUTION: str = Field("1m", env="TREND_RESOLUTION")
    TREND_INTERVAL_SEC: float = Field(60.0, env="TREND_INTERVAL_SEC")
    TREND_MA_PERIOD: int = Field(200, env="TREND_MA_PERIOD")
    TREND_LOOKBACK: int = Field(50, env="TREND_LOOKBACK")
    TREND_SWING_WINDOW: int = Field(5, env="TREND_SWING_WINDOW")
    TREND_SWING_POINTS: int = Field(3, env="TREND_SWING_POINTS")
    TREND_STOP_LOSS_PCT: float = Field(0.005, env="TREND_STOP_LOSS_PCT")
    TREND_TAKE_PROFIT_PCT: float = Field(0.01, env="TREND_TAKE_PROFIT_PCT")
    TREND_LEVERAGE: float = Field(25.0, env="TREND_LEVERAGE")

    # Strategy 2: 9/20 EMA crossover + pullback
    EMA_RESOLUTION: str = Field("1h", env="EMA_RESOLUTION")
    EMA_INTERVAL_SEC: float = Field(120.0, env="EMA_INTERVAL_SEC")
    EMA_FAST: int = Field(9, env="EMA_FAST")
    EMA_SLOW: int = Field(20, env="EMA_SLOW")
    EMA_RANGING_THRESHOLD: float = Field(0.001, env="EMA_RANGING_THRESHOLD")
    EMA_PULLBACK_TOLERANCE: float = Field(0.005, env="EMA_PULLBACK_TOLERANCE")
    EMA_STRONG_BODY_PCT: float = Field(0.5, env="EMA_STRONG_BODY_PCT")
    EMA_SWING_LOOKBACK: int = Field(5, env="EMA_SWING_LOOKBACK")
    EMA_SWING_BUFFER_PCT: float = Field(0.002, env="EMA_SWING_BUFFER_PCT")
    EMA_RR_RATIO: float = Field(3.0, env="EMA_RR_RATIO")
    EMA_LEVERAGE: float = Field(25.0, env="EMA_LEVERAGE")

    # Shared strategy behaviour
    COOLDOWN_CANDLES: int = Field(5, env="COOLDOWN_CANDLES")

    # Risk / sizing
    ACCOUNT_SIZE: float = Field(10000.0, env="ACCOUNT_SIZE")
    RISK_PER_TRADE: float = Field(0.01, env="RISK_PER_TRADE")
    QUANTITY_STEP: float = Field(0.001, env="QUANTITY_STEP")
    DEFAULT_QUANTITY: float = Field(1.0, env="DEFAULT_QUANTITY")  # contracts when a signal carries no size

    # Entry price sanity band: minimum realistic price per symbol, "SYMBOL:floor" pairs
    PRICE_FLOORS: str = Field("BTCUSD:1000,ETHUSD:1000", env="PRICE_FLOORS")

    # SL/TP monitor
    SLTP_INTERVAL_SEC: float = Field(10.0, env="SLTP_INTERVAL_SEC")
    SLTP_PROXIMITY_PCT: float = Field(0.01, env="SLTP_PROXIMITY_PCT")

    # Notifications
    NOTIFIER_WEBHOOK: str = Field("", env="NOTIFIER_WEBHOOK")

    # Application
    APP_PORT: int = Field(8000, env="APP_PORT")
    AUTO_START: bool = Field(False, env="AUTO_START")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8"
    }

    def symbol_list(self) -> List[str]:
        return [s.strip().upper() for s in self.SYMBOLS.split(",") if s.strip()]

    def strategy_list(self) -> List[str]:
        return [s.strip().lower() for s in self.STRATEGIES.split(",") if s.strip()]

settings = Settings()
