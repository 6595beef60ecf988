"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Symbols polled into the realtime table every cycle
DEFAULT_TRACKED_SYMBOLS: list[str] = [
    "BTC", "ETH", "SOL", "XRP", "ADA", "DOT", "UNI",
    "LINK", "AAVE", "MATIC", "AVAX", "SUI", "ATOM", "ARB",
]

# Static mapping from ticker symbols to CoinGecko coin IDs
SYMBOL_TO_COINGECKO: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "XRP": "ripple",
    "HYPE": "hyperliquid",
    "ASTER": "astar",
    "WLFI": "world-liberty-financial",
    "SUI": "sui",
    "ADA": "cardano",
    "JUP": "jupiter-exchange-solana",
    "XCN": "chain-2",
    "LINK": "chainlink",
    "AAVE": "aave",
    "DOT": "polkadot",
    "UNI": "uniswap",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
    "ATOM": "cosmos",
    "ARB": "arbitrum",
    "BNB": "binancecoin",
    "DOGE": "dogecoin",
    "LTC": "litecoin",
    "BCH": "bitcoin-cash",
    "XLM": "stellar",
    "VET": "vechain",
    "FIL": "filecoin",
    "TRX": "tron",
}

# CoinCap asset IDs differ from CoinGecko for a handful of coins
SYMBOL_TO_COINCAP: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "XRP": "xrp",
    "ADA": "cardano",
    "DOT": "polkadot",
    "UNI": "uniswap",
    "LINK": "chainlink",
    "AAVE": "aave",
    "MATIC": "polygon",
    "AVAX": "avalanche",
    "SUI": "sui",
    "ATOM": "cosmos",
    "ARB": "arbitrum",
    "HYPE": "hyperliquid",
    "DOGE": "dogecoin",
    "LTC": "litecoin",
    "BNB": "binance-coin",
}


class FeedSettings(BaseSettings):
    """Upstream price sources and realtime polling."""

    model_config = SettingsConfigDict(env_prefix="FEED_")

    tracked_symbols: list[str] = Field(default_factory=lambda: list(DEFAULT_TRACKED_SYMBOLS))
    coingecko_ids: dict[str, str] = Field(default_factory=lambda: dict(SYMBOL_TO_COINGECKO))
    coincap_ids: dict[str, str] = Field(default_factory=lambda: dict(SYMBOL_TO_COINCAP))

    cryptocompare_url: str = "https://min-api.cryptocompare.com/data/pricemultifull"
    coincap_url: str = "https://api.coincap.io/v2/assets"
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: SecretStr = SecretStr("")

    primary_timeout: float = 8.0  # seconds
    secondary_timeout: float = 8.0
    tertiary_timeout: float = 6.0
    market_context_timeout: float = 5.0

    poll_interval: float = 10.0  # seconds between realtime polls
    tertiary_request_delay: float = 0.5  # spacing for the per-symbol fallback loop


class CacheSettings(BaseSettings):
    """Freshness, cache TTL and rate-limit backoff windows (seconds)."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    freshness_window: float = 15.0
    cache_duration: float = 120.0
    backoff_duration: float = 120.0


class AlertSettings(BaseSettings):
    """Manual alert evaluation and auto-volatility parameters."""

    model_config = SettingsConfigDict(env_prefix="ALERT_")

    check_interval: float = 30.0  # seconds between evaluation cycles
    alert_pacing_delay: float = 1.0  # between alerts of one chat
    volatility_pacing_delay: float = 0.2  # between symbols in the volatility scan
    auto_threshold_percent: float = 3.0
    auto_cooldown: float = 3600.0  # 1 hour


class TelegramSettings(BaseSettings):
    """Telegram Bot API delivery settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: SecretStr = SecretStr("")
    parse_mode: str | None = "Markdown"
    timeout: float = 8.0
    rate_per_sec: float = 1.0
    burst: int = 3
    max_retries: int = 5
    initial_backoff: float = 0.5
    max_backoff: float = 8.0


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    feed: FeedSettings = FeedSettings()
    cache: CacheSettings = CacheSettings()
    alerts: AlertSettings = AlertSettings()
    telegram: TelegramSettings = TelegramSettings()
    api: ApiSettings = ApiSettings()
