"""Configuration for the crypto commentator bot."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class CommentatorConfig(BaseSettings):
    """Configuration for pool tracking, commentary and the Telegram bot."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix=""
    )

    # Telegram (required when running the bot)
    telegram_bot_token: str = Field("", env="TELEGRAM_BOT_TOKEN")

    # Market data (GeckoTerminal)
    geckoterminal_base_url: str = Field(
        "https://app.geckoterminal.com/api/p1",
        env="GECKOTERMINAL_BASE_URL",
    )
    geckoterminal_network: str = Field("solana", env="GECKOTERMINAL_NETWORK")
    request_timeout_seconds: int = Field(15, env="REQUEST_TIMEOUT_SECONDS")

    # Update cadence
    update_interval_minutes: int = Field(1, env="UPDATE_INTERVAL_MINUTES")

    # Price history: 288 points = 24h at one point per 5 minutes
    history_capacity: int = Field(288, env="HISTORY_CAPACITY")

    # Commentary thresholds (5m percent change)
    extreme_move_pct: float = Field(10.0, env="EXTREME_MOVE_PCT")
    move_pct: float = Field(2.0, env="MOVE_PCT")

    # Simulated position used for P&L figures
    simulated_position_usd: float = Field(1000.0, env="SIMULATED_POSITION_USD")

    # Chart
    chart_width: int = Field(800, env="CHART_WIDTH")
    chart_height: int = Field(400, env="CHART_HEIGHT")

    # Logging
    log_level: str = Field("INFO", env="LOG_LEVEL")
    log_file: str = Field("logs/commentator.log", env="LOG_FILE")


# Global config instance
config = CommentatorConfig()
