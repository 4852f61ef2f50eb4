"""Application settings."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Telegram
    telegram_bot_token: Optional[str] = Field(
        default=None,
        description="Bot token; the bot is not started when unset",
    )
    bot_username: str = Field(default="SurvivalArenaGameBot")
    game_url: str = Field(default="https://zippy-torte-7326f1.netlify.app")

    # Economy
    daily_coin_cap: int = Field(default=100, ge=0)
    referred_user_bonus: int = Field(default=50, ge=0)
    referrer_bonus: int = Field(default=100, ge=0)
    default_display_name: str = Field(default="Anonymous")

    # Leaderboard
    leaderboard_min_referrals: int = Field(default=5, ge=0)
    leaderboard_limit: int = Field(default=100, ge=1)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")


@lru_cache
def get_settings() -> Settings:
    return Settings()
