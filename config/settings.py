"""
config/settings.py — Centralized configuration via Pydantic Settings.

All env vars are loaded from .env and validated at startup.
"""

import logging
from dotenv import load_dotenv

load_dotenv()

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Telegram ──────────────────────────────────────────────
    telegram_bot_token: str = Field(
        default="", description="Bot token from @BotFather; attach the bot at startup when set"
    )
    telegram_chat_id: Optional[str] = Field(
        default=None, description="Chat that receives the 'connected' message when the bot attaches"
    )

    # ── Server ────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    log_level: str = Field(default="INFO", description="Root logging level")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def has_bot_token(self) -> bool:
        return bool(self.telegram_bot_token.strip())


# Singleton — import this across the app
settings = Settings()

# Configure basic logging level globally
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
