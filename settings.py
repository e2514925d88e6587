"""
Tamagotcho settings

Read once from the environment (a local .env file is honoured).
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    cron_secret_token: str = ""
    stripe_webhook_secret: str = ""
    stripe_secret_key: str = ""
    app_url: str = "http://localhost:3000"
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            cron_secret_token=os.getenv("CRON_SECRET_TOKEN", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            app_url=os.getenv("APP_URL", "http://localhost:3000"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 8000)),
        )


def get_settings() -> Settings:
    return Settings.from_env()
