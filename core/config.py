import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()

REQUIRED_ENV_VARS = (
    "APP_ID",
    "CLIENT_ID",
    "CLIENT_SECRET",
    "GRAPHQL_URL",
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    app_id: str = field(default_factory=lambda: os.getenv("APP_ID", ""))
    client_id: str = field(default_factory=lambda: os.getenv("CLIENT_ID", ""))
    client_secret: str = field(default_factory=lambda: os.getenv("CLIENT_SECRET", ""))
    graphql_url: str = field(default_factory=lambda: os.getenv("GRAPHQL_URL", "https://api.bettermode.com"))
    signing_secret: str = field(default_factory=lambda: os.getenv("SIGNING_SECRET", ""))
    cors_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "*"))

    # posts older than this are never tracked, and the nightly sweep evicts them
    post_days_window_limit: int = field(default_factory=lambda: int(os.getenv("POST_DAYS_WINDOW_LIMIT", "31")))
    posts_page_size: int = field(default_factory=lambda: int(os.getenv("POSTS_PAGE_SIZE", "10")))
    posts_page_delay: float = field(default_factory=lambda: float(os.getenv("POSTS_PAGE_DELAY", "2.0")))
    posts_fetch_limit: int = field(default_factory=lambda: int(os.getenv("POSTS_FETCH_LIMIT", "0")))

    sync_delay_seconds: float = field(default_factory=lambda: float(os.getenv("SYNC_DELAY_SECONDS", "1.0")))
    sync_queue_size: int = field(default_factory=lambda: int(os.getenv("SYNC_QUEUE_SIZE", "1000")))

    http_timeout: float = field(default_factory=lambda: float(os.getenv("HTTP_TIMEOUT", "8")))
    token_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("TOKEN_TTL_SECONDS", "3000")))
    restore_installations: bool = field(default_factory=lambda: _env_bool("RESTORE_INSTALLATIONS", True))

    def missing_required(self) -> List[str]:
        return [name for name in REQUIRED_ENV_VARS if not getattr(self, name.lower())]


settings = Settings()
