import logging
import os
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw or default


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./recipes.db"
    db_pool_size: int = 10
    db_pool_timeout: int = 30
    admin_id: Optional[str] = None
    admin_password: Optional[str] = None
    jwt_secret: str = field(default_factory=lambda: secrets.token_urlsafe(32))
    admin_token_ttl_hours: int = 24
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    port: int = 3000
    app_env: str = "development"
    rating_policy: str = "fallback"
    metadata_timeout: int = 10
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def strict_ratings(self) -> bool:
        return self.rating_policy == "strict"


def load_settings() -> Settings:
    jwt_secret = _env_str("JWT_SECRET")
    if not jwt_secret:
        logger.warning("JWT_SECRET is not set; tokens will not survive a restart")
        jwt_secret = secrets.token_urlsafe(32)

    rating_policy = (_env_str("RATING_POLICY", "fallback") or "fallback").lower()
    if rating_policy not in ("fallback", "strict"):
        logger.warning("Unknown RATING_POLICY=%r, using 'fallback'", rating_policy)
        rating_policy = "fallback"

    origins = _env_str("CORS_ORIGIN", "http://localhost:3000")
    return Settings(
        database_url=_env_str("DATABASE_URL", "sqlite:///./recipes.db"),
        db_pool_size=_env_int("DB_POOL_SIZE", 10),
        db_pool_timeout=_env_int("DB_POOL_TIMEOUT", 30),
        admin_id=_env_str("ADMIN_ID"),
        admin_password=os.environ.get("ADMIN_PASSWORD") or None,
        jwt_secret=jwt_secret,
        admin_token_ttl_hours=_env_int("ADMIN_TOKEN_TTL_HOURS", 24),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        port=_env_int("PORT", 3000),
        app_env=(_env_str("APP_ENV", "development") or "development").lower(),
        rating_policy=rating_policy,
        metadata_timeout=_env_int("METADATA_TIMEOUT", 10),
        log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
